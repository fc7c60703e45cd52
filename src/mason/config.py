"""Process-wide settings, read once at startup and injected where needed."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError


@dataclass
class Settings:
    """Runtime options for the engine, the invoker and the Java backends.

    `build` holds the parsed build settings file (YAML); extensions look up
    their defaults there, e.g. `build["javadoc"]["windowtitle"]`.
    """

    java_home: Path | None = None
    trace: bool = False
    debug: bool = True
    dry_run: bool = False
    jobs: int = 1
    max_depth: int = 500
    runs_dir: Path | None = None
    log_level: str = "INFO"
    build: dict = field(default_factory=dict)

    @classmethod
    def from_env(cls, config_path: str | Path | None = None) -> Settings:
        load_dotenv()
        java_home = os.getenv("JAVA_HOME", "").strip()
        runs_dir = os.getenv("MASON_RUNS_DIR", "").strip()
        settings = cls(
            java_home=Path(java_home) if java_home else None,
            trace=_env_bool("MASON_TRACE", default=False),
            debug=_env_bool("MASON_DEBUG", default=True),
            dry_run=_env_bool("MASON_DRY_RUN", default=False),
            jobs=_env_int("MASON_JOBS", default=1),
            max_depth=_env_int("MASON_MAX_DEPTH", default=500),
            runs_dir=Path(runs_dir) if runs_dir else None,
            log_level=os.getenv("MASON_LOG_LEVEL", "INFO").upper(),
            build=load_build_settings(config_path) if config_path else {},
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.jobs < 1:
            raise ConfigurationError("MASON_JOBS must be >= 1.")
        if self.max_depth < 1:
            raise ConfigurationError("MASON_MAX_DEPTH must be >= 1.")

    def require(self, attr: str, env_name: str):
        """Return a setting that a backend cannot work without."""
        value = getattr(self, attr)
        if value is None or value == "":
            raise ConfigurationError(f"Are we forgetting something? {env_name} not set.")
        return value


def load_build_settings(path: str | Path) -> dict:
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"Build settings file not found: {p}")
    with open(p, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Build settings must be a mapping: {p}")
    return data


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off", ""}:
        return False
    raise ConfigurationError(f"Invalid boolean value for {name}: {value!r}")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError as error:
        raise ConfigurationError(f"Invalid integer value for {name}: {value!r}") from error
