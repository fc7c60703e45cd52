"""Shared test fixtures."""

from __future__ import annotations

import itertools
import os
import stat
from pathlib import Path

import pytest

from mason import Application, Settings


class Clock:
    """Hands out strictly increasing mtimes so staleness never depends on timing."""

    def __init__(self, start: int = 1_000_000):
        self._ticks = itertools.count(start)

    def touch(self, path: Path, content: str | None = None) -> float:
        path.parent.mkdir(parents=True, exist_ok=True)
        if content is not None or not path.exists():
            path.write_text(content or "", encoding="utf-8")
        tick = float(next(self._ticks))
        os.utime(path, (tick, tick))
        return tick


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(java_home=tmp_path / "jdk")


@pytest.fixture()
def app(tmp_path: Path, settings: Settings) -> Application:
    return Application(settings, base_dir=tmp_path)


def write_stub(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture()
def fake_jdk(tmp_path: Path, monkeypatch) -> Path:
    """JAVA_HOME with javac/javadoc stubs that log their arguments.

    Each call appends one line `<tool> <args...>` to the file returned.
    """
    if os.name == "nt":
        pytest.skip("shell stubs need a POSIX shell")
    log_file = tmp_path / "jdk.log"
    monkeypatch.setenv("FAKE_JDK_LOG", str(log_file))
    for tool in ("javac", "javadoc"):
        write_stub(
            tmp_path / "jdk" / "bin" / tool,
            f'echo "{tool} $*" >> "$FAKE_JDK_LOG"',
        )
    return log_file


@pytest.fixture()
def stub():
    """Factory writing an executable `#!/bin/sh` script."""
    if os.name == "nt":
        pytest.skip("shell stubs need a POSIX shell")
    return write_stub
