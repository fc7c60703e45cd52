"""Backend interface: uniform build configuration in, tool invocation out."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, ClassVar, Iterable

from ..config import Settings
from ..errors import ConfigurationError
from ..invoker import CommandInvoker, CommandResult, Invocation


@dataclass
class BackendConfig:
    """Options, sources, dependencies and target for one backend call.

    Option keys are checked against `recognized` as soon as they are set.
    """

    recognized: frozenset[str]
    options: dict[str, Any] = field(default_factory=dict)
    sources: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    target: str | None = None

    def __post_init__(self) -> None:
        self.recognized = frozenset(self.recognized)
        self._check(self.options)

    def _check(self, options: dict[str, Any]) -> None:
        unknown = sorted(k for k in options if k not in self.recognized)
        if unknown:
            raise ConfigurationError(
                f"Unrecognized options: {', '.join(unknown)}; "
                f"expected one of: {', '.join(sorted(self.recognized))}"
            )

    def using(self, *flags: str, **options: Any) -> "BackendConfig":
        """Set options; bare flags are set to True."""
        update = {flag: True for flag in flags}
        update.update(options)
        self._check(update)
        self.options.update(update)
        return self

    def include(self, *paths: str | os.PathLike) -> "BackendConfig":
        for p in paths:
            if str(p) not in self.sources:
                self.sources.append(str(p))
        return self

    def with_(self, *dependencies: str | os.PathLike) -> "BackendConfig":
        for d in dependencies:
            if str(d) not in self.dependencies:
                self.dependencies.append(str(d))
        return self

    def into(self, target: str | os.PathLike) -> "BackendConfig":
        self.target = str(target)
        return self

    def copy(self) -> "BackendConfig":
        return BackendConfig(
            recognized=self.recognized,
            options=dict(self.options),
            sources=list(self.sources),
            dependencies=list(self.dependencies),
            target=self.target,
        )


class Backend(ABC):
    """Translate a BackendConfig into an argument vector for one tool.

    Subclasses declare `language`, `capability`, `tool` and `OPTIONS`, and
    implement `arguments`. Translation must be total over `OPTIONS` and
    deterministic: the same config always yields the same vector.
    """

    language: ClassVar[str]
    capability: ClassVar[str]
    tool: ClassVar[str]
    source_pattern: ClassVar[str] = "*"
    OPTIONS: ClassVar[tuple[str, ...]] = ()

    def __init__(self, settings: Settings):
        self.settings = settings

    def new_config(self, **options: Any) -> BackendConfig:
        return BackendConfig(recognized=frozenset(self.OPTIONS), options=options)

    def check_options(self, config: BackendConfig) -> None:
        config._check(config.options)

    def executable(self) -> str:
        return self.tool

    @abstractmethod
    def arguments(self, config: BackendConfig) -> list[str]:
        """Return the tool arguments (without the executable)."""

    def invocation(self, config: BackendConfig) -> Invocation:
        self.check_options(config)
        return Invocation(tool=self.tool, argv=(self.executable(), *self.arguments(config)))

    def run(self, config: BackendConfig, invoker: CommandInvoker) -> CommandResult:
        """Invoke the tool unconditionally; staleness is the caller's business."""
        return invoker.execute(self.invocation(config))


# Canonical fragments a backend may compose its vector from


def flag(name: str, value: Any, negated: str | None = None) -> list[str]:
    """True -> `name`; False -> `negated` (or nothing)."""
    if value:
        return [name]
    return [negated] if negated else []


def repeated(name: str, values: Iterable[Any]) -> list[str]:
    out: list[str] = []
    for v in values:
        out += [name, str(v)]
    return out


def joined(prefix: str, values: Iterable[Any], sep: str = ",") -> str:
    return prefix + sep.join(str(v) for v in values)


def path_list(name: str, paths: Iterable[Any]) -> list[str]:
    items = [str(p) for p in paths]
    if not items:
        return []
    return [name, os.pathsep.join(items)]


def mapping(name: str, values: dict) -> list[str]:
    out: list[str] = []
    for k in sorted(values, key=str):
        out += [name, str(k), str(values[k])]
    return out


@dataclass(frozen=True)
class BackendDescriptor:
    language: str
    capability: str
    options: frozenset[str]
    factory: Callable[[Settings], Backend]
    source_pattern: str = "*"

    def new_config(self, **options: Any) -> BackendConfig:
        """A config validated against this backend without constructing it."""
        return BackendConfig(recognized=self.options, options=options)


class BackendRegistry:
    def __init__(self) -> None:
        self._descriptors: dict[tuple[str, str], BackendDescriptor] = {}

    def add(self, descriptor: BackendDescriptor) -> BackendDescriptor:
        key = (descriptor.capability, descriptor.language)
        if key in self._descriptors:
            raise ConfigurationError(
                f"A {descriptor.capability} backend for {descriptor.language} is already registered"
            )
        self._descriptors[key] = descriptor
        return descriptor

    def register(self, cls: type[Backend]) -> type[Backend]:
        """Class decorator registering a Backend subclass."""
        self.add(
            BackendDescriptor(
                language=cls.language,
                capability=cls.capability,
                options=frozenset(cls.OPTIONS),
                factory=cls,
                source_pattern=cls.source_pattern,
            )
        )
        return cls

    def select(self, capability: str, language: str) -> BackendDescriptor:
        try:
            return self._descriptors[(capability, language)]
        except KeyError:
            known = ", ".join(f"{c}/{l}" for c, l in sorted(self._descriptors)) or "none"
            raise ConfigurationError(
                f"No {capability} backend for language '{language}' (available: {known})"
            ) from None

    def create(self, capability: str, language: str, settings: Settings) -> Backend:
        return self.select(capability, language).factory(settings)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._descriptors

    def __iter__(self):
        return iter(sorted(self._descriptors.values(), key=lambda d: (d.capability, d.language)))


def java_tool(settings: Settings, name: str) -> str:
    """Path to a JDK binary under JAVA_HOME; raises if JAVA_HOME is unset."""
    home = Path(settings.require("java_home", "JAVA_HOME"))
    return str(home / "bin" / name)
