"""Java compiler backend (`compile` capability, `java` language)."""

from __future__ import annotations

import os

from ..config import Settings
from ..utils import expand_sources
from .base import Backend, BackendConfig, flag, java_tool, joined, path_list
from .registry import registry


@registry.register
class Javac(Backend):
    language = "java"
    capability = "compile"
    tool = "javac"
    source_pattern = "*.java"
    OPTIONS = ("warnings", "debug", "deprecation", "source", "target", "lint", "other")

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self._javac = java_tool(settings, "javac")

    def executable(self) -> str:
        return self._javac

    def defaults(self) -> dict:
        return {
            "warnings": self.settings.trace,
            "debug": self.settings.debug,
            "deprecation": False,
            "lint": False,
        }

    def arguments(self, config: BackendConfig) -> list[str]:
        options = {**self.defaults(), **config.options}
        args = self.option_arguments(options)
        args += path_list("-sourcepath", [s for s in config.sources if os.path.isdir(s)])
        args += path_list("-classpath", config.dependencies)
        if config.target:
            args += ["-d", config.target]
        args += expand_sources(config.sources, self.source_pattern)
        return args

    def option_arguments(self, options: dict) -> list[str]:
        args = flag("-nowarn", not options.get("warnings"))
        args += flag("-verbose", self.settings.trace)
        args += flag("-g", options.get("debug"))
        args += flag("-deprecation", options.get("deprecation"))
        for key in ("source", "target"):
            if options.get(key):
                args += [f"-{key}", str(options[key])]
        lint = options.get("lint")
        if isinstance(lint, (list, tuple)):
            args.append(joined("-Xlint:", lint))
        elif isinstance(lint, str):
            args.append(f"-Xlint:{lint}")
        elif lint is True:
            args.append("-Xlint")
        other = options.get("other")
        if isinstance(other, dict):
            for name in sorted(other):
                args += [f"-{name}", str(other[name])]
        elif other:
            args += [str(o) for o in ([other] if isinstance(other, str) else other)]
        return args
