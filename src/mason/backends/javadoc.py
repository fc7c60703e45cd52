"""Javadoc backend (`document` capability, `java` language)."""

from __future__ import annotations

import os

from ..config import Settings
from ..utils import expand_sources
from .base import Backend, BackendConfig, java_tool, mapping, path_list, repeated
from .registry import registry


@registry.register
class Javadoc(Backend):
    language = "java"
    capability = "document"
    tool = "javadoc"
    source_pattern = "*.java"
    OPTIONS = (
        "author",
        "bottom",
        "charset",
        "docencoding",
        "doctitle",
        "encoding",
        "exclude",
        "footer",
        "group",
        "header",
        "link",
        "linkoffline",
        "locale",
        "overview",
        "package",
        "private",
        "protected",
        "public",
        "splitindex",
        "subpackages",
        "tag",
        "use",
        "version",
        "windowtitle",
    )

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self._javadoc = java_tool(settings, "javadoc")

    def executable(self) -> str:
        return self._javadoc

    def arguments(self, config: BackendConfig) -> list[str]:
        args = ["-d", config.target or "."]
        args.append("-verbose" if self.settings.trace else "-quiet")
        for key in sorted(config.options):
            value = config.options[key]
            if value is True or value is None:
                args.append(f"-{key}")
            elif value is False:
                args.append(f"-no{key}")
            elif isinstance(value, dict):
                args += mapping(f"-{key}", value)
            elif isinstance(value, (list, tuple)):
                args += repeated(f"-{key}", value)
            else:
                args += [f"-{key}", str(value)]
        args += path_list("-sourcepath", [s for s in config.sources if os.path.isdir(s)])
        args += path_list("-classpath", config.dependencies)
        args += expand_sources(config.sources, self.source_pattern)
        return args
