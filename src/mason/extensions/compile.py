"""The `compile` extension: one compile file task per project.

The backend is picked from the registry by language (`compile.language` in
the build settings, `java` by default). Sub-projects start from the compile
options their parent set before defining them.
"""

from __future__ import annotations

import os
from pathlib import Path

from ..backends import BackendConfig
from ..core import FileTask, Task
from ..logging import get_logger
from ..project import Application, Extension, Project
from ..utils import _get, expand_sources

log = get_logger("mason.extensions.compile")


class SourcesTask(FileTask):
    """File task producing a target directory from a set of source trees.

    Source directories are expanded when the task is checked, so files
    generated earlier in the same run are taken into account. Nothing to do
    when there are no source files at all.
    """

    source_pattern = "*"

    def __init__(self, name, graph, scope=None):
        super().__init__(name, graph, scope)
        self.sources: list[str] = []
        self.dependencies: list[str] = []
        self.excludes: list[str] = []

    def source_files(self) -> list[str]:
        return expand_sources(self.sources, self.source_pattern, self.excludes)

    def needed(self) -> bool:
        files = self.source_files()
        if not files:
            return False
        if super().needed():
            return True
        own = self.timestamp
        try:
            return max(os.stat(f).st_mtime for f in files) > own
        except OSError as error:
            log.warning("Cannot stat sources of %s: %s; rebuilding", self.name, error)
            return True


class CompileTask(SourcesTask):
    """Its `sources` and `dependencies` are what other extensions may build on."""


class CompileConfig:
    def __init__(self, project: Project, language: str):
        self.project = project
        self.select(language)
        self.config.into(project.path_to("target", "classes"))
        default_sources = project.path_to("src", "main", "java")
        if default_sources.exists():
            self.config.include(default_sources)

    def select(self, language: str) -> "CompileConfig":
        """Switch language; options already set must be valid for the new backend."""
        registry = self.project.application.registry
        descriptor = registry.select("compile", language)
        previous: BackendConfig | None = getattr(self, "config", None)
        config = descriptor.new_config()
        if previous is not None:
            config.using(**previous.options)
            config.include(*previous.sources)
            config.with_(*previous.dependencies)
            config.target = previous.target
        self.language = language
        self.descriptor = descriptor
        self.config = config
        return self

    def using(self, *flags, **options) -> "CompileConfig":
        self.config.using(*flags, **options)
        return self

    def from_(self, *sources) -> "CompileConfig":
        self.config.include(*[self.project.path_to(s) for s in sources])
        return self

    def with_(self, *dependencies) -> "CompileConfig":
        self.config.with_(*dependencies)
        return self

    def into(self, target) -> "CompileConfig":
        self.config.into(self.project.path_to(target))
        return self

    @property
    def options(self) -> dict:
        return self.config.options

    @property
    def sources(self) -> list[str]:
        return self.config.sources

    @property
    def target(self) -> str | None:
        return self.config.target


def _new_config(project: Project) -> CompileConfig:
    build = project.application.settings.build
    parent = project.parent
    if isinstance(parent, Project) and compiler in parent.extensions:
        inherited = compiler.settings(parent)
        config = CompileConfig(project, inherited.language)
        config.using(**inherited.options)
        return config
    config = CompileConfig(project, _get(build, "compile", "language", default="java"))
    config.using(**(_get(build, "compile", "options", default={}) or {}))
    return config


compiler = Extension("compile", config_factory=_new_config)


@compiler.once
def _register_local_task(app: Application) -> None:
    app.local_task("compile").comment = "Compile all projects"


@compiler.before
def _declare(project: Project, config: CompileConfig) -> None:
    project.task("compile").comment = f"Compile {project.name}"


@compiler.after
def _wire(project: Project, config: CompileConfig) -> None:
    if not config.sources or config.target is None:
        log.debug("Nothing to compile in %s", project.name)
        return
    app = project.application
    backend = app.registry.create("compile", config.language, app.settings)
    classpath = classpath_entries(project, config.config.dependencies)

    def _compile(task: Task) -> None:
        call = config.config.copy()
        call.dependencies = list(classpath)
        Path(call.target).mkdir(parents=True, exist_ok=True)
        backend.run(call, app.invoker)
        os.utime(call.target)

    prerequisites = [s for s in config.sources if project.find(s) is not None]
    prerequisites += [d for d in config.config.dependencies if project.find(d) is not None]
    # Classpath entries as file prerequisites: a rebuilt dependency makes this target stale
    prerequisites += [e for e in classpath if project.find(e) is not None]
    target = project.define_task(CompileTask, config.target, prerequisites, _compile)
    target.source_pattern = config.descriptor.source_pattern
    target.sources = list(config.sources)
    target.dependencies = list(classpath)
    project.task("compile", [target])


def classpath_entries(project: Project, dependencies) -> list[str]:
    """Paths behind dependency references: files as-is, tasks by their file prerequisites."""
    entries: list[str] = []
    for dep in dependencies:
        task = project.find(dep)
        if isinstance(task, FileTask):
            entries.append(task.name)
        elif task is not None:
            entries += [p.name for p in task.prerequisite_tasks() if isinstance(p, FileTask)]
        else:
            entries.append(str(project.path_to(dep)))
    return entries


def compile_task(project: Project) -> CompileTask | None:
    """The project's compile file task, if the project compiles anything."""
    task = project.application.tasks.get(project.qualify("compile"))
    if task is None:
        return None
    for prereq in task.prerequisite_tasks():
        if isinstance(prereq, CompileTask):
            return prereq
    return None
