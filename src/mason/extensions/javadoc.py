"""The `javadoc` extension: API documentation for each project.

    app.use("compile", "javadoc")

    @app.define("myapp", comment="My App")
    def myapp(project):
        javadoc.settings(project).using(windowtitle="My App").exclude("**/internal/*")

By default the documentation covers what the project compiles and lands in
`target/javadoc`. `from_()` adds more files, directories or whole projects.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from ..core import Task
from ..errors import ConfigurationError
from ..logging import get_logger
from ..project import Application, Extension, Project
from ..utils import _get
from .compile import SourcesTask, classpath_entries, compile_task

log = get_logger("mason.extensions.javadoc")


class DocTask(SourcesTask):
    """File task on the documentation directory."""


class DocConfig:
    def __init__(self, project: Project):
        self.project = project
        descriptor = project.application.registry.select("document", "java")
        self.source_pattern = descriptor.source_pattern
        self.config = descriptor.new_config()
        self.config.into(project.path_to("target", "javadoc"))
        self.excludes: list[str] = []
        self.projects: list[Project] = []

    def using(self, *flags, **options) -> "DocConfig":
        self.config.using(*flags, **options)
        return self

    def include(self, *files) -> "DocConfig":
        self.config.include(*[self.project.path_to(f) for f in files])
        return self

    def exclude(self, *patterns) -> "DocConfig":
        self.excludes += [str(p) for p in patterns]
        return self

    def with_(self, *dependencies) -> "DocConfig":
        self.config.with_(*dependencies)
        return self

    def into(self, target) -> "DocConfig":
        self.config.into(self.project.path_to(target))
        return self

    def from_(self, *sources) -> "DocConfig":
        """Document files, directories and (once they are defined) projects."""
        for source in sources:
            if isinstance(source, Project):
                if source not in self.projects:
                    self.projects.append(source)
            elif isinstance(source, (str, os.PathLike)):
                self.include(source)
            else:
                raise ConfigurationError(f"Don't know how to generate Javadocs from {source!r}")
        return self

    @property
    def target(self) -> str | None:
        return self.config.target


def _new_config(project: Project) -> DocConfig:
    config = DocConfig(project)
    defaults = _get(project.application.settings.build, "javadoc", default={}) or {}
    config.using(windowtitle=project.comment or project.name)
    config.using(**defaults)
    return config


javadoc = Extension("javadoc", config_factory=_new_config)


@javadoc.once
def _register_local_task(app: Application) -> None:
    app.local_task("javadoc").comment = "Create the Javadocs for all projects"


@javadoc.before
def _declare(project: Project, config: DocConfig) -> None:
    project.task("javadoc").comment = f"Create the Javadocs for {project.name}"


@javadoc.after
def _wire(project: Project, config: DocConfig) -> None:
    prerequisites: list = []
    for source in [project, *config.projects]:
        compiled = compile_task(source)
        if compiled is None:
            continue
        config.config.include(*compiled.sources)
        config.config.with_(*compiled.dependencies)
        prerequisites += compiled.prerequisite_tasks()
    if not config.config.sources:
        log.debug("No sources to document in %s", project.name)
        return

    app = project.application
    backend = app.registry.create("document", "java", app.settings)
    classpath = classpath_entries(project, config.config.dependencies)

    def _generate(task: Task) -> None:
        call = config.config.copy()
        call.sources = task.source_files()
        call.dependencies = list(classpath)
        shutil.rmtree(call.target, ignore_errors=True)
        Path(call.target).mkdir(parents=True, exist_ok=True)
        log.info("Generating Javadoc for %s", project.name)
        backend.run(call, app.invoker)
        os.utime(call.target)

    prerequisites += [s for s in config.config.sources if project.find(s) is not None]
    prerequisites += [d for d in config.config.dependencies if project.find(d) is not None]
    prerequisites += [e for e in classpath if project.find(e) is not None]
    target = project.define_task(DocTask, config.target, prerequisites, _generate)
    target.source_pattern = config.source_pattern
    target.sources = list(config.config.sources)
    target.dependencies = list(classpath)
    target.excludes = list(config.excludes)
    project.task("javadoc", [target])
