"""Projects, namespaces and extension lifecycle composition.

An extension contributes up to three callbacks:

* once   -- first time any project attaches it, receives the Application;
* before -- per project, before the project body runs;
* after  -- per project, after the body, to wire the final dependencies.

Callbacks of one phase run in attachment order. Each extension gets a private
config object per project; the only thing extensions share is the project's
task surface.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Iterable

from .backends import registry as default_registry
from .config import Settings
from .core import SEP, Action, FileTask, Task, TaskGraph, TaskRef
from .errors import BuildError, ConfigurationError, DefinitionError, ExtensionError
from .invoker import CommandInvoker, Shell
from .logging import get_logger
from .utils import canonical

log = get_logger("mason.project")

Body = Callable[["Project"], Any]


class Extension:
    def __init__(self, name: str, config_factory: Callable[["Project"], Any] | None = None):
        self.name = name
        self.config_factory = config_factory
        self.once_callback: Callable[["Application"], Any] | None = None
        self.before_callback: Callable[["Project", Any], Any] | None = None
        self.after_callback: Callable[["Project", Any], Any] | None = None

    def once(self, fn):
        self.once_callback = fn
        return fn

    def before(self, fn):
        self.before_callback = fn
        return fn

    def after(self, fn):
        self.after_callback = fn
        return fn

    def settings(self, project: "Project"):
        """This extension's private config for `project`."""
        try:
            return project._configs[self]
        except KeyError:
            raise ConfigurationError(
                f"Extension {self.name} is not attached to project {project.name}"
            ) from None

    def __repr__(self) -> str:
        return f"<Extension {self.name}>"


class Namespace:
    """A named scope for tasks; `a:b:task` lives in namespace `a:b`."""

    def __init__(self, application: "Application", name: str, parent: "Namespace | None" = None):
        self.application = application
        self.parent = parent
        self.path = parent.qualify(name) if parent is not None and name else name

    @property
    def name(self) -> str:
        return self.path

    @property
    def base_dir(self) -> Path:
        if self.parent is None:
            return self.application.base_dir
        return self.parent.base_dir

    @property
    def project(self) -> "Project | None":
        scope: Namespace | None = self
        while scope is not None and not isinstance(scope, Project):
            scope = scope.parent
        return scope

    def qualify(self, name: str) -> str:
        return f"{self.path}{SEP}{name}" if self.path else name

    def _check_open(self) -> None:
        project = self.project
        if project is not None and project.closed and not self.application.running:
            raise ConfigurationError(
                f"Project {project.name} is already defined; cannot add tasks to it"
            )

    def define_task(
        self,
        cls: type[Task],
        name: str | os.PathLike,
        prerequisites: Iterable[TaskRef] = (),
        action: Action | None = None,
        *,
        override: bool = False,
    ) -> Task:
        self._check_open()
        if issubclass(cls, FileTask):
            key = name
            existing = self.application.tasks.get(canonical(name, self.base_dir))
        else:
            key = self.qualify(str(name))
            existing = self.application.tasks.get(key)
        if override and existing is not None:
            existing.clear()
        return self.application.define_task(cls, key, self, prerequisites, action)

    def task(
        self,
        name: str,
        prerequisites: Iterable[TaskRef] = (),
        action: Action | None = None,
        *,
        override: bool = False,
    ) -> Task:
        return self.define_task(Task, name, prerequisites, action, override=override)

    def file(
        self,
        path: str | os.PathLike,
        prerequisites: Iterable[TaskRef] = (),
        action: Action | None = None,
        *,
        override: bool = False,
    ) -> FileTask:
        return self.define_task(FileTask, path, prerequisites, action, override=override)

    def rule(self, name: str | os.PathLike, prerequisites: Iterable[TaskRef] = (), *, file: bool = False):
        """Decorator declaring a task (or file task) whose action is the function."""

        def deco(fn: Action) -> Action:
            if file:
                self.file(name, prerequisites, fn)
            else:
                self.task(str(name), prerequisites, fn)
            return fn

        return deco

    def namespace(self, name: str) -> "Namespace":
        return Namespace(self.application, name, parent=self)

    def lookup(self, ref: TaskRef) -> Task:
        return self.application.lookup(ref, self)

    def find(self, ref: TaskRef) -> Task | None:
        return self.application.find(ref, self)

    def __enter__(self) -> "Namespace":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.path or '(root)'}>"


class Project(Namespace):
    def __init__(
        self,
        application: "Application",
        name: str,
        parent: "Project | None" = None,
        base_dir: str | os.PathLike | None = None,
        comment: str | None = None,
    ):
        super().__init__(application, name, parent)
        if base_dir is not None:
            self._base_dir = Path(base_dir)
        elif parent is not None:
            self._base_dir = parent.base_dir / name
        else:
            self._base_dir = application.base_dir
        self.comment = comment
        self.extensions: list[Extension] = []
        self._configs: dict[Extension, Any] = {}
        self._phases_done: set[tuple[Extension, str]] = set()
        self.closed = False

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def path_to(self, *parts: str | os.PathLike) -> Path:
        return self._base_dir.joinpath(*[str(p) for p in parts])

    def define(self, name: str, body: Body | None = None, **kwargs):
        """Define a sub-project; usable as a decorator.

        The sub-project runs its whole lifecycle right away, so it only sees
        what this project configured before the call (e.g. compile options).
        """
        return self.application.define(name, body, parent=self, **kwargs)

    @property
    def projects(self) -> list["Project"]:
        prefix = self.path + SEP
        return [
            p
            for key, p in self.application.projects.items()
            if key.startswith(prefix) and SEP not in key[len(prefix):]
        ]


class Application(TaskGraph):
    """Process-wide build state: tasks, projects and attached extensions."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        invoker: CommandInvoker | None = None,
        base_dir: str | os.PathLike | None = None,
        registry=None,
    ):
        super().__init__(settings, invoker=invoker, base_dir=base_dir)
        self.registry = registry if registry is not None else default_registry
        self.root = Namespace(self, "")
        self.projects: dict[str, Project] = {}
        self.extensions: list[Extension] = []
        self.shell = Shell(self.invoker)
        self._once_done: set[Extension] = set()
        self._local_tasks: list[str] = []

    # -- extensions -------------------------------------------------------

    def use(self, *extensions: Extension | str) -> "Application":
        """Attach extensions to every project defined from now on."""
        for ext in extensions:
            if isinstance(ext, str):
                from .extensions import discover_extensions

                available = discover_extensions()
                if ext not in available:
                    raise ConfigurationError(
                        f"Unknown extension '{ext}' (available: {', '.join(sorted(available))})"
                    )
                ext = available[ext]
            if ext not in self.extensions:
                self.extensions.append(ext)
        return self

    def local_task(self, name: str) -> Task:
        """A root task that runs the same-named task of every project."""
        task = self.root.task(name)
        if name not in self._local_tasks:
            self._local_tasks.append(name)
            for project in self.projects.values():
                if project.closed:
                    self._wire_local_task(project, name)
        return task

    def _wire_local_task(self, project: Project, name: str) -> None:
        own = self.tasks.get(project.qualify(name))
        if own is not None:
            self.tasks[name].enhance([own])

    # -- projects ---------------------------------------------------------

    def define(
        self,
        name: str,
        body: Body | None = None,
        *,
        parent: Project | None = None,
        base_dir: str | os.PathLike | None = None,
        extensions: Iterable[Extension] = (),
        comment: str | None = None,
    ):
        """Declare a project and run its lifecycle; usable as a decorator."""
        if body is None:

            def deco(fn: Body) -> Project:
                return self.define(
                    name, fn, parent=parent, base_dir=base_dir, extensions=extensions, comment=comment
                )

            return deco

        if not name or SEP in name:
            raise ConfigurationError(f"Invalid project name: {name!r}")
        project = Project(self, name, parent=parent, base_dir=base_dir, comment=comment)
        if project.name in self.projects:
            raise ConfigurationError(f"Project {project.name} is already defined")
        self.projects[project.name] = project

        attached: list[Extension] = []
        inherited = parent.extensions if parent is not None else self.extensions
        for ext in [*inherited, *extensions]:
            if ext not in attached:
                attached.append(ext)
        try:
            self._evaluate(project, attached, body)
        except Exception:
            self._discard(project)
            raise
        return project

    def project(self, name: str) -> Project:
        try:
            return self.projects[name]
        except KeyError:
            raise ConfigurationError(f"No such project: {name}") from None

    def _discard(self, project: Project) -> None:
        """Forget a project whose definition failed, with its sub-projects and tasks."""
        prefix = project.name + SEP

        def owned(name: str) -> bool:
            return name == project.name or name.startswith(prefix)

        with self._lock:
            for name in [n for n in self.projects if owned(n)]:
                del self.projects[name]
            for key, task in list(self.tasks.items()):
                owner = task.scope.project if isinstance(task.scope, Namespace) else None
                if owner is not None and owned(owner.name):
                    del self.tasks[key]
        log.debug("Discarded project %s", project.name)

    def _evaluate(self, project: Project, extensions: list[Extension], body: Body) -> None:
        log.debug("Defining project %s with %s", project.name, [e.name for e in extensions])
        for ext in extensions:
            project.extensions.append(ext)
            project._configs[ext] = ext.config_factory(project) if ext.config_factory else None

        for ext in extensions:
            if ext not in self._once_done:
                self._once_done.add(ext)
                self._run_callback(ext, "once", ext.once_callback, self)
        for ext in extensions:
            self._run_phase(project, ext, "before", ext.before_callback)
        try:
            body(project)
        except BuildError as error:
            raise error.attach(phase="body")
        except Exception as error:  # noqa: BLE001
            raise DefinitionError(project.name, error, phase="body") from error
        for ext in extensions:
            self._run_phase(project, ext, "after", ext.after_callback)

        project.closed = True
        for name in self._local_tasks:
            self._wire_local_task(project, name)

    def _run_phase(self, project: Project, ext: Extension, phase: str, fn) -> None:
        key = (ext, phase)
        if key in project._phases_done:
            raise ConfigurationError(f"{phase} of {ext.name} already ran for {project.name}")
        project._phases_done.add(key)
        self._run_callback(ext, phase, fn, project, project._configs[ext])

    def _run_callback(self, ext: Extension, phase: str, fn, *args) -> None:
        if fn is None:
            return
        label = f"{phase}:{ext.name}"
        try:
            fn(*args)
        except BuildError as error:
            raise error.attach(phase=label)
        except Exception as error:  # noqa: BLE001
            raise ExtensionError(ext.name, error, phase=label) from error
