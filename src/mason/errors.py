"""Error taxonomy shared by the engine, the lifecycle and the backends."""

from __future__ import annotations

from typing import Sequence


class BuildError(Exception):
    """Base error carrying the task and lifecycle phase it surfaced from."""

    kind = "build"

    def __init__(self, message: str, *, task: str | None = None, phase: str | None = None):
        super().__init__(message)
        self.message = message
        self.task = task
        self.phase = phase

    def attach(self, task: str | None = None, phase: str | None = None) -> "BuildError":
        """Fill in context that is still unknown; the innermost value wins."""
        if self.task is None and task is not None:
            self.task = task
        if self.phase is None and phase is not None:
            self.phase = phase
        return self

    def __str__(self) -> str:
        context = []
        if self.task:
            context.append(f"task {self.task}")
        if self.phase:
            context.append(f"phase {self.phase}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ConfigurationError(BuildError):
    kind = "configuration"


class UnknownTaskError(ConfigurationError):
    """A prerequisite or requested name matches no task and no file."""

    def __init__(self, name: str, **kwargs):
        super().__init__(f"Don't know how to build task '{name}'", **kwargs)
        self.name = name


class DependencyCycleError(BuildError):
    kind = "cycle"

    def __init__(self, cycle: Sequence[str], message: str | None = None, **kwargs):
        self.cycle = list(cycle)
        if message is None:
            chain = " => ".join(self.cycle + self.cycle[:1])
            message = f"Circular dependency detected: {chain}"
        super().__init__(message, **kwargs)


class ToolNotFoundError(BuildError):
    kind = "tool-not-found"

    def __init__(self, tool: str, **kwargs):
        super().__init__(f"Command not found: {tool}", **kwargs)
        self.tool = tool


class ToolFailureError(BuildError):
    kind = "tool-failure"

    def __init__(self, tool: str, exit_code: int | None, *, timed_out: bool = False, **kwargs):
        if timed_out:
            message = f"{tool} timed out"
        else:
            message = f"{tool} failed with exit code {exit_code}"
        super().__init__(message, **kwargs)
        self.tool = tool
        self.exit_code = exit_code
        self.timed_out = timed_out


class StalenessCheckError(BuildError):
    kind = "staleness"

    def __init__(self, path: str, cause: OSError, **kwargs):
        super().__init__(f"Cannot stat {path}: {cause}", **kwargs)
        self.path = path
        self.cause = cause


class ActionFailedError(BuildError):
    """Wraps an arbitrary exception raised by a task action."""

    kind = "action"

    def __init__(self, cause: BaseException, **kwargs):
        super().__init__(f"{type(cause).__name__}: {cause}", **kwargs)
        self.cause = cause


class ExtensionError(BuildError):
    """Wraps an arbitrary exception raised by a lifecycle callback."""

    kind = "extension"

    def __init__(self, extension: str, cause: BaseException, **kwargs):
        super().__init__(f"Extension {extension} failed: {type(cause).__name__}: {cause}", **kwargs)
        self.extension = extension
        self.cause = cause


class DefinitionError(BuildError):
    """Wraps an arbitrary exception raised by a project body."""

    kind = "definition"

    def __init__(self, project: str, cause: BaseException, **kwargs):
        super().__init__(f"Defining {project} failed: {type(cause).__name__}: {cause}", **kwargs)
        self.project = project
        self.cause = cause
