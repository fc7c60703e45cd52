"""Task-graph build tool with pluggable extensions and build backends.

Provides Task/FileTask primitives with mtime-based incremental execution,
projects whose lifecycle extensions hook into, a backend registry that turns
build configuration into tool invocations, and a Typer CLI.
"""

from .config import Settings
from .core import FileTask, RunReport, Task, TaskGraph
from .errors import (
    ActionFailedError,
    BuildError,
    ConfigurationError,
    DefinitionError,
    DependencyCycleError,
    ExtensionError,
    StalenessCheckError,
    ToolFailureError,
    ToolNotFoundError,
    UnknownTaskError,
)
from .invoker import CommandInvoker, CommandResolver, Invocation, NOT_A_COMMAND, Shell
from .project import Application, Extension, Namespace, Project

__all__ = [
    "ActionFailedError",
    "Application",
    "BuildError",
    "CommandInvoker",
    "CommandResolver",
    "ConfigurationError",
    "DefinitionError",
    "DependencyCycleError",
    "Extension",
    "ExtensionError",
    "FileTask",
    "Invocation",
    "NOT_A_COMMAND",
    "Namespace",
    "Project",
    "RunReport",
    "Settings",
    "Shell",
    "StalenessCheckError",
    "Task",
    "TaskGraph",
    "ToolFailureError",
    "ToolNotFoundError",
    "UnknownTaskError",
]
