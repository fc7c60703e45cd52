"""Launch external tools and foreign calls, relaying their output live.

`CommandInvoker.run` takes an explicit argument vector and never goes through a
shell. `run_shell` is the legacy path for pre-built command lines and is kept
separate so call sites show which one they rely on.
"""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Sequence

from .errors import ActionFailedError, BuildError, ToolFailureError, ToolNotFoundError
from .logging import get_logger

log = get_logger("mason.invoker")

# POSIX shells report an unknown command with this status
_SHELL_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    exit_code: int


@dataclass(frozen=True)
class Invocation:
    """A concrete tool call produced by a backend.

    With `call` unset the argument vector is run as a subprocess, `argv[0]`
    being the executable. With `call` set, `call(argv)` runs in-process and
    returns an exit code; `argv` then holds the arguments only.
    """

    tool: str
    argv: tuple[str, ...]
    call: Callable[[list[str]], int] | None = None
    cwd: Path | None = None


class CommandInvoker:
    def __init__(self, *, trace: bool = False, dry_run: bool = False):
        self.trace = trace
        self.dry_run = dry_run

    def _announce(self, line: str) -> None:
        if self.trace:
            log.info("%s", line)
        else:
            log.debug("%s", line)

    def run(
        self,
        argv: Sequence[str | os.PathLike],
        *,
        cwd: str | os.PathLike | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        args = [str(a) for a in argv]
        if not args:
            raise ToolNotFoundError("<empty command>")
        tool = args[0]
        self._announce(shlex.join(args))
        if self.dry_run:
            return CommandResult(tuple(args), 0)
        try:
            # stdout/stderr are inherited so progress shows up as it happens
            completed = subprocess.run(  # noqa: S603
                args,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                timeout=timeout,
                check=False,
            )
        except (FileNotFoundError, PermissionError) as error:
            raise ToolNotFoundError(tool) from error
        except subprocess.TimeoutExpired as error:
            raise ToolFailureError(tool, None, timed_out=True) from error
        if completed.returncode != 0:
            raise ToolFailureError(tool, completed.returncode)
        return CommandResult(tuple(args), 0)

    def run_shell(
        self,
        command_line: str,
        *,
        cwd: str | os.PathLike | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a pre-built shell command line (legacy mode)."""
        stripped = command_line.strip()
        if not stripped:
            raise ToolNotFoundError("<empty command>")
        tool = stripped.split(maxsplit=1)[0]
        self._announce(stripped)
        if self.dry_run:
            return CommandResult((stripped,), 0)
        try:
            completed = subprocess.run(  # noqa: S602
                stripped,
                shell=True,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as error:
            raise ToolFailureError(tool, None, timed_out=True) from error
        if completed.returncode == _SHELL_NOT_FOUND:
            raise ToolNotFoundError(tool)
        if completed.returncode != 0:
            raise ToolFailureError(tool, completed.returncode)
        return CommandResult((stripped,), 0)

    def call(self, fn: Callable[[list[str]], int], argv: Sequence[str], *, tool: str) -> CommandResult:
        """Run an in-process tool entry point that returns an exit code."""
        args = [str(a) for a in argv]
        self._announce(shlex.join([tool, *args]))
        if self.dry_run:
            return CommandResult(tuple(args), 0)
        try:
            code = fn(args)
        except BuildError:
            raise
        except Exception as error:  # noqa: BLE001
            raise ActionFailedError(error) from error
        code = 0 if code is None else int(code)
        if code != 0:
            raise ToolFailureError(tool, code)
        return CommandResult(tuple(args), code)

    def execute(self, invocation: Invocation) -> CommandResult:
        if invocation.call is not None:
            return self.call(invocation.call, invocation.argv, tool=invocation.tool)
        return self.run(invocation.argv, cwd=invocation.cwd)


@dataclass(frozen=True)
class Command:
    name: str
    path: str


class _NotACommand:
    def __repr__(self) -> str:
        return "NOT_A_COMMAND"

    def __bool__(self) -> bool:
        return False


NOT_A_COMMAND = _NotACommand()


class CommandResolver:
    """Map a bare name to an executable on PATH."""

    # Changing directory in a child process has no effect on the build
    NEVER_COMMANDS = frozenset({"cd"})

    def __init__(self, path: str | None = None):
        self.path = path

    def resolve(self, name: str) -> Command | _NotACommand:
        if name.startswith("_") or name.lower() in self.NEVER_COMMANDS:
            return NOT_A_COMMAND
        found = shutil.which(name, path=self.path)
        if found is None:
            return NOT_A_COMMAND
        return Command(name=name, path=found)


class Shell:
    """Expose PATH executables as attributes: `sh.ls("-l", path)`.

    `__getattr__` only runs after normal attribute lookup failed, so the
    resolver is consulted last and never shadows real attributes.
    """

    def __init__(self, invoker: CommandInvoker, resolver: CommandResolver | None = None):
        self.invoker = invoker
        self.resolver = resolver or CommandResolver()

    def __getattr__(self, name: str):
        command = self.resolver.resolve(name)
        if command is NOT_A_COMMAND:
            raise AttributeError(f"{name!r} is not an attribute or a command on PATH")

        def _run(*args, **kwargs) -> CommandResult:
            return self.invoker.run([command.path, *args], **kwargs)

        _run.__name__ = name
        return _run
