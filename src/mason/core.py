from __future__ import annotations

import json
import os
import sys
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Union

from .config import Settings
from .errors import (
    ActionFailedError,
    BuildError,
    ConfigurationError,
    DependencyCycleError,
    StalenessCheckError,
    UnknownTaskError,
)
from .invoker import CommandInvoker
from .logging import get_logger
from .utils import canonical

SEP = ":"

Action = Callable[["Task"], Any]
# A prerequisite is a task, a (namespaced) task name or a filesystem path
TaskRef = Union["Task", str, os.PathLike]

_UNSET = object()


class Task:
    """A named unit of work: ordered actions plus prerequisites."""

    def __init__(self, name: str, graph: "TaskGraph", scope=None):
        self.name = name
        self.graph = graph
        self.scope = scope
        self.prerequisites: list[TaskRef] = []
        self.actions: list[Action] = []
        self.comment: str | None = None

    def enhance(self, prerequisites: Iterable[TaskRef] = (), action: Action | None = None) -> "Task":
        with self.graph._lock:
            for p in prerequisites:
                if p not in self.prerequisites:
                    self.prerequisites.append(p)
            if action is not None:
                self.actions.append(action)
        return self

    def action(self, fn: Action) -> Action:
        """Decorator form of `enhance(action=fn)`."""
        self.enhance(action=fn)
        return fn

    def clear(self) -> "Task":
        with self.graph._lock:
            self.prerequisites.clear()
            self.actions.clear()
        return self

    def prerequisite_tasks(self) -> list["Task"]:
        return [self.graph.lookup(p, self.scope) for p in list(self.prerequisites)]

    def needed(self) -> bool:
        return True

    def reset(self) -> None:
        """Drop anything cached for the current run."""

    def execute(self) -> None:
        for action in list(self.actions):
            action(self)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class FileTask(Task):
    """A task whose name is a canonical path and whose freshness is its mtime.

    The target's mtime is read at most once per run and cached; `reset()`
    returns it to the uncomputed state (start of a run, after the task's own
    actions ran).
    """

    def __init__(self, name: str, graph: "TaskGraph", scope=None):
        super().__init__(name, graph, scope)
        self._timestamp: Any = _UNSET

    @property
    def path(self) -> Path:
        return Path(self.name)

    @property
    def timestamp(self) -> float | None:
        """mtime of the target, None when it does not exist."""
        if self._timestamp is _UNSET:
            try:
                self._timestamp = os.stat(self.name).st_mtime
            except FileNotFoundError:
                self._timestamp = None
            except OSError as error:
                raise StalenessCheckError(self.name, error, task=self.name) from error
        return self._timestamp

    def reset(self) -> None:
        self._timestamp = _UNSET

    def needed(self) -> bool:
        try:
            own = self.timestamp
            if own is None:
                return True
            for prereq in self.prerequisite_tasks():
                if not isinstance(prereq, FileTask):
                    continue
                theirs = prereq.timestamp
                if theirs is None or theirs > own:
                    return True
        except StalenessCheckError as error:
            get_logger("mason.core").warning("%s; rebuilding %s", error.message, self.name)
            return True
        return False


@dataclass
class RunReport:
    run_id: str
    steps: list[dict] = field(default_factory=list)

    def add(self, task: Task, status: str, error: str | None = None) -> None:
        step = {"name": task.name, "status": status}
        if error is not None:
            step["error"] = error
        self.steps.append(step)

    @property
    def executed(self) -> list[str]:
        return [s["name"] for s in self.steps if s["status"] == "ok"]

    @property
    def skipped(self) -> list[str]:
        return [s["name"] for s in self.steps if s["status"] == "skipped"]


class TaskGraph:
    """Task table, reference resolution and the execution engine."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        invoker: CommandInvoker | None = None,
        base_dir: str | os.PathLike | None = None,
    ):
        self.settings = settings or Settings()
        self.invoker = invoker or CommandInvoker(
            trace=self.settings.trace, dry_run=self.settings.dry_run
        )
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.tasks: dict[str, Task] = {}
        self.running = False
        # Guards the task table and every prerequisite list
        self._lock = threading.RLock()
        self.logger = get_logger("mason.core")

    # -- definition -------------------------------------------------------

    def define_task(
        self,
        cls: type[Task],
        name: str | os.PathLike,
        scope=None,
        prerequisites: Iterable[TaskRef] = (),
        action: Action | None = None,
    ) -> Task:
        if issubclass(cls, FileTask):
            key = canonical(name, self._base_dir_of(scope))
        else:
            key = str(name)
        with self._lock:
            task = self.tasks.get(key)
            if task is None:
                task = cls(key, self, scope)
                self.tasks[key] = task
            elif not isinstance(task, cls):
                raise ConfigurationError(
                    f"Task {key} is already defined as {type(task).__name__}, not {cls.__name__}"
                )
            return task.enhance(prerequisites, action)

    # -- lookup -----------------------------------------------------------

    def _base_dir_of(self, scope) -> Path:
        base = getattr(scope, "base_dir", None)
        return Path(base) if base is not None else self.base_dir

    def _scoped_names(self, name: str, scope) -> Iterator[str]:
        prefix = getattr(scope, "path", "") or ""
        segments = prefix.split(SEP) if prefix else []
        for i in range(len(segments), -1, -1):
            yield SEP.join(segments[:i] + [name])

    def lookup(self, ref: TaskRef, scope=None) -> Task:
        """Resolve a task, a namespaced name or a path to a task.

        Names are searched from `scope` outward to the root. Paths are made
        absolute against the scope's base directory; an existing file with no
        task behind it becomes an action-less FileTask.
        """
        if isinstance(ref, Task):
            return ref
        name = os.fspath(ref)
        with self._lock:
            if not isinstance(ref, os.PathLike):
                for candidate in self._scoped_names(name, scope):
                    task = self.tasks.get(candidate)
                    if task is not None:
                        return task
            path = canonical(name, self._base_dir_of(scope))
            task = self.tasks.get(path)
            if task is not None:
                return task
            if os.path.exists(path):
                return self.define_task(FileTask, path)
        raise UnknownTaskError(name)

    def find(self, ref: TaskRef, scope=None) -> Task | None:
        try:
            return self.lookup(ref, scope)
        except UnknownTaskError:
            return None

    # -- resolution -------------------------------------------------------

    def _plan(self, roots: list[Task], done: set[Task]) -> tuple[list[Task], dict[Task, list[Task]]]:
        """Post-order of every task reachable from `roots` and not in `done`.

        Fails on unknown references and on cycles before anything runs.
        """
        order: list[Task] = []
        deps: dict[Task, list[Task]] = {}
        visiting: list[Task] = []

        def visit(task: Task) -> None:
            if task in done or task in deps:
                return
            if task in visiting:
                cycle = visiting[visiting.index(task):]
                raise DependencyCycleError([t.name for t in cycle], task=task.name)
            self._check_depth(visiting)
            visiting.append(task)
            try:
                prereqs = task.prerequisite_tasks()
            except UnknownTaskError as error:
                raise error.attach(task=task.name)
            for prereq in prereqs:
                visit(prereq)
            visiting.pop()
            deps[task] = prereqs
            order.append(task)

        with self._lock:
            for root in roots:
                visit(root)
        return order, deps

    def _check_depth(self, chain: list[Task]) -> None:
        if len(chain) >= self.settings.max_depth:
            names = [t.name for t in chain]
            raise DependencyCycleError(
                names,
                message=f"Dependency chain deeper than {self.settings.max_depth} tasks: "
                + " => ".join(names[:3] + ["..."] + names[-3:]),
                task=names[-1],
            )

    # -- execution --------------------------------------------------------

    def invoke(self, name: TaskRef, **kwargs) -> RunReport:
        return self.run(name, **kwargs)

    def run(
        self,
        *names: TaskRef,
        force: Iterable[TaskRef] = (),
        jobs: int | None = None,
    ) -> RunReport:
        """Run the named tasks and their unmet prerequisites.

        All names share one memo set, so every task runs at most once per call.
        """
        report = RunReport(run_id=time.strftime("%Y%m%d-%H%M%S"))
        jobs = jobs or self.settings.jobs
        roots = [self.lookup(n) for n in names]
        forced = {self.lookup(f) for f in force}
        with self._lock:
            for task in self.tasks.values():
                task.reset()
        self._plan(roots, set())
        self.logger.info("Invoking: %s", ", ".join(t.name for t in roots))

        memo: set[Task] = set()
        self.running = True
        try:
            if jobs > 1:
                self._run_parallel(roots, memo, forced, report, jobs)
            else:
                for root in roots:
                    self._invoke(root, [], memo, forced, report)
        finally:
            self.running = False
            if self.settings.runs_dir is not None:
                _write_state(Path(self.settings.runs_dir) / report.run_id, report)
        return report

    def _invoke(
        self, task: Task, chain: list[Task], memo: set[Task], forced: set[Task], report: RunReport
    ) -> None:
        if task in chain:
            cycle = chain[chain.index(task):]
            raise DependencyCycleError([t.name for t in cycle], task=task.name)
        if task in memo:
            return
        self._check_depth(chain)
        chain.append(task)
        try:
            # Index loop: prerequisites appended by a running action are visited too
            i = 0
            while i < len(task.prerequisites):
                try:
                    prereq = self.lookup(task.prerequisites[i], task.scope)
                except UnknownTaskError as error:
                    raise error.attach(task=task.name)
                self._invoke(prereq, chain, memo, forced, report)
                i += 1
        finally:
            chain.pop()
        self._execute_if_needed(task, forced, report)
        memo.add(task)

    def _run_parallel(
        self, roots: list[Task], memo: set[Task], forced: set[Task], report: RunReport, jobs: int
    ) -> None:
        failure: BuildError | None = None
        running: dict[Future, Task] = {}
        with ThreadPoolExecutor(max_workers=jobs, thread_name_prefix="mason") as pool:
            while True:
                if failure is None:
                    # Re-plan every round so edges added by finished actions count
                    order, deps = self._plan(roots, memo)
                    busy = set(running.values())
                    for task in order:
                        if task not in busy and all(p in memo for p in deps[task]):
                            running[pool.submit(self._execute_if_needed, task, forced, report)] = task
                            busy.add(task)
                if not running:
                    break
                finished, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in finished:
                    task = running.pop(future)
                    try:
                        future.result()
                    except BuildError as error:
                        failure = failure or error
                    else:
                        memo.add(task)
        if failure is not None:
            raise failure

    def _execute_if_needed(self, task: Task, forced: set[Task], report: RunReport) -> None:
        step_logger = get_logger(f"mason.task.{task.name}")
        if task not in forced and not task.needed():
            step_logger.debug("Skip (up to date): %s", task.name)
            report.add(task, "skipped")
            return
        if self.settings.dry_run:
            step_logger.info("Run (dry run): %s", task.name)
            report.add(task, "ok")
            return
        step_logger.info("Run: %s", task.name)
        try:
            task.execute()
        except BuildError as error:
            step_logger.exception("Step failed (%s)", task.name)
            report.add(task, "error", str(error))
            raise error.attach(task=task.name, phase="execute")
        except Exception as error:  # noqa: BLE001
            step_logger.exception("Step failed (%s)", task.name)
            report.add(task, "error", str(error))
            raise ActionFailedError(error, task=task.name, phase="execute") from error
        finally:
            task.reset()
        report.add(task, "ok")


def _write_state(run_dir: Path, report: RunReport) -> None:
    os.makedirs(run_dir, exist_ok=True)
    state = {"run_id": report.run_id, "steps": report.steps, "python": sys.version}
    with open(run_dir / "state.json", "w", encoding="utf-8") as f:
        json.dump(state, f, indent=2)
