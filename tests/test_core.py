from __future__ import annotations

import json
import threading

import allure
import pytest

from mason import (
    ActionFailedError,
    Application,
    DependencyCycleError,
    Settings,
    ToolFailureError,
    UnknownTaskError,
)

pytestmark = [
    allure.epic("Build Engine"),
    allure.feature("Task Graph"),
]


def _recorder():
    calls: list[str] = []
    lock = threading.Lock()

    def action(task):
        with lock:
            calls.append(task.name)

    return calls, action


def test_diamond_dependency_runs_shared_task_once(app: Application) -> None:
    calls, record = _recorder()
    app.root.task("d", action=record)
    app.root.task("b", ["d"], record)
    app.root.task("c", ["d"], record)
    app.root.task("a", ["b", "c"], record)

    report = app.run("a")

    assert calls == ["d", "b", "c", "a"]
    assert report.executed == ["d", "b", "c", "a"]


def test_task_requested_twice_in_one_run_executes_once(app: Application) -> None:
    calls, record = _recorder()
    app.root.task("lib", action=record)
    app.root.task("app", ["lib"], record)

    app.run("lib", "app", "lib")

    assert calls == ["lib", "app"]


def test_each_run_starts_with_a_fresh_memo(app: Application) -> None:
    calls, record = _recorder()
    app.root.task("hello", action=record)

    app.run("hello")
    app.run("hello")

    assert calls == ["hello", "hello"]


def test_cycle_is_reported_with_members_before_any_action(app: Application) -> None:
    calls, record = _recorder()
    app.root.task("A", ["B"], record)
    app.root.task("B", ["A"], record)

    with pytest.raises(DependencyCycleError) as info:
        app.run("A")

    assert info.value.cycle == ["A", "B"]
    assert "A => B => A" in str(info.value)
    assert calls == []


def test_cycle_deep_in_graph_does_not_run_independent_work(app: Application) -> None:
    calls, record = _recorder()
    app.root.task("fine", action=record)
    app.root.task("x", ["y"], record)
    app.root.task("y", ["z"], record)
    app.root.task("z", ["x"], record)
    app.root.task("top", ["fine", "x"], record)

    with pytest.raises(DependencyCycleError) as info:
        app.run("top")

    assert info.value.cycle == ["x", "y", "z"]
    assert calls == []


def test_unknown_prerequisite_fails_before_side_effects(app: Application) -> None:
    calls, record = _recorder()
    app.root.task("ok", action=record)
    app.root.task("top", ["ok", "missing"], record)

    with pytest.raises(UnknownTaskError) as info:
        app.run("top")

    assert info.value.name == "missing"
    assert info.value.task == "top"
    assert calls == []


def test_failure_aborts_dependents_and_keeps_completed_siblings(app: Application) -> None:
    calls, record = _recorder()

    def boom(task):
        raise ValueError("disk full")

    app.root.task("sibling", action=record)
    app.root.task("broken", action=boom)
    app.root.task("top", ["sibling", "broken"], record)

    with pytest.raises(ActionFailedError) as info:
        app.run("top")

    assert info.value.task == "broken"
    assert info.value.phase == "execute"
    assert isinstance(info.value.cause, ValueError)
    assert calls == ["sibling"]


def test_tool_failure_keeps_its_kind_and_gains_task_identity(app: Application) -> None:
    def fail(task):
        raise ToolFailureError("javac", 2)

    app.root.task("compile", action=fail)
    app.root.task("package", ["compile"])

    with pytest.raises(ToolFailureError) as info:
        app.run("package")

    assert info.value.task == "compile"
    assert info.value.exit_code == 2
    assert info.value.kind == "tool-failure"


def test_action_can_add_tasks_to_pending_part_of_graph(app: Application) -> None:
    calls, record = _recorder()

    def discover(task):
        record(task)
        app.root.task("generated", action=record)
        app.lookup("build").enhance(["generated"])

    app.root.task("discover", action=discover)
    app.root.task("build", action=record)
    app.root.task("all", ["discover", "build"], record)

    app.run("all")

    assert calls == ["discover", "generated", "build", "all"]


def test_prerequisite_added_to_running_parent_is_still_visited(app: Application) -> None:
    calls, record = _recorder()

    def first(task):
        record(task)
        app.root.task("late", action=record)
        app.lookup("parent").enhance(["late"])

    app.root.task("first", action=first)
    app.root.task("parent", ["first"], record)

    app.run("parent")

    assert calls == ["first", "late", "parent"]


def test_edge_added_at_run_time_that_closes_a_cycle_is_detected(app: Application) -> None:
    calls, record = _recorder()

    def sneaky(task):
        record(task)
        app.lookup("c").enhance(["a"])

    app.root.task("b", action=sneaky)
    app.root.task("c", action=record)
    app.root.task("a", ["b", "c"], record)

    with pytest.raises(DependencyCycleError) as info:
        app.run("a")

    assert info.value.cycle == ["a", "c"]
    assert calls == ["b"]


def test_depth_guard_stops_runaway_chains(tmp_path) -> None:
    app = Application(Settings(max_depth=5), base_dir=tmp_path)
    for i in range(10):
        app.root.task(f"t{i}", [f"t{i + 1}"] if i < 9 else [])

    with pytest.raises(DependencyCycleError, match="deeper than 5"):
        app.run("t0")


def test_dry_run_marks_tasks_without_running_actions(tmp_path) -> None:
    app = Application(Settings(dry_run=True), base_dir=tmp_path)
    calls, record = _recorder()
    app.root.task("a", action=record)

    report = app.run("a")

    assert calls == []
    assert report.executed == ["a"]


def test_run_state_is_written_when_runs_dir_is_set(tmp_path) -> None:
    runs = tmp_path / "runs"
    app = Application(Settings(runs_dir=runs), base_dir=tmp_path)
    app.root.task("a", action=lambda task: None)

    report = app.run("a")

    state = json.loads((runs / report.run_id / "state.json").read_text(encoding="utf-8"))
    assert state["steps"] == [{"name": "a", "status": "ok"}]


def test_parallel_run_respects_prerequisites_and_dedups(app: Application) -> None:
    calls, record = _recorder()
    app.root.task("d", action=record)
    for name in ("b1", "b2", "b3"):
        app.root.task(name, ["d"], record)
    app.root.task("a", ["b1", "b2", "b3"], record)

    report = app.run("a", jobs=4)

    assert calls[0] == "d"
    assert calls[-1] == "a"
    assert sorted(calls[1:4]) == ["b1", "b2", "b3"]
    assert len(report.executed) == 5


def test_parallel_run_surfaces_failure_and_skips_dependents(app: Application) -> None:
    calls, record = _recorder()

    def boom(task):
        raise RuntimeError("nope")

    app.root.task("bad", action=boom)
    app.root.task("good", action=record)
    app.root.task("top", ["bad", "good"], record)

    with pytest.raises(ActionFailedError) as info:
        app.run("top", jobs=2)

    assert info.value.task == "bad"
    assert "top" not in calls


def test_parallel_run_picks_up_tasks_added_by_actions(app: Application) -> None:
    calls, record = _recorder()

    def discover(task):
        record(task)
        app.root.task("generated", action=record)
        app.lookup("top").enhance(["generated"])

    app.root.task("discover", action=discover)
    app.root.task("top", ["discover"], record)

    app.run("top", jobs=3)

    assert calls == ["discover", "generated", "top"]


def test_redefining_a_task_enhances_it(app: Application) -> None:
    calls, record = _recorder()
    app.root.task("t", action=lambda task: calls.append("first"))
    app.root.task("t", action=lambda task: calls.append("second"))

    app.run("t")

    assert calls == ["first", "second"]
