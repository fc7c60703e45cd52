from __future__ import annotations

import os
from pathlib import Path

import allure
import pytest

from mason import Application, ConfigurationError, Settings
from mason.extensions import discover_extensions
from mason.extensions.compile import CompileTask, compile_task, compiler
from mason.extensions.javadoc import javadoc

pytestmark = [
    allure.epic("Extensions"),
    allure.feature("Java"),
]


def _java_sources(base: Path, clock, *classes: str) -> Path:
    src = base / "src" / "main" / "java"
    for name in classes:
        clock.touch(src / f"{name}.java", f"class {Path(name).name} {{}}\n")
    clock.touch(src)
    return src


def _calls(log_file: Path) -> list[str]:
    if not log_file.exists():
        return []
    return log_file.read_text(encoding="utf-8").splitlines()


def test_builtin_extensions_are_discovered() -> None:
    found = discover_extensions()

    assert found["compile"] is compiler
    assert found["javadoc"] is javadoc


def test_compile_runs_javac_once_until_sources_change(app: Application, fake_jdk: Path, clock, tmp_path: Path) -> None:
    src = _java_sources(tmp_path, clock, "com/example/App", "com/example/Util")
    app.use(compiler)

    @app.define("myapp")
    def myapp(project):
        compiler.settings(project).using(lint=["unchecked"]).with_("lib/dep.jar")

    app.run("compile")

    target = tmp_path / "target" / "classes"
    [line] = _calls(fake_jdk)
    assert line.startswith("javac -nowarn -g -Xlint:unchecked")
    assert f"-sourcepath {src}" in line
    assert f"-classpath {tmp_path / 'lib' / 'dep.jar'}" in line
    assert f"-d {target}" in line
    assert line.endswith(f"{src / 'com/example/App.java'} {src / 'com/example/Util.java'}")
    assert target.is_dir()

    app.run("compile")
    assert len(_calls(fake_jdk)) == 1

    newer = os.stat(target).st_mtime + 10
    os.utime(src / "com/example/App.java", (newer, newer))
    app.run("myapp:compile")
    assert len(_calls(fake_jdk)) == 2


def test_compile_task_exposes_sources_and_dependencies(app: Application, fake_jdk: Path, clock, tmp_path: Path) -> None:
    _java_sources(tmp_path, clock, "A")
    app.use(compiler)

    project = app.define("p", lambda p: compiler.settings(p).with_("lib/x.jar"))

    task = compile_task(project)
    assert isinstance(task, CompileTask)
    assert task.sources == [str(tmp_path / "src" / "main" / "java")]
    assert task.dependencies == [str(tmp_path / "lib" / "x.jar")]
    assert task.name == str(tmp_path / "target" / "classes")


def test_project_without_sources_compiles_nothing(app: Application, fake_jdk: Path) -> None:
    app.use(compiler)
    project = app.define("empty", lambda p: None)

    app.run("compile")

    assert compile_task(project) is None
    assert _calls(fake_jdk) == []


def test_build_settings_supply_default_options(app: Application, settings: Settings, fake_jdk: Path, clock, tmp_path: Path) -> None:
    settings.build = {"compile": {"options": {"deprecation": True}}, "javadoc": {"author": True}}
    _java_sources(tmp_path, clock, "A")
    app.use(compiler, javadoc)

    project = app.define("p", lambda p: None)

    assert compiler.settings(project).options == {"deprecation": True}
    assert javadoc.settings(project).config.options == {"windowtitle": "p", "author": True}


def test_unknown_build_option_fails_while_configuring(app: Application, settings: Settings) -> None:
    settings.build = {"compile": {"options": {"optimise": True}}}
    app.use(compiler)

    with pytest.raises(ConfigurationError, match="Unrecognized options: optimise"):
        app.define("p", lambda p: None)


def test_missing_java_home_fails_while_configuring(tmp_path: Path, clock) -> None:
    _java_sources(tmp_path, clock, "A")
    app = Application(Settings(java_home=None), base_dir=tmp_path)
    app.use(compiler)

    with pytest.raises(ConfigurationError, match="JAVA_HOME") as info:
        app.define("p", lambda p: None)

    assert info.value.phase == "after:compile"


def test_subproject_starts_from_parent_options(app: Application, tmp_path: Path) -> None:
    app.use(compiler)

    @app.define("parent")
    def parent(project):
        compiler.settings(project).using(source="11", target="11")
        project.define("child", lambda sub: compiler.settings(sub).using(debug=False))

    child = app.project("parent:child")
    assert compiler.settings(child).options == {"source": "11", "target": "11", "debug": False}
    assert compiler.settings(app.project("parent")).options == {"source": "11", "target": "11"}
    assert compiler.settings(child).target == str(tmp_path / "parent" / "child" / "target" / "classes")


def test_javadoc_documents_compiled_sources(app: Application, fake_jdk: Path, clock, tmp_path: Path) -> None:
    src = _java_sources(tmp_path, clock, "com/example/App", "com/example/internal/Hidden")
    app.use("compile", "javadoc")

    @app.define("myapp", comment="My App")
    def myapp(project):
        javadoc.settings(project).using(link=["https://docs.example"]).exclude("*/internal/*")

    app.run("javadoc")

    docs = tmp_path / "target" / "javadoc"
    [line] = _calls(fake_jdk)
    assert line.startswith(f"javadoc -d {docs} -quiet -link https://docs.example -windowtitle My App")
    assert line.endswith(str(src / "com/example/App.java"))
    assert "Hidden" not in line
    assert docs.is_dir()

    app.run("javadoc")
    assert len(_calls(fake_jdk)) == 1


def test_javadoc_from_rejects_unknown_sources(app: Application) -> None:
    app.use(javadoc)

    with pytest.raises(ConfigurationError, match="Don't know how to generate Javadocs") as info:
        app.define("p", lambda p: javadoc.settings(p).from_(42))

    assert info.value.phase == "body"


def test_javadoc_from_other_project(app: Application, fake_jdk: Path, clock, tmp_path: Path) -> None:
    lib_src = _java_sources(tmp_path / "lib", clock, "Lib")
    app.use(compiler, javadoc)

    lib = app.define("lib", lambda p: None, base_dir=tmp_path / "lib")
    app.define("site", lambda p: javadoc.settings(p).from_(lib), base_dir=tmp_path / "site")

    app.run("site:javadoc")

    [line] = _calls(fake_jdk)
    assert line.startswith(f"javadoc -d {tmp_path / 'site' / 'target' / 'javadoc'}")
    assert line.endswith(str(lib_src / "Lib.java"))


def test_rebuilt_dependency_project_makes_dependent_stale(app: Application, fake_jdk: Path, clock, tmp_path: Path) -> None:
    lib_src = _java_sources(tmp_path / "lib", clock, "Lib")
    _java_sources(tmp_path / "app", clock, "Main")
    app.use(compiler)
    app.define("lib", lambda p: None, base_dir=tmp_path / "lib")
    app.define("app", lambda p: compiler.settings(p).with_("lib:compile"), base_dir=tmp_path / "app")

    report = app.run("app:compile")

    lib_classes = tmp_path / "lib" / "target" / "classes"
    app_classes = tmp_path / "app" / "target" / "classes"
    assert report.executed.index(str(lib_classes)) < report.executed.index(str(app_classes))
    assert len(_calls(fake_jdk)) == 2
    assert f"-classpath {lib_classes}" in _calls(fake_jdk)[1]

    for classes in (lib_classes, app_classes):
        os.utime(classes, (2_000_000, 2_000_000))
    os.utime(lib_src / "Lib.java", (2_000_010, 2_000_010))

    report = app.run("app:compile")

    assert str(lib_classes) in report.executed
    assert str(app_classes) in report.executed
    assert len(_calls(fake_jdk)) == 4

    report = app.run("app:compile")
    assert str(app_classes) in report.skipped
    assert len(_calls(fake_jdk)) == 4


def test_subproject_inherits_only_options_set_before_it(app: Application) -> None:
    app.use(compiler)

    @app.define("parent")
    def parent(project):
        compiler.settings(project).using(source="11")
        project.define("child", lambda sub: None)
        compiler.settings(project).using(target="11")

    assert compiler.settings(app.project("parent:child")).options == {"source": "11"}
    assert compiler.settings(app.project("parent")).options == {"source": "11", "target": "11"}
