from __future__ import annotations

import importlib.util
from pathlib import Path
from typing import List

import typer

from .config import Settings
from .core import FileTask
from .errors import BuildError
from .extensions import discover_extensions
from .logging import get_logger, set_level
from .project import Application


app = typer.Typer(add_completion=False, help="Task-graph build tool CLI")
log = get_logger("mason.cli")


def load_buildfile(path: str | Path, settings: Settings) -> Application:
    """Execute a buildfile and hand its `configure(app)` a fresh Application."""
    p = Path(path)
    if not p.exists():
        raise BuildError(f"Buildfile not found: {p}")
    spec = importlib.util.spec_from_file_location("mason_buildfile", p)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    configure = getattr(module, "configure", None)
    if not callable(configure):
        raise BuildError(f"{p} does not define configure(app)")
    application = Application(settings, base_dir=p.resolve().parent)
    configure(application)
    return application


def _settings(config: str, trace: bool = False, dry_run: bool = False) -> Settings:
    config_path = Path(config) if config else None
    settings = Settings.from_env(config_path if config_path and config_path.exists() else None)
    settings.trace = settings.trace or trace
    settings.dry_run = settings.dry_run or dry_run
    set_level("DEBUG" if settings.trace else settings.log_level)
    return settings


@app.command("list")
def list_tasks(
    buildfile: str = typer.Option("buildfile.py", help="Path to the buildfile"),
    config: str = typer.Option("build.yaml", help="Path to YAML build settings"),
):
    """List tasks defined by the buildfile."""
    try:
        application = load_buildfile(buildfile, _settings(config))
    except BuildError as e:
        log.error("%s", e)
        raise typer.Exit(code=1)
    names = sorted(n for n, t in application.tasks.items() if not isinstance(t, FileTask))
    if not names:
        typer.echo("No tasks defined.")
        raise typer.Exit(code=0)
    for name in names:
        comment = application.tasks[name].comment
        typer.echo(f"- {name}" + (f"  # {comment}" if comment else ""))


@app.command("extensions")
def list_extensions():
    """List built-in extensions that a buildfile can `use()` by name."""
    for name in sorted(discover_extensions()):
        typer.echo(f"- {name}")


@app.command("run")
def run_tasks(
    tasks: List[str] = typer.Argument(..., help="Task names or file paths to run"),
    buildfile: str = typer.Option("buildfile.py", help="Path to the buildfile"),
    config: str = typer.Option("build.yaml", help="Path to YAML build settings"),
    jobs: int = typer.Option(0, help="Parallel workers (0 = MASON_JOBS or 1)"),
    force: str = typer.Option("", help="Comma-separated tasks to run even if up to date"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would run"),
    trace: bool = typer.Option(False, "--trace", help="Echo tool command lines"),
):
    """Run tasks and whatever they depend on."""
    try:
        settings = _settings(config, trace=trace, dry_run=dry_run)
        application = load_buildfile(buildfile, settings)
        force_set = [x.strip() for x in force.split(",") if x.strip()]
        report = application.run(*tasks, force=force_set, jobs=jobs or None)
    except BuildError as e:
        log.error("%s [%s]", e, e.kind)
        raise typer.Exit(code=1)
    typer.echo(
        f"Done: {len(report.executed)} ran, {len(report.skipped)} up to date (run {report.run_id})"
    )


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
