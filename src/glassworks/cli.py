"""Typer-based CLI for glassworks."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from loguru import logger
from rich.console import Console

from .config import Config, default_config, load_config, save_config
from .errors import ConfigError, GlassworksError, StepFailure, UnknownTask
from .models import TaskReport
from .orchestrator import Orchestrator
from .reporting import task_table, timing_table

app = typer.Typer(help="Lint, concatenate, minify, test and serve a browser JavaScript library.")
console = Console()


def _console_sink(message: str) -> None:
    # tool output may contain square brackets
    console.print(message, end="", markup=False, highlight=False)


def _configure_logging(level: str, log_file: Path | None) -> None:
    logger.remove()
    logger.add(_console_sink, level=level, format="{time:HH:mm:ss} | {level: <7} | {message}")
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_file, level=level)


def _load(config_path: Path) -> Config:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(code=exc.exit_code)


def _execute(orchestrator: Orchestrator, run) -> TaskReport:
    try:
        return run()
    except StepFailure as failure:
        console.print(timing_table(failure.report))
        console.print(f"[red]STEP FAILED:[/red] {failure.step}")
        console.print(f"[red]{failure.cause.message}[/red]")
        if failure.output:
            console.print(failure.output.rstrip(), markup=False, highlight=False)
        console.print(f"Aborted with exit code {failure.exit_code}.")
        raise typer.Exit(code=failure.exit_code)
    except UnknownTask as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(code=exc.exit_code)
    except GlassworksError as exc:
        console.print(f"[red]Error:[/red] {exc.message}")
        raise typer.Exit(code=exc.exit_code)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow]")
        raise typer.Exit(code=130)
    finally:
        orchestrator.close()


def _orchestrator(config_path: Path, root: Optional[Path]) -> Orchestrator:
    config = _load(config_path)
    project_root = root or config_path.resolve().parent
    try:
        return Orchestrator(config, project_root, config_path=config_path)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(code=exc.exit_code)


@app.command()
def run(
    task: str = typer.Argument("default", help="Task name (default, build, demo, serve, test)"),
    config: Path = typer.Option(Path("glassworks.yml"), "--config", help="Path to configuration YAML"),
    root: Optional[Path] = typer.Option(None, "--root", help="Project root (defaults to the config folder)"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write the log to this file"),
) -> None:
    """Run a task and exit with the failing step's exit code."""

    _configure_logging(log_level.upper(), log_file)
    orchestrator = _orchestrator(config, root)
    report = _execute(orchestrator, lambda: orchestrator.run_task(task))
    console.print(timing_table(report))
    console.print("[green]Done, without errors.[/green]")


@app.command()
def step(
    steps: List[str] = typer.Argument(..., help="Step identifiers, e.g. concat lint:pre minify"),
    config: Path = typer.Option(Path("glassworks.yml"), "--config"),
    root: Optional[Path] = typer.Option(None, "--root"),
    tolerate_lint: bool = typer.Option(False, "--tolerate-lint/--no-tolerate-lint", help="Continue past lint violations"),
    log_level: str = typer.Option("INFO", "--log-level"),
) -> None:
    """Run individual steps in order."""

    _configure_logging(log_level.upper(), None)
    orchestrator = _orchestrator(config, root)
    report = _execute(orchestrator, lambda: orchestrator.run_steps(steps, tolerate_lint=tolerate_lint))
    console.print(timing_table(report))
    console.print("[green]Done, without errors.[/green]")


@app.command("tasks")
def list_tasks(config: Path = typer.Option(Path("glassworks.yml"), "--config")) -> None:
    """List configured tasks and their steps."""

    console.print(task_table(_load(config)))


@app.command("init-config")
def init_config(path: Path = typer.Argument(Path("glassworks.yml"), writable=True, resolve_path=True)) -> None:
    """Write the default configuration file to PATH."""

    save_config(default_config(), path)
    console.print(f"[green]Wrote configuration to {path}[/green]")


if __name__ == "__main__":
    app()
