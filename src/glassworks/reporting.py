"""Console tables for task timings and the task list."""

from __future__ import annotations

from rich.table import Table

from .config import Config
from .models import StepStatus, TaskReport

_STATUS_STYLE = {
    StepStatus.OK: "green",
    StepStatus.FAILED: "red",
    StepStatus.TOLERATED: "yellow",
}


def timing_table(report: TaskReport) -> Table:
    """Per-step durations, like ``time-grunt`` prints after a run."""

    table = Table(title=f"Execution Time ({report.task})")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Time", justify="right")
    table.add_column("%", justify="right")
    total = report.duration
    for outcome in report.outcomes:
        share = (outcome.duration / total * 100) if total else 0.0
        style = _STATUS_STYLE[outcome.status]
        table.add_row(
            outcome.step,
            f"[{style}]{outcome.status.value}[/{style}]",
            f"{outcome.duration * 1000:.0f}ms",
            f"{share:.0f}%",
        )
    table.add_row("Total", "", f"{total * 1000:.0f}ms", "")
    return table


def task_table(config: Config) -> Table:
    table = Table(title="Tasks")
    table.add_column("Task")
    table.add_column("Steps")
    table.add_column("Tolerates lint", justify="center")
    table.add_column("Description")
    for name, task in config.tasks.items():
        table.add_row(
            name,
            ", ".join(task.steps),
            "yes" if task.tolerate_lint else "no",
            task.description or "",
        )
    return table


__all__ = ["task_table", "timing_table"]
