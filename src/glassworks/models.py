"""Shared models for step outcomes and lint results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class StepStatus(str, Enum):
    """Outcome of a single step."""

    OK = "ok"
    FAILED = "failed"
    TOLERATED = "tolerated"


@dataclass(slots=True)
class LintIssue:
    """One rule violation reported by the linter."""

    path: str
    line: int
    column: int
    message: str

    def __str__(self) -> str:
        return f"{self.path}:{self.line}:{self.column}: {self.message}"


@dataclass(slots=True)
class StepOutcome:
    """Result and timing of one attempted step."""

    step: str
    status: StepStatus
    duration: float
    message: Optional[str] = None


@dataclass(slots=True)
class TaskReport:
    """Outcome of a task run."""

    task: str
    outcomes: List[StepOutcome] = field(default_factory=list)

    def record(self, step: str, status: StepStatus, duration: float, message: str | None = None) -> None:
        self.outcomes.append(StepOutcome(step, status, duration, message))

    @property
    def steps(self) -> List[str]:
        return [outcome.step for outcome in self.outcomes]

    @property
    def failed(self) -> bool:
        return any(outcome.status == StepStatus.FAILED for outcome in self.outcomes)

    @property
    def duration(self) -> float:
        return sum(outcome.duration for outcome in self.outcomes)


__all__ = ["StepStatus", "LintIssue", "StepOutcome", "TaskReport"]
