"""Error taxonomy shared by the build steps and the orchestrator."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List

if TYPE_CHECKING:
    from .models import LintIssue, TaskReport


class GlassworksError(Exception):
    """Base class for every failure a step can report."""

    exit_code = 1

    def __init__(self, message: str, *, exit_code: int | None = None, output: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.output = output
        if exit_code is not None:
            self.exit_code = exit_code if exit_code > 0 else 1


class ConfigError(GlassworksError):
    """Raised when a configuration file is invalid."""

    exit_code = 4


class UnknownTask(GlassworksError):
    """Raised when a task or step name is not defined."""

    exit_code = 2

    def __init__(self, name: str, available: Iterable[str] = (), *, kind: str = "task") -> None:
        choices = ", ".join(sorted(available))
        message = f"Unknown {kind} '{name}'"
        if choices:
            message += f" (available: {choices})"
        super().__init__(message)
        self.name = name


class MissingSource(GlassworksError):
    """A file referenced by the source list cannot be read."""


class ParseFailure(GlassworksError):
    """Malformed input to the template pass, the minifier or the version bump."""


class LintViolation(GlassworksError):
    """The linter reported rule violations."""

    def __init__(
        self, ruleset: str, issues: List["LintIssue"], *, exit_code: int | None = None, output: str = ""
    ) -> None:
        super().__init__(
            f"{len(issues)} lint violation(s) in rule set '{ruleset}'",
            exit_code=exit_code,
            output=output,
        )
        self.ruleset = ruleset
        self.issues = issues


class TestFailure(GlassworksError):
    """The browser test harness reported failing assertions."""

    __test__ = False


class ExternalToolFailure(GlassworksError):
    """An external command exited non-zero for reasons opaque to the orchestrator."""


class StepFailure(GlassworksError):
    """Raised by the orchestrator when a step aborts the running sequence."""

    def __init__(self, step: str, cause: GlassworksError, report: "TaskReport") -> None:
        super().__init__(
            f"Step '{step}' failed: {cause.message}",
            exit_code=cause.exit_code,
            output=cause.output,
        )
        self.step = step
        self.cause = cause
        self.report = report


__all__ = [
    "GlassworksError",
    "ConfigError",
    "UnknownTask",
    "MissingSource",
    "ParseFailure",
    "LintViolation",
    "TestFailure",
    "ExternalToolFailure",
    "StepFailure",
]
