"""External command steps: linter, test harness and named shell commands."""

from __future__ import annotations

import re
import shlex
import subprocess
from pathlib import Path
from typing import List, Sequence

from loguru import logger

from .config import HarnessConfig, LintConfig, LintRuleset, ShellCommand
from .errors import ExternalToolFailure, LintViolation, TestFailure
from .models import LintIssue

TOOL_HINTS = {
    "jshint": "Install JSHint (npm install -g jshint) or fix PATH.",
    "node-qunit-puppeteer": "Install the QUnit runner (npm install -g node-qunit-puppeteer).",
    "bower": "Install Bower (npm install -g bower) or fix PATH.",
    "git": "Install git or fix PATH.",
    "npm": "Install Node.js (includes npm) or fix PATH.",
}

# Unix reporter format shared by jshint, eslint and most linters.
_ISSUE_LINE = re.compile(r"^(?P<path>.+?):(?P<line>\d+):(?P<column>\d+):\s*(?P<message>.+)$")


def run_tool(argv: Sequence[str], cwd: Path) -> subprocess.CompletedProcess[str]:
    """Run an external command and capture its combined output."""

    logger.debug("Running {} in {}", " ".join(argv), cwd)
    try:
        return subprocess.run(
            list(argv),
            cwd=str(cwd),
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except FileNotFoundError as exc:
        tool = argv[0]
        hint = TOOL_HINTS.get(Path(tool).name, f"Install {tool} or fix PATH.")
        raise ExternalToolFailure(f"{tool} is not available. {hint}", exit_code=127) from exc


def parse_lint_output(output: str) -> List[LintIssue]:
    issues: List[LintIssue] = []
    for line in output.splitlines():
        match = _ISSUE_LINE.match(line.strip())
        if match:
            issues.append(
                LintIssue(
                    path=match["path"],
                    line=int(match["line"]),
                    column=int(match["column"]),
                    message=match["message"],
                )
            )
    return issues


def run_lint(
    name: str, ruleset: LintRuleset, files: Sequence[Path], config: LintConfig, root: Path
) -> List[LintIssue]:
    """Lint ``files`` with the rule set ``name``; raise on any violation."""

    if not files:
        logger.warning("lint:{} matched no files", name)
        return []

    argv = list(config.command)
    if ruleset.rcfile:
        argv += [config.config_flag, ruleset.rcfile]
    argv += [str(path.relative_to(root)) if path.is_relative_to(root) else str(path) for path in files]

    proc = run_tool(argv, root)
    issues = parse_lint_output(proc.stdout or "")
    if issues:
        raise LintViolation(name, issues, exit_code=proc.returncode or 1, output=proc.stdout)
    if proc.returncode != 0:
        raise ExternalToolFailure(
            f"{argv[0]} exited with status {proc.returncode}",
            exit_code=proc.returncode,
            output=proc.stdout,
        )
    logger.info("{} file(s) lint free", len(files))
    return issues


def run_harness(fixtures: Sequence[Path], config: HarnessConfig, root: Path) -> int:
    """Run the test harness once per fixture; return the number of fixtures run."""

    if not fixtures:
        logger.warning("test matched no fixtures")
        return 0

    for fixture in fixtures:
        argument = str(fixture.relative_to(root)) if fixture.is_relative_to(root) else str(fixture)
        if any("{file}" in part for part in config.command):
            argv = [part.replace("{file}", argument) for part in config.command]
        else:
            argv = [*config.command, argument]
        logger.info("Testing {}", argument)
        proc = run_tool(argv, root)
        if proc.returncode != 0:
            raise TestFailure(
                f"Tests failed in {argument}",
                exit_code=proc.returncode,
                output=proc.stdout,
            )
    return len(fixtures)


def run_shell(name: str, command: ShellCommand, root: Path) -> str:
    """Run a named shell command; return its output."""

    cwd = root / command.cwd if command.cwd else root
    argv = shlex.split(command.command)
    if not argv:
        raise ExternalToolFailure(f"shell:{name} has an empty command")
    proc = run_tool(argv, cwd)
    if proc.returncode != 0:
        raise ExternalToolFailure(
            f"shell:{name} exited with status {proc.returncode}",
            exit_code=proc.returncode,
            output=proc.stdout,
        )
    if proc.stdout:
        logger.info("{}", proc.stdout.rstrip())
    return proc.stdout


__all__ = ["TOOL_HINTS", "parse_lint_output", "run_harness", "run_lint", "run_shell", "run_tool"]
