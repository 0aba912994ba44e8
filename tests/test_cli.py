from __future__ import annotations

from pathlib import Path

import yaml
from loguru import logger
from typer.testing import CliRunner

from glassworks.cli import _configure_logging, app
from glassworks.config import Config, save_config

runner = CliRunner()


def _write_config(project: Path, config: Config) -> Path:
    path = project / "glassworks.yml"
    save_config(config, path)
    return path


def test_init_config_writes_defaults(tmp_path: Path) -> None:
    target = tmp_path / "glassworks.yml"
    result = runner.invoke(app, ["init-config", str(target)])
    assert result.exit_code == 0
    data = yaml.safe_load(target.read_text())
    assert data["tasks"]["build"]["steps"] == ["concat", "minify"]
    assert data["folders"]["dist"] == "dist"


def test_run_build(project: Path, config: Config) -> None:
    path = _write_config(project, config)
    result = runner.invoke(app, ["run", "build", "--config", str(path)])
    assert result.exit_code == 0, result.output
    assert "Done, without errors." in result.output
    assert (project / "dist" / "webglass.min.js").exists()


def test_run_unknown_task(project: Path, config: Config) -> None:
    path = _write_config(project, config)
    result = runner.invoke(app, ["run", "deploy", "--config", str(path)])
    assert result.exit_code == 2
    assert "deploy" in result.output


def test_run_reports_lint_failure_exit_code(project: Path, config: Config) -> None:
    (project / "src" / "utils" / "ajax.js").write_text("debugger;\n")
    path = _write_config(project, config)

    result = runner.invoke(app, ["run", "--config", str(path)])
    assert result.exit_code == 2
    assert "lint:post" in result.output
    assert not (project / "dist" / "webglass.min.js").exists()


def test_step_runs_selected_steps(project: Path, config: Config) -> None:
    path = _write_config(project, config)
    result = runner.invoke(app, ["step", "concat", "--config", str(path)])
    assert result.exit_code == 0, result.output
    assert (project / "dist" / "webglass.js").exists()
    assert not (project / "dist" / "webglass.min.js").exists()


def test_invalid_config_exit_code(tmp_path: Path) -> None:
    path = tmp_path / "glassworks.yml"
    path.write_text("folders: [unclosed\n")
    result = runner.invoke(app, ["run", "build", "--config", str(path)])
    assert result.exit_code == 4


def test_tasks_lists_configured_tasks(project: Path, config: Config) -> None:
    path = _write_config(project, config)
    result = runner.invoke(app, ["tasks", "--config", str(path)])
    assert result.exit_code == 0
    for name in ("default", "build", "demo", "serve", "test"):
        assert name in result.output


def test_log_messages_are_printed_literally(capsys) -> None:
    _configure_logging("INFO", None)
    logger.info("ajax.js: unmatched [/red] in [bold]")
    assert "unmatched [/red] in [bold]" in capsys.readouterr().out
