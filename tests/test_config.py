from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from glassworks.config import (
    FoldersConfig,
    StripBannersConfig,
    default_config,
    load_config,
    load_manifest,
    parse_step_id,
    save_config,
)
from glassworks.errors import ConfigError

MINIMAL = """
folders:
  demo: demo
  src: src
  test: test
  dist: dist
tasks:
  build: [concat, minify]
"""


def test_default_config_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "glassworks.yml"
    save_config(default_config(), path)

    loaded = load_config(path)
    assert loaded.tasks["default"].steps == ["lint:pre", "concat", "lint:post", "test", "minify"]
    assert loaded.tasks["demo"].tolerate_lint is False
    assert loaded.concat.strip_banners == StripBannersConfig()
    assert loaded.minify.mangle is False
    assert loaded.watch.bindings["bower"].tasks == ["shell:bower_install"]


def test_task_list_shorthand(tmp_path: Path) -> None:
    path = tmp_path / "glassworks.yml"
    path.write_text(MINIMAL)

    config = load_config(path)
    assert config.tasks["build"].steps == ["concat", "minify"]
    assert config.tasks["build"].tolerate_lint is False
    assert config.sources.head == ["_intro.js", "main.js"]
    assert config.sources.tail == ["version.js", "_outro.js"]


def test_missing_folder_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "glassworks.yml"
    path.write_text(MINIMAL.replace("  dist: dist\n", ""))

    with pytest.raises(ConfigError, match="dist"):
        load_config(path)


@pytest.mark.parametrize("value", ["", "/abs/src", "../outside"])
def test_folder_paths_must_be_relative(value: str) -> None:
    with pytest.raises(ValidationError):
        FoldersConfig(demo="demo", src=value, test="test", dist="dist")


def test_unknown_lint_ruleset_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "glassworks.yml"
    path.write_text(MINIMAL.replace("[concat, minify]", "[lint:nope, concat]"))

    with pytest.raises(ConfigError, match="lint rule set 'nope'"):
        load_config(path)


def test_unknown_step_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "glassworks.yml"
    path.write_text(MINIMAL.replace("[concat, minify]", "[concat, uglify]"))

    with pytest.raises(ConfigError, match="unknown step 'uglify'"):
        load_config(path)


def test_strip_banners_flag(tmp_path: Path) -> None:
    path = tmp_path / "glassworks.yml"
    path.write_text(MINIMAL + "concat:\n  strip_banners: false\n")
    assert load_config(path).concat.strip_banners is None

    path.write_text(MINIMAL + "concat:\n  strip_banners:\n    line: true\n")
    assert load_config(path).concat.strip_banners == StripBannersConfig(line=True)


def test_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "glassworks.yml"
    path.write_text("folders: [unclosed")
    with pytest.raises(ConfigError, match="Failed to parse YAML"):
        load_config(path)


def test_parse_step_id() -> None:
    assert parse_step_id("lint:pre") == ("lint", "pre")
    assert parse_step_id("concat") == ("concat", None)


def test_load_manifest_requires_name(tmp_path: Path) -> None:
    path = tmp_path / "package.json"
    path.write_text(json.dumps({"version": "1.0.0"}))
    with pytest.raises(ConfigError, match="must define a name"):
        load_manifest(path)

    with pytest.raises(ConfigError, match="not found"):
        load_manifest(tmp_path / "missing.json")
