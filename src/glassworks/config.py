"""Configuration loading and validation for glassworks."""

from __future__ import annotations

import json
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError

BUMP_PARTS = ("major", "minor", "patch", "prerelease")

# Steps that take no target (`concat`), a required target (`lint:pre`) or an
# optional one (`bump`, `bump:minor`).
_PLAIN_STEPS = {"concat", "minify", "test", "serve", "watch"}
_TARGET_STEPS = {"lint", "shell"}
_OPTIONAL_TARGET_STEPS = {"bump"}

STEP_NAMES = frozenset(_PLAIN_STEPS | _TARGET_STEPS | _OPTIONAL_TARGET_STEPS)

DEFAULT_BANNER = "/*! <%= pkg.name | replace('.js', '') %> <%= today('%d-%m-%Y') %> */\n"


def parse_step_id(step_id: str) -> Tuple[str, Optional[str]]:
    """Split ``name:target`` into its parts."""

    name, _, target = step_id.partition(":")
    return name.strip(), (target.strip() or None)


class FoldersConfig(BaseModel):
    """Named project folders, relative to the project root."""

    demo: str
    src: str
    test: str
    dist: str

    @field_validator("demo", "src", "test", "dist")
    @classmethod
    def _relative_path(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Folder paths cannot be empty")
        path = PurePosixPath(value.replace("\\", "/"))
        if path.is_absolute() or Path(value).is_absolute():
            raise ValueError(f"Folder path '{value}' must be relative")
        if ".." in path.parts:
            raise ValueError(f"Folder path '{value}' must stay inside the project root")
        return path.as_posix()


class SourcesConfig(BaseModel):
    """Ordered source list: explicit head, glob middle, explicit tail."""

    head: List[str] = Field(default_factory=lambda: ["_intro.js", "main.js"])
    include: List[str] = Field(default_factory=lambda: ["**/*.js"])
    exclude: List[str] = Field(default_factory=lambda: ["/version.js", "/_outro.js"])
    tail: List[str] = Field(default_factory=lambda: ["version.js", "_outro.js"])


class StripBannersConfig(BaseModel):
    block: bool = Field(default=False, description="Also strip /*! ... */ banners.")
    line: bool = Field(default=False, description="Also strip leading // comment runs.")


class ConcatConfig(BaseModel):
    process: bool = True
    separator: str = "\n\n"
    strip_banners: Optional[StripBannersConfig] = Field(default_factory=StripBannersConfig)

    @field_validator("strip_banners", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> Any:
        if value is True:
            return {}
        if value is False:
            return None
        return value


class MinifyConfig(BaseModel):
    mangle: bool = False
    source_map: bool = True
    sources_content: bool = False
    banner: str = DEFAULT_BANNER


class LintRuleset(BaseModel):
    """Files to lint, relative to the project root, and their rule file."""

    files: List[str]
    rcfile: Optional[str] = None


class LintConfig(BaseModel):
    command: List[str] = Field(default_factory=lambda: ["jshint", "--reporter=unix"])
    config_flag: str = "--config"
    rulesets: Dict[str, LintRuleset] = Field(default_factory=dict)

    @field_validator("command")
    @classmethod
    def _non_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("Lint command cannot be empty")
        return value


class HarnessConfig(BaseModel):
    """External browser test harness, run once per fixture."""

    command: List[str] = Field(default_factory=lambda: ["node-qunit-puppeteer", "{file}"])
    files: List[str] = Field(default_factory=lambda: ["{test}/*.html"])

    @field_validator("command")
    @classmethod
    def _non_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("Test command cannot be empty")
        return value


class ShellCommand(BaseModel):
    command: str
    cwd: Optional[str] = None


class ServeConfig(BaseModel):
    hostname: str = "localhost"
    port: int = 9000
    livereload: Optional[int] = 35729
    open: bool = True
    base: Optional[str] = None


class WatchBinding(BaseModel):
    files: List[str]
    tasks: List[str] = Field(default_factory=list)
    livereload: bool = False
    reload: bool = False


class WatchConfig(BaseModel):
    debounce_ms: int = 1600
    step_ms: int = 50
    bindings: Dict[str, WatchBinding] = Field(default_factory=dict)


class BumpConfig(BaseModel):
    files: List[str] = Field(default_factory=lambda: ["package.json", "bower.json"])
    commit: bool = False
    commit_message: str = "Release v%VERSION%"
    commit_files: List[str] = Field(default_factory=lambda: ["package.json"])
    create_tag: bool = False
    tag_name: str = "v%VERSION%"
    tag_message: str = "Version %VERSION%"


class TaskConfig(BaseModel):
    steps: List[str]
    tolerate_lint: bool = Field(
        default=False,
        description="Log lint violations as warnings and keep running the task.",
    )
    description: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_step_list(cls, value: Any) -> Any:
        if isinstance(value, list):
            return {"steps": value}
        return value


class Config(BaseModel):
    """Top-level configuration."""

    manifest: str = "package.json"
    folders: FoldersConfig
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    concat: ConcatConfig = Field(default_factory=ConcatConfig)
    minify: MinifyConfig = Field(default_factory=MinifyConfig)
    lint: LintConfig = Field(default_factory=LintConfig)
    test: HarnessConfig = Field(default_factory=HarnessConfig)
    shell: Dict[str, ShellCommand] = Field(default_factory=dict)
    serve: ServeConfig = Field(default_factory=ServeConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    bump: BumpConfig = Field(default_factory=BumpConfig)
    tasks: Dict[str, TaskConfig]

    @field_validator("tasks")
    @classmethod
    def _ensure_task_entries(cls, value: Dict[str, TaskConfig]) -> Dict[str, TaskConfig]:
        if not value:
            raise ValueError("At least one task must be configured")
        return value

    @model_validator(mode="after")
    def _check_step_references(self) -> "Config":
        for task_name, task in self.tasks.items():
            for step_id in task.steps:
                problem = self.step_problem(step_id)
                if problem:
                    raise ValueError(f"Task '{task_name}': {problem}")
        for binding_name, binding in self.watch.bindings.items():
            for step_id in binding.tasks:
                problem = self.step_problem(step_id)
                if problem:
                    raise ValueError(f"Watch binding '{binding_name}': {problem}")
                if parse_step_id(step_id)[0] in {"watch", "serve"}:
                    raise ValueError(f"Watch binding '{binding_name}' cannot run '{step_id}'")
        return self

    def step_problem(self, step_id: str) -> Optional[str]:
        """Describe why ``step_id`` is not runnable, or return None."""

        name, target = parse_step_id(step_id)
        if name not in STEP_NAMES:
            return f"unknown step '{step_id}'"
        if name in _PLAIN_STEPS and target is not None:
            return f"step '{name}' does not take a target"
        if name in _TARGET_STEPS and target is None:
            return f"step '{name}' requires a target ('{name}:<name>')"
        if name == "lint" and target not in self.lint.rulesets:
            return f"lint rule set '{target}' is not configured"
        if name == "shell" and target not in self.shell:
            return f"shell command '{target}' is not configured"
        if name == "bump" and target is not None and target not in BUMP_PARTS:
            return f"bump part '{target}' must be one of {', '.join(BUMP_PARTS)}"
        return None


def load_config(path: Path) -> Config:
    """Load configuration from YAML file."""

    try:
        data = yaml.safe_load(path.read_text())
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML: {exc}") from exc

    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def save_config(config: Config, path: Path) -> None:
    """Persist configuration to disk as YAML."""

    rendered = config.model_dump()
    path.write_text(yaml.safe_dump(rendered, sort_keys=False))


def load_manifest(path: Path) -> Dict[str, Any]:
    """Read the JSON package manifest exposed to templates as ``pkg``."""

    try:
        data = json.loads(path.read_text())
    except FileNotFoundError as exc:
        raise ConfigError(f"Package manifest not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse package manifest {path}: {exc}") from exc
    if not isinstance(data, dict) or not data.get("name"):
        raise ConfigError(f"Package manifest {path} must define a name")
    return data


def default_config() -> Config:
    """Configuration for a library laid out as demo/, src/, test/ and dist/."""

    return Config(
        folders=FoldersConfig(demo="demo", src="src", test="test", dist="dist"),
        lint=LintConfig(
            rulesets={
                "pre": LintRuleset(files=["{src}/main.js"], rcfile=".jshintrc"),
                "post": LintRuleset(files=["{dist}/{name}.js"], rcfile=".post.jshintrc"),
            }
        ),
        shell={"bower_install": ShellCommand(command="bower install")},
        watch=WatchConfig(
            bindings={
                "bower": WatchBinding(files=["/bower.json"], tasks=["shell:bower_install"]),
                "config": WatchBinding(files=["/glassworks.yml"], reload=True),
                "test": WatchBinding(
                    files=["{src}/**/*.js", "{src}/**/*.glsl"],
                    tasks=["lint:pre", "concat", "test", "minify"],
                    livereload=True,
                ),
                "demo": WatchBinding(
                    files=[
                        "{dist}/**/*.js",
                        "{demo}/**/*.js",
                        "{demo}/**/*.css",
                        "{demo}/**/*.html",
                    ],
                    livereload=True,
                ),
            }
        ),
        tasks={
            "default": TaskConfig(steps=["lint:pre", "concat", "lint:post", "test", "minify"]),
            "build": TaskConfig(
                steps=["concat", "minify"], description="Build without linting or tests."
            ),
            "demo": TaskConfig(steps=["lint:pre", "concat", "minify", "serve", "watch"]),
            "serve": TaskConfig(
                steps=["serve", "watch"], description="Preview server with live reload."
            ),
            "test": TaskConfig(steps=["lint:post", "test"]),
        },
    )


__all__ = [
    "Config",
    "ConfigError",
    "FoldersConfig",
    "SourcesConfig",
    "TaskConfig",
    "WatchBinding",
    "default_config",
    "load_config",
    "load_manifest",
    "parse_step_id",
    "save_config",
]
