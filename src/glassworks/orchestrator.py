"""Run named tasks as fail-fast sequences of build steps."""

from __future__ import annotations

import time
import webbrowser
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from .bump import bump_manifests
from .config import STEP_NAMES, Config, WatchBinding, load_config, load_manifest, parse_step_id
from .errors import ConfigError, GlassworksError, LintViolation, StepFailure, UnknownTask
from .minify import write_minified
from .models import StepStatus, TaskReport
from .server import LiveReloadHub, ServerThread, create_livereload_app, create_preview_app
from .sources import expand_pattern, match_files, write_concatenated
from .tools import run_harness, run_lint, run_shell
from .watch import ChangeSource, Watcher, watchfiles_source


def _today(fmt: str = "%d-%m-%Y") -> str:
    return date.today().strftime(fmt)


class Orchestrator:
    """Build orchestrator bound to one configuration and project root.

    Steps exchange data only through files, so every task runs its steps
    strictly in order and stops at the first failure.
    """

    def __init__(
        self,
        config: Config,
        root: Path,
        *,
        config_path: Optional[Path] = None,
        change_source: Optional[ChangeSource] = None,
    ) -> None:
        self.config = config
        self.root = root.resolve()
        self.config_path = config_path
        self.manifest = load_manifest(self.root / config.manifest)
        self._change_source = change_source
        self._preview: Optional[ServerThread] = None
        self._livereload: Optional[ServerThread] = None
        self._hub: Optional[LiveReloadHub] = None
        self._watcher: Optional[Watcher] = None
        self._handlers: Dict[str, Callable[[Optional[str]], None]] = {
            "concat": self._concat,
            "minify": self._minify,
            "lint": self._lint,
            "test": self._test,
            "shell": self._shell,
            "serve": self._serve,
            "watch": self._watch,
            "bump": self._bump,
        }

    def __enter__(self) -> "Orchestrator":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Paths and template variables
    # ------------------------------------------------------------------

    @property
    def package_name(self) -> str:
        return str(self.manifest["name"])

    @property
    def dist_dir(self) -> Path:
        return self.root / self.config.folders.dist

    @property
    def concat_path(self) -> Path:
        return self.dist_dir / f"{self.package_name}.js"

    @property
    def minified_path(self) -> Path:
        return self.dist_dir / f"{self.package_name}.min.js"

    @property
    def sourcemap_path(self) -> Path:
        return self.dist_dir / f"{self.package_name}.min.js.map"

    def expand(self, pattern: str) -> str:
        return expand_pattern(pattern, self.config.folders, self.package_name)

    def template_variables(self) -> Dict[str, Any]:
        return {
            "pkg": self.manifest,
            "config": self.config.folders.model_dump(),
            "today": _today,
        }

    # ------------------------------------------------------------------
    # Task execution
    # ------------------------------------------------------------------

    def run_task(self, name: str) -> TaskReport:
        """Run the task ``name``; raise ``StepFailure`` on the first failing step."""

        task = self.config.tasks.get(name)
        if task is None:
            raise UnknownTask(name, self.config.tasks)
        logger.info('Running "{}" task', name)
        try:
            return self._run_sequence(name, task.steps, tolerate_lint=task.tolerate_lint)
        finally:
            self.close()

    def run_steps(
        self, steps: Sequence[str], *, label: str = "steps", tolerate_lint: bool = False
    ) -> TaskReport:
        """Run an ad-hoc step list with the same fail-fast rules as a task."""

        for step_id in steps:
            problem = self.config.step_problem(step_id)
            if problem is None:
                continue
            if parse_step_id(step_id)[0] not in STEP_NAMES:
                raise UnknownTask(step_id, STEP_NAMES, kind="step")
            raise ConfigError(problem)
        return self._run_sequence(label, steps, tolerate_lint=tolerate_lint)

    def _run_sequence(self, label: str, steps: Sequence[str], *, tolerate_lint: bool) -> TaskReport:
        report = TaskReport(task=label)
        for step_id in steps:
            name, target = parse_step_id(step_id)
            handler = self._handlers.get(name)
            if handler is None:
                raise UnknownTask(step_id, self._handlers, kind="step")
            logger.info('Running "{}"', step_id)
            started = time.perf_counter()
            try:
                handler(target)
            except LintViolation as exc:
                elapsed = time.perf_counter() - started
                if tolerate_lint:
                    logger.warning("{}: {} (tolerated)", step_id, exc.message)
                    report.record(step_id, StepStatus.TOLERATED, elapsed, exc.message)
                    continue
                report.record(step_id, StepStatus.FAILED, elapsed, exc.message)
                raise StepFailure(step_id, exc, report) from exc
            except GlassworksError as exc:
                report.record(step_id, StepStatus.FAILED, time.perf_counter() - started, exc.message)
                raise StepFailure(step_id, exc, report) from exc
            report.record(step_id, StepStatus.OK, time.perf_counter() - started)
        return report

    def reload_config(self) -> bool:
        """Re-read the configuration file; keep the current one if it is invalid."""

        if self.config_path is None:
            logger.warning("No configuration file to reload")
            return False
        try:
            config = load_config(self.config_path)
            manifest = load_manifest(self.root / config.manifest)
        except ConfigError as exc:
            logger.error("Configuration not reloaded: {}", exc)
            return False
        self.config = config
        self.manifest = manifest
        logger.info("Reloaded {}", self.config_path)
        return True

    def stop(self) -> None:
        """Stop a running watch loop after its in-flight run completes."""

        if self._watcher is not None:
            self._watcher.stop()

    def close(self) -> None:
        """Shut down servers started by ``serve`` or ``watch``."""

        self.stop()
        for server in (self._preview, self._livereload):
            if server is not None:
                server.stop()
        self._preview = None
        self._livereload = None
        self._hub = None

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _concat(self, target: Optional[str]) -> None:
        write_concatenated(
            self.root,
            self.config.folders,
            self.config.sources,
            self.config.concat,
            self.template_variables(),
            self.concat_path,
        )

    def _minify(self, target: Optional[str]) -> None:
        write_minified(
            self.concat_path,
            self.minified_path,
            self.config.minify,
            self.template_variables(),
        )

    def _lint(self, target: Optional[str]) -> None:
        ruleset = self.config.lint.rulesets[target]
        files = match_files(self.root, [self.expand(pattern) for pattern in ruleset.files])
        run_lint(target, ruleset, files, self.config.lint, self.root)

    def _test(self, target: Optional[str]) -> None:
        fixtures = match_files(self.root, [self.expand(pattern) for pattern in self.config.test.files])
        run_harness(fixtures, self.config.test, self.root)

    def _shell(self, target: Optional[str]) -> None:
        run_shell(target, self.config.shell[target], self.root)

    def _bump(self, target: Optional[str]) -> None:
        bump_manifests(self.root, self.config.bump, target or "patch")
        self.manifest = load_manifest(self.root / self.config.manifest)

    def _ensure_livereload(self) -> Optional[LiveReloadHub]:
        port = self.config.serve.livereload
        if port is None:
            return None
        if self._hub is None:
            hub = LiveReloadHub()
            server = ServerThread(
                create_livereload_app(hub), self.config.serve.hostname, port, "livereload server"
            )
            server.start()
            self._hub = hub
            self._livereload = server
        return self._hub

    def _serve(self, target: Optional[str]) -> None:
        serve = self.config.serve
        if self._preview is not None:
            return
        self._ensure_livereload()
        base = self.root / serve.base if serve.base else self.root
        preview = ServerThread(
            create_preview_app(base, serve.livereload), serve.hostname, serve.port, "preview server"
        )
        preview.start()
        self._preview = preview
        if serve.open:
            webbrowser.open(preview.url)

    def _watch(self, target: Optional[str]) -> None:
        watch_config = self.config.watch
        if not watch_config.bindings:
            logger.warning("No watch bindings configured")
            return
        if any(binding.livereload for binding in watch_config.bindings.values()):
            self._ensure_livereload()
        source = self._change_source or watchfiles_source(watch_config.debounce_ms, watch_config.step_ms)
        self._watcher = Watcher(
            self.root,
            watch_config.bindings,
            self._on_change,
            expand=self.expand,
            source=source,
        )
        try:
            self._watcher.run()
        finally:
            self._watcher = None

    def _on_change(self, name: str, binding: WatchBinding, changed: List[str]) -> None:
        if binding.reload and self.reload_config() and self._watcher is not None:
            self._watcher.rebind(self.config.watch.bindings)
        if binding.tasks:
            try:
                self.run_steps(binding.tasks, label=f"watch:{name}")
            except StepFailure as failure:
                logger.error("watch:{} aborted: {}", name, failure.message)
                if failure.output:
                    logger.error("{}", failure.output.rstrip())
                return
            except GlassworksError as exc:
                logger.error("watch:{} aborted: {}", name, exc.message)
                return
        if binding.livereload and self._hub is not None:
            self._hub.notify(changed)


__all__ = ["Orchestrator"]
