"""File watching: trigger step sequences when bound globs change."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from loguru import logger
from pathspec import PathSpec
from watchfiles import watch

from .config import WatchBinding
from .sources import compile_patterns

ChangeBatch = Set[Tuple[Any, str]]
ChangeSource = Callable[[Path, threading.Event], Iterable[ChangeBatch]]
TriggerHandler = Callable[[str, WatchBinding, List[str]], None]


def watchfiles_source(debounce_ms: int = 1600, step_ms: int = 50) -> ChangeSource:
    """Change batches from ``watchfiles``.

    Events arriving within ``debounce_ms`` of each other are grouped into one
    batch.
    """

    def _source(root: Path, stop_event: threading.Event) -> Iterable[ChangeBatch]:
        return watch(
            root,
            debounce=debounce_ms,
            step=step_ms,
            stop_event=stop_event,
            raise_interrupt=False,
        )

    return _source


class Watcher:
    """Dispatch change batches to the bindings whose globs match.

    A batch triggers each matching binding once, however many of its files
    changed, in configuration order. Handlers run on the watching thread, so
    runs never overlap.
    """

    def __init__(
        self,
        root: Path,
        bindings: Dict[str, WatchBinding],
        on_trigger: TriggerHandler,
        *,
        expand: Callable[[str], str] = lambda pattern: pattern,
        source: Optional[ChangeSource] = None,
    ) -> None:
        self.root = root.resolve()
        self._on_trigger = on_trigger
        self._expand = expand
        self._source = source or watchfiles_source()
        self._stop = threading.Event()
        self._specs: List[Tuple[str, WatchBinding, PathSpec]] = []
        self.rebind(bindings)

    def rebind(self, bindings: Dict[str, WatchBinding]) -> None:
        self._specs = [
            (name, binding, compile_patterns(self._expand(pattern) for pattern in binding.files))
            for name, binding in bindings.items()
        ]

    def _relative(self, raw_path: str) -> Optional[str]:
        path = Path(raw_path)
        if not path.is_absolute():
            path = self.root / path
        try:
            return path.resolve().relative_to(self.root).as_posix()
        except ValueError:
            return None

    def match(self, changes: Iterable[Tuple[Any, str]]) -> List[Tuple[str, WatchBinding, List[str]]]:
        changed_set: Set[str] = set()
        for _, raw in changes:
            relative = self._relative(raw)
            if relative is not None:
                changed_set.add(relative)
        changed = sorted(changed_set)
        triggered = []
        for name, binding, spec in self._specs:
            hits = [path for path in changed if spec.match_file(path)]
            if hits:
                triggered.append((name, binding, hits))
        return triggered

    def dispatch(self, changes: Iterable[Tuple[Any, str]]) -> List[str]:
        """Run the handler for every binding matching ``changes``."""

        fired: List[str] = []
        for name, binding, hits in self.match(changes):
            logger.info("File {} changed, running watch:{}", hits[0], name)
            self._on_trigger(name, binding, hits)
            fired.append(name)
        return fired

    def run(self) -> None:
        """Watch until ``stop()`` is called or the process is interrupted."""

        logger.info("Waiting for changes in {}", self.root)
        for changes in self._source(self.root, self._stop):
            if self._stop.is_set():
                break
            self.dispatch(changes)
            if self._stop.is_set():
                break
        logger.info("Stopped watching")

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()


__all__ = ["ChangeSource", "Watcher", "watchfiles_source"]
