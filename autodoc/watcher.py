"""Polling watcher that re-runs the build when project sources change."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .errors import AutodocError
from .logging import get_logger, log_exception

WATCHED_SUFFIXES = {
    ".md",
    ".yml",
    ".yaml",
    ".mmd",
    ".mermaid",
    ".bib",
    ".bibtex",
    ".ris",
    ".csl",
    ".latex",
    ".tex",
    ".html",
    ".docx",
    ".png",
    ".jpg",
    ".jpeg",
    ".svg",
    ".gif",
    ".webp",
}

Snapshot = Dict[str, Tuple[int, int]]


class PollingWatcher:
    """Compares file modification snapshots and triggers one build at a time."""

    def __init__(
        self,
        root: Path,
        build: Callable[[], object],
        *,
        interval: float = 1.0,
        ignore_dirs: Tuple[Path, ...] = (),
    ) -> None:
        self.root = root
        self.build = build
        self.interval = interval
        self.ignore_dirs = tuple(path.resolve() for path in ignore_dirs)
        self.logger = get_logger("watcher")
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    def snapshot(self) -> Snapshot:
        state: Snapshot = {}
        for dirpath, dirnames, filenames in os.walk(self.root):
            current = Path(dirpath)
            dirnames[:] = sorted(
                name
                for name in dirnames
                if not name.startswith(".") and (current / name).resolve() not in self.ignore_dirs
            )
            for filename in filenames:
                if filename.startswith(".") or Path(filename).suffix.lower() not in WATCHED_SUFFIXES:
                    continue
                path = current / filename
                try:
                    stat = path.stat()
                except FileNotFoundError:
                    continue
                state[path.relative_to(self.root).as_posix()] = (stat.st_mtime_ns, stat.st_size)
        return state

    @staticmethod
    def changed_paths(before: Snapshot, after: Snapshot) -> List[str]:
        keys = set(before) | set(after)
        return sorted(key for key in keys if before.get(key) != after.get(key))

    def watch(self, *, max_iterations: Optional[int] = None) -> int:
        """Build once, then rebuild after every detected change. Returns the build count."""
        self._stop.clear()
        self.logger.info("Watching %s for changes (Ctrl+C to stop)", self.root)
        previous = self.snapshot()
        builds = self._run_build()
        iterations = 0
        while not self._stop.is_set():
            if max_iterations is not None and iterations >= max_iterations:
                break
            iterations += 1
            if self._stop.wait(self.interval):
                break
            current = self.snapshot()
            changed = self.changed_paths(previous, current)
            previous = current
            if not changed:
                continue
            self.logger.info("Changed: %s", ", ".join(changed))
            builds += self._run_build()
            # Files written during the build are not a reason to build again.
            previous = self.snapshot()
        return builds

    def _run_build(self) -> int:
        try:
            self.build()
        except AutodocError as exc:
            log_exception(self.logger, "Build failed", exc)
        return 1


__all__ = ["PollingWatcher", "WATCHED_SUFFIXES"]
