"""Named extension points a plugin can attach callbacks to."""

from __future__ import annotations

import threading
from importlib import metadata
from typing import Any, Callable, Dict, Iterable, List

from .logging import get_logger

_ENTRY_POINT_GROUP = "autodoc.hooks"

HOOK_POINTS = ("pre_discovery", "post_discovery", "pre_convert", "post_convert")

HookCallback = Callable[..., Any]


class ExtensionHooks:
    """Ordered callback lists keyed by hook point.

    Callbacks receive keyword arguments only:

    - ``pre_discovery(config)``
    - ``post_discovery(config, project)``
    - ``pre_convert(config, manifest)``
    - ``post_convert(config, manifest, result)``
    """

    def __init__(self) -> None:
        self._callbacks: Dict[str, List[HookCallback]] = {point: [] for point in HOOK_POINTS}
        self._lock = threading.Lock()
        self.logger = get_logger("hooks")

    def register(self, point: str, callback: HookCallback) -> None:
        if point not in self._callbacks:
            raise ValueError(f"Unknown hook point '{point}'. Expected one of: {', '.join(HOOK_POINTS)}")
        if not callable(callback):
            raise TypeError(f"Hook callback for '{point}' must be callable")
        with self._lock:
            self._callbacks[point].append(callback)

    def callbacks(self, point: str) -> List[HookCallback]:
        with self._lock:
            return list(self._callbacks.get(point, []))

    def run(self, point: str, **kwargs: Any) -> None:
        for callback in self.callbacks(point):
            self.logger.debug("Running %s hook %s", point, getattr(callback, "__name__", callback))
            callback(**kwargs)

    def load_entry_points(self) -> int:
        """Let every installed ``autodoc.hooks`` plugin register its callbacks."""
        loaded = 0
        for entry in _iter_entry_points():
            try:
                plugin = entry.load()
            except Exception as exc:  # pragma: no cover - defensive guard
                raise RuntimeError(f"Failed to load hook entry point '{entry.name}': {exc}") from exc
            if not callable(plugin):
                raise TypeError(f"Hook entry point '{entry.name}' must be callable")
            plugin(self)
            loaded += 1
        return loaded


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points(group=_ENTRY_POINT_GROUP)


__all__ = ["ExtensionHooks", "HOOK_POINTS", "HookCallback"]
