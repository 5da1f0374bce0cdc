"""Persistent content-fingerprint cache driving incremental rebuilds."""

from __future__ import annotations

import json
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..errors import CacheError
from ..logging import get_logger
from ..models import CacheEntry, DiscoveredFile
from ..utils import hash_file

_CACHE_VERSION = 1


class Fingerprinter:
    """Hashes file contents once per run; ``None`` marks a missing file."""

    def __init__(self) -> None:
        self._memo: Dict[Path, Optional[str]] = {}
        self._lock = threading.Lock()

    def fingerprint(self, path: Path) -> Optional[str]:
        with self._lock:
            if path in self._memo:
                return self._memo[path]
        try:
            value: Optional[str] = hash_file(path)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            value = None
        with self._lock:
            return self._memo.setdefault(path, value)

    def seed(self, path: Path, value: Optional[str]) -> None:
        """Record a fingerprint already taken from bytes read elsewhere this run."""
        with self._lock:
            self._memo[path] = value

    def forget(self, path: Path) -> None:
        with self._lock:
            self._memo.pop(path, None)


class BuildCache:
    """Stores per-format build state keyed by input path and content hash.

    The on-disk record is versioned and bound to one project root. Anything
    unreadable is logged and treated as an empty cache, which simply means
    the next build rebuilds everything.
    """

    def __init__(
        self,
        path: Path | None,
        project_root: Path,
        *,
        force: bool = False,
        template_invalidates: bool = True,
        fingerprinter: Fingerprinter | None = None,
    ) -> None:
        self._path = path
        self.project_root = project_root
        self.force = force
        self.template_invalidates = template_invalidates
        self.fingerprinter = fingerprinter or Fingerprinter()
        self.logger = get_logger("cache")
        self._formats: Dict[str, Dict[str, object]] = {}
        self._dirty = False
        self._lock = threading.Lock()
        if self._path is not None:
            try:
                self._load(self._path)
            except CacheError as exc:
                self.logger.warning("Ignoring build cache: %s", exc)
                self._formats = {}

    @property
    def path(self) -> Path | None:
        return self._path

    def key_for(self, path: Path) -> str:
        try:
            return path.relative_to(self.project_root).as_posix()
        except ValueError:
            return path.as_posix()

    def formats(self) -> List[str]:
        with self._lock:
            return sorted(self._formats)

    def entry(self, fmt: str, rel_path: str) -> Optional[CacheEntry]:
        with self._lock:
            inputs = self._inputs(fmt)
            raw = inputs.get(rel_path)
        if not isinstance(raw, dict):
            return None
        return _entry_from_dict(raw)

    def tracked_inputs(self, fmt: str) -> List[str]:
        with self._lock:
            return sorted(self._inputs(fmt))

    def needs_rebuild(
        self,
        fmt: str,
        file: DiscoveredFile,
        *,
        dependencies: Sequence[Path] = (),
        metadata_hash: str,
        template_hash: Optional[str] = None,
        artifact: Path,
    ) -> bool:
        """Return True when ``file`` must be rebuilt for ``fmt``.

        Every fingerprint is taken before deciding, so the entry recorded
        after the build describes the bytes this decision saw.
        """
        current = self.fingerprinter.fingerprint(file.path)
        observed = {
            self.key_for(dependency): self.fingerprinter.fingerprint(dependency) for dependency in dependencies
        }
        if self.force:
            return True
        entry = self.entry(fmt, file.rel_path)
        if entry is None or current != entry.fingerprint:
            return True
        if entry.dependencies != observed:
            return True
        with self._lock:
            record = self._formats.get(fmt, {})
            stored_metadata = record.get("metadata")
            stored_template = record.get("template")
        if stored_metadata != metadata_hash:
            return True
        if self.template_invalidates and stored_template != template_hash:
            return True
        return _artifact_stale(artifact, file.path)

    def stale_inputs(
        self,
        fmt: str,
        files: Sequence[DiscoveredFile],
        *,
        dependencies: Mapping[Path, Sequence[Path]],
        metadata_hash: str,
        template_hash: Optional[str] = None,
        artifact: Path,
    ) -> List[str]:
        return [
            file.rel_path
            for file in files
            if self.needs_rebuild(
                fmt,
                file,
                dependencies=dependencies.get(file.path, ()),
                metadata_hash=metadata_hash,
                template_hash=template_hash,
                artifact=artifact,
            )
        ]

    def input_set_changed(self, fmt: str, files: Iterable[DiscoveredFile]) -> bool:
        return sorted(file.rel_path for file in files) != self.tracked_inputs(fmt)

    def make_entry(
        self,
        file: DiscoveredFile,
        *,
        dependencies: Sequence[Path],
        output: Path,
    ) -> CacheEntry:
        """Capture the fingerprints seen at decision time for ``file``."""
        return CacheEntry(
            path=file.rel_path,
            fingerprint=self.fingerprinter.fingerprint(file.path) or "",
            output=self.key_for(output),
            built_at=_utc_now(),
            dependencies={
                self.key_for(dependency): self.fingerprinter.fingerprint(dependency)
                for dependency in dependencies
            },
        )

    def record_success(
        self,
        fmt: str,
        entries: Sequence[CacheEntry],
        *,
        metadata_hash: str,
        template_hash: Optional[str] = None,
    ) -> None:
        """Replace the state for ``fmt`` after that format built successfully."""
        with self._lock:
            self._formats[fmt] = {
                "metadata": metadata_hash,
                "template": template_hash,
                "inputs": {entry.path: asdict(entry) for entry in entries},
            }
            self._dirty = True

    def clear(self, fmt: str | None = None) -> None:
        with self._lock:
            if fmt is None:
                self._formats.clear()
            else:
                self._formats.pop(fmt, None)
            self._dirty = True

    def persist(self) -> None:
        with self._lock:
            if not self._dirty or self._path is None:
                return
            payload = {
                "version": _CACHE_VERSION,
                "project": str(self.project_root),
                "formats": self._formats,
            }
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
            self._dirty = False

    # ------------------------------------------------------------------
    # Internal helpers

    def _inputs(self, fmt: str) -> Dict[str, object]:
        record = self._formats.get(fmt)
        if not isinstance(record, dict):
            return {}
        inputs = record.get("inputs")
        return inputs if isinstance(inputs, dict) else {}

    def _load(self, path: Path) -> None:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return
        except OSError as exc:
            raise CacheError(f"unable to read {path}: {exc}") from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CacheError(f"corrupt cache file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise CacheError(f"corrupt cache file {path}")
        if data.get("version") != _CACHE_VERSION:
            raise CacheError(f"unsupported cache version {data.get('version')!r}")
        if data.get("project") != str(self.project_root):
            raise CacheError(f"cache belongs to another project: {data.get('project')!r}")
        formats = data.get("formats")
        if not isinstance(formats, dict):
            raise CacheError(f"corrupt cache file {path}")

        valid: Dict[str, Dict[str, object]] = {}
        for fmt, record in formats.items():
            if not isinstance(fmt, str) or not isinstance(record, dict):
                continue
            inputs = record.get("inputs")
            if not isinstance(inputs, dict):
                continue
            valid[fmt] = {
                "metadata": record.get("metadata"),
                "template": record.get("template"),
                "inputs": {
                    key: raw
                    for key, raw in inputs.items()
                    if isinstance(key, str) and _entry_from_dict(raw) is not None
                },
            }
        self._formats = valid
        self._dirty = False


def _artifact_stale(artifact: Path, source: Path) -> bool:
    try:
        artifact_mtime = artifact.stat().st_mtime
    except FileNotFoundError:
        return True
    try:
        return artifact_mtime < source.stat().st_mtime
    except FileNotFoundError:
        return True


def _entry_from_dict(raw: object) -> Optional[CacheEntry]:
    if not isinstance(raw, dict):
        return None
    path = raw.get("path")
    fingerprint = raw.get("fingerprint")
    output = raw.get("output")
    built_at = raw.get("built_at")
    if not all(isinstance(value, str) for value in (path, fingerprint, output, built_at)):
        return None
    dependencies = raw.get("dependencies", {})
    if not isinstance(dependencies, dict):
        dependencies = {}
    return CacheEntry(
        path=path,
        fingerprint=fingerprint,
        output=output,
        built_at=built_at,
        dependencies={
            str(key): value if isinstance(value, str) else None for key, value in dependencies.items()
        },
    )


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


__all__ = ["BuildCache", "Fingerprinter"]
