"""Deterministic merge of per-fragment metadata into one build snapshot."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..models import KNOWN_FIELDS, DocumentMetadata, MergedMetadata, ParsedFragment
from ..utils import is_empty

DEFAULT_SETUP_FILE = "00-setup.md"

BUILTIN_DEFAULTS: Mapping[str, Any] = {
    "title": "Document",
    "numbersections": True,
    "top_level_division": "section",
}

OVERRIDE_SOURCE = "<overrides>"
PROJECT_SOURCE = "<project>"
DEFAULT_SOURCE = "<default>"


def merge_metadata(
    fragments: Sequence[ParsedFragment],
    *,
    overrides: Optional[Mapping[str, Any]] = None,
    setup_file: str = DEFAULT_SETUP_FILE,
    project_defaults: Optional[Mapping[str, Any]] = None,
    builtin_defaults: Mapping[str, Any] = BUILTIN_DEFAULTS,
) -> MergedMetadata:
    """Merge fragment metadata with first-writer-wins priority per field.

    Priority: caller overrides, the setup file, remaining fragments in the
    given (sorted) order, project defaults, built-in defaults. Array values
    are always taken whole from the winning source.
    """
    layers: List[Tuple[str, DocumentMetadata]] = []
    if overrides:
        layers.append((OVERRIDE_SOURCE, DocumentMetadata.from_mapping(overrides)))

    setup = [item for item in fragments if item.file.name == setup_file]
    others = [item for item in fragments if item.file.name != setup_file]
    for item in setup + others:
        layers.append((item.file.rel_path, item.metadata))

    if project_defaults:
        layers.append((PROJECT_SOURCE, DocumentMetadata.from_mapping(project_defaults)))
    if builtin_defaults:
        layers.append((DEFAULT_SOURCE, DocumentMetadata.from_mapping(builtin_defaults)))

    merged = MergedMetadata()
    for name in sorted(KNOWN_FIELDS):
        winner = _first_non_empty(layers, lambda meta, key=name: getattr(meta, key))
        if winner is not None:
            source, value = winner
            setattr(merged, name, _copy(value))
            merged.sources[name] = source

    for key in sorted(_custom_keys(meta for _, meta in layers)):
        winner = _first_non_empty(layers, lambda meta, key=key: meta.custom.get(key))
        if winner is not None:
            source, value = winner
            merged.custom[key] = _copy(value)
            merged.sources[key] = source

    return merged


def _first_non_empty(layers, getter) -> Optional[Tuple[str, Any]]:
    for source, metadata in layers:
        value = getter(metadata)
        if not is_empty(value):
            return source, value
    return None


def _custom_keys(layers: Iterable[DocumentMetadata]) -> set[str]:
    keys: set[str] = set()
    for metadata in layers:
        keys.update(metadata.custom)
    return keys


def _copy(value: Any) -> Any:
    if isinstance(value, list):
        return [_copy(item) for item in value]
    if isinstance(value, dict):
        return {key: _copy(item) for key, item in value.items()}
    return value


def parse_overrides(pairs: Iterable[str]) -> Dict[str, Any]:
    """Turn ``key=value`` strings (from the command line) into an override map."""
    overrides: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Metadata override must look like key=value: {pair!r}")
        key, value = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Metadata override is missing a key: {pair!r}")
        existing = overrides.get(key)
        if existing is None:
            overrides[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            overrides[key] = [existing, value]
    return overrides


__all__ = ["BUILTIN_DEFAULTS", "DEFAULT_SETUP_FILE", "merge_metadata", "parse_overrides"]
