"""Small coercion and hashing helpers shared by config and metadata handling."""

from __future__ import annotations

import datetime as _dt
import hashlib
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    # PyYAML turns unquoted ISO dates into date objects.
    if isinstance(value, (_dt.date, _dt.datetime)):
        return value.isoformat()
    return None


def as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "on", "1"}:
            return True
        if lowered in {"false", "no", "off", "0"}:
            return False
    return None


def as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        result = []
        for item in value:
            text = as_str(item)
            if text is not None:
                result.append(text)
        return result
    text = as_str(value)
    return [text] if text is not None else []


def is_empty(value: Any) -> bool:
    """Return True for values that never win a metadata merge."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def hash_bytes(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


__all__ = [
    "as_bool",
    "as_dict",
    "as_float",
    "as_int",
    "as_str",
    "as_str_list",
    "hash_bytes",
    "hash_file",
    "hash_text",
    "is_empty",
]
