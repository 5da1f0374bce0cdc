"""Lookup of pandoc templates and reference documents."""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional, Sequence

from jinja2 import FileSystemLoader, TemplateNotFound
from jinja2.loaders import split_template_path

from .config import AutodocConfig
from .logging import get_logger

# Preferred template per format, then the suffix any fallback must carry.
_FORMAT_TEMPLATES = {
    "pdf": ("eisvogel.latex", ".latex"),
    "docx": (None, ".docx"),
    "html": (None, ".html"),
}


def user_templates_dir() -> Path:
    base = os.getenv("XDG_DATA_HOME")
    root = Path(base).expanduser() if base else Path.home() / ".local" / "share"
    return root / "autodoc" / "templates"


class TemplateStore:
    """Resolves template names against the project and user template folders."""

    def __init__(self, search_paths: Sequence[Path]) -> None:
        seen: set[str] = set()
        ordered: list[str] = []
        for directory in search_paths:
            key = str(directory)
            if key not in seen:
                ordered.append(key)
                seen.add(key)
        self.loader = FileSystemLoader(ordered)
        self.logger = get_logger("templates")

    @classmethod
    def from_config(cls, config: AutodocConfig, *, include_user_dir: bool = True) -> "TemplateStore":
        paths = [config.templates_path]
        if include_user_dir:
            paths.append(user_templates_dir())
        return cls(paths)

    @property
    def search_paths(self) -> List[Path]:
        return [Path(item) for item in self.loader.searchpath]

    def resolve(self, name: str) -> Optional[Path]:
        """Return the first file matching ``name``, or ``None``."""
        candidate = Path(name).expanduser()
        if candidate.is_absolute():
            return candidate if candidate.is_file() else None
        try:
            pieces = split_template_path(name)
        except TemplateNotFound:
            return None
        for base in self.search_paths:
            path = base.joinpath(*pieces)
            if path.is_file():
                return path
        return None

    def list_templates(self) -> List[str]:
        return sorted(set(self.loader.list_templates()))

    def find_for_format(self, fmt: str, configured: str | None = None) -> Optional[Path]:
        """Pick the template for ``fmt``: configured name, preferred name, first by suffix."""
        if configured:
            path = self.resolve(configured)
            if path is None:
                self.logger.warning("Configured %s template not found: %s", fmt, configured)
            return path

        preferred, suffix = _FORMAT_TEMPLATES.get(fmt, (None, None))
        if preferred:
            path = self.resolve(preferred)
            if path is not None:
                return path
        if suffix is None:
            return None
        # Project templates win over user templates regardless of name order.
        for base in self.search_paths:
            for name in sorted(FileSystemLoader(str(base)).list_templates()):
                if name.lower().endswith(suffix):
                    return base.joinpath(*split_template_path(name))
        return None


__all__ = ["TemplateStore", "user_templates_dir"]
