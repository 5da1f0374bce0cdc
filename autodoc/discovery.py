"""Project scanning, file classification and natural ordering."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from .config import CONFIG_FILENAMES, AutodocConfig
from .errors import DiscoveryError
from .logging import get_logger
from .models import DiscoveredFile, DiscoveredProject, FileKind

_EXCLUDED_DIRS = {
    "node_modules",
    "__pycache__",
    "venv",
}

_EXCLUDED_FILES = {
    "README.md",
    "CHANGELOG.md",
    "CONTRIBUTING.md",
    "CODE_OF_CONDUCT.md",
    "Thumbs.db",
    *CONFIG_FILENAMES,
}

_EXCLUDED_FILE_PATTERNS = ("LICENSE*", "*~")

_FRAGMENT_SUFFIXES = {".md"}
_DIAGRAM_SUFFIXES = {".mmd", ".mermaid"}
_IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".svg", ".pdf", ".gif", ".webp"}
_TEMPLATE_SUFFIXES = {".latex", ".tex", ".html", ".docx"}
_BIBLIOGRAPHY_SUFFIXES = {".bib", ".bibtex", ".ris"}

_MAX_DIAGRAM_DEPTH = 2
_MAX_BIBLIOGRAPHY_DEPTH = 2

_NUMERIC_RUN = re.compile(r"(\d+)")


def natural_sort_key(name: str) -> Tuple[Any, ...]:
    """Compare embedded digit runs as integers; names with a numeric prefix come first.

    ``chapter2.md`` sorts before ``chapter10.md`` and ``1-part2.md`` before
    ``1-part10.md``. Ties (``02-a`` vs ``2-a``) fall back to the plain name.
    """
    runs: List[Tuple[int, int, str]] = []
    for index, chunk in enumerate(_NUMERIC_RUN.split(name)):
        if not chunk:
            continue
        if index % 2:
            runs.append((0, int(chunk), ""))
        else:
            runs.append((1, 0, chunk))
    prefixed = 0 if name[:1].isdigit() else 1
    return (prefixed, tuple(runs), name)


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore or autodoc.yml."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        target = rel_path
        if self.anchored or self.has_slash:
            if fnmatchcase(target, self.pattern):
                return True
            if self.directory_only and target.startswith(f"{self.pattern}/"):
                return True
            return False

        for part in target.split("/"):
            if fnmatchcase(part, self.pattern):
                return True
        return False


def build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    has_slash = "/" in pattern
    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash=has_slash,
    )


def _parse_gitignore(path: Path) -> List[IgnoreRule]:
    if not path.exists():
        return []

    rules: List[IgnoreRule] = []
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def _should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def _is_excluded_file(name: str) -> bool:
    if name in _EXCLUDED_FILES:
        return True
    return any(fnmatchcase(name, pattern) for pattern in _EXCLUDED_FILE_PATTERNS)


class FileDiscovery:
    """Walks a project root and classifies its content files."""

    def __init__(
        self,
        *,
        exclude_paths: Sequence[str] = (),
        output_dir: Path | str | None = "output",
        templates_dir: Path | str = "templates",
    ) -> None:
        self.exclude_paths = list(exclude_paths)
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.templates_dir = Path(templates_dir)
        self.logger = get_logger("discovery")

    @classmethod
    def from_config(cls, config: AutodocConfig) -> "FileDiscovery":
        return cls(
            exclude_paths=config.exclude_paths,
            output_dir=config.output_dir,
            templates_dir=config.templates_dir,
        )

    def discover(self, root: Path | str) -> DiscoveredProject:
        """Return every content file under ``root``, classified and ordered."""
        root_path = Path(root).expanduser()
        if not root_path.exists():
            raise DiscoveryError(f"Project path not found: {root}")
        if not root_path.is_dir():
            raise DiscoveryError(f"Project path is not a directory: {root}")
        root_path = root_path.resolve()

        rules = self._load_ignore_rules(root_path)
        templates_rel = self._relative_to_root(root_path, self.templates_dir)

        files: List[DiscoveredFile] = []
        for path in self._iter_files(root_path, rules):
            rel_path = path.relative_to(root_path).as_posix()
            kind = self._classify(rel_path, path, templates_rel)
            if kind is None:
                continue
            if kind is FileKind.FRAGMENT:
                sort_key: Tuple[object, ...] = natural_sort_key(path.name)
            else:
                sort_key = (rel_path,)
            files.append(DiscoveredFile(path=path, rel_path=rel_path, kind=kind, sort_key=sort_key))

        files.sort(key=lambda item: (item.kind.value, item.sort_key))
        project = DiscoveredProject(root=root_path, files=files)
        self.logger.info(
            "Found %d fragments, %d diagram sources, %d images",
            len(project.fragments),
            len(project.diagram_sources),
            len(project.images),
        )
        return project

    def _load_ignore_rules(self, root: Path) -> List[IgnoreRule]:
        rules = _parse_gitignore(root / ".gitignore")
        output_rel = self._relative_to_root(root, self.output_dir) if self.output_dir else None
        if output_rel:
            rule = build_ignore_rule(f"/{output_rel}/")
            if rule is not None:
                rules.append(rule)
        for pattern in self.exclude_paths:
            rule = build_ignore_rule(pattern)
            if rule is not None:
                rules.append(rule)
        return rules

    @staticmethod
    def _relative_to_root(root: Path, path: Optional[Path]) -> Optional[str]:
        if path is None:
            return None
        if not path.is_absolute():
            return path.as_posix().strip("/") or None
        try:
            return path.resolve().relative_to(root).as_posix()
        except ValueError:
            return None

    @staticmethod
    def _iter_files(root: Path, rules: Sequence[IgnoreRule]) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(root):
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

            filtered_dirs = []
            for name in sorted(dirnames):
                if name.startswith(".") or name in _EXCLUDED_DIRS:
                    continue
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if _should_ignore(rel_path, True, rules):
                    continue
                filtered_dirs.append(name)
            dirnames[:] = filtered_dirs

            for filename in sorted(filenames):
                if filename.startswith(".") or _is_excluded_file(filename):
                    continue
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if _should_ignore(rel_path, False, rules):
                    continue
                yield current_dir / filename

    @staticmethod
    def _classify(rel_path: str, path: Path, templates_rel: Optional[str]) -> Optional[FileKind]:
        suffix = path.suffix.lower()
        depth = rel_path.count("/")

        if templates_rel and rel_path.startswith(f"{templates_rel}/"):
            return FileKind.TEMPLATE if suffix in _TEMPLATE_SUFFIXES else None
        if suffix in _FRAGMENT_SUFFIXES:
            return FileKind.FRAGMENT if depth == 0 else None
        if suffix in _DIAGRAM_SUFFIXES and depth < _MAX_DIAGRAM_DEPTH:
            return FileKind.DIAGRAM_SOURCE
        if suffix in _IMAGE_SUFFIXES:
            return FileKind.IMAGE
        if suffix in _BIBLIOGRAPHY_SUFFIXES and depth < _MAX_BIBLIOGRAPHY_DEPTH:
            return FileKind.BIBLIOGRAPHY
        return None


__all__ = ["FileDiscovery", "IgnoreRule", "build_ignore_rule", "natural_sort_key"]
