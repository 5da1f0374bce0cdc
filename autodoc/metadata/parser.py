"""Frontmatter extraction for Markdown fragments."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List, Tuple

import yaml

from ..errors import ParseError
from ..logging import get_logger
from ..models import DiscoveredFile, DocumentMetadata, ParsedFragment
from ..utils import hash_bytes

_FRONTMATTER = re.compile(
    r"\A---[ \t]*\n(?P<body>(?:.*?\n)??)(?:---|\.\.\.)[ \t]*(?:\n|\Z)",
    re.DOTALL,
)

DIAGRAM_LANGUAGES = ("mermaid",)
_INLINE_DIAGRAM = re.compile(
    r"^[ \t]*(?:```|~~~)[ \t]*\{?\.?(?:%s)\b" % "|".join(DIAGRAM_LANGUAGES),
    re.MULTILINE,
)


def split_frontmatter(text: str) -> Tuple[str | None, str]:
    """Return ``(frontmatter_source, remaining_content)``.

    ``frontmatter_source`` is ``None`` when the text does not open with a
    closed ``---`` block.
    """
    normalised = text.replace("\r\n", "\n")
    if normalised.startswith("\ufeff"):
        normalised = normalised[1:]
    match = _FRONTMATTER.match(normalised)
    if not match:
        return None, normalised
    return match.group("body"), normalised[match.end():]


def has_inline_diagrams(content: str) -> bool:
    return _INLINE_DIAGRAM.search(content) is not None


class MetadataParser:
    """Parses fragments into metadata and content, collecting errors."""

    def __init__(self) -> None:
        self.logger = get_logger("metadata")

    def parse_text(self, path: Path, text: str) -> Tuple[DocumentMetadata, str]:
        """Parse raw fragment text. Raises ParseError for a malformed block."""
        source, content = split_frontmatter(text)
        if source is None:
            return DocumentMetadata(), content
        if not source.strip():
            return DocumentMetadata(), content
        try:
            data = yaml.safe_load(source)
        except yaml.YAMLError as exc:
            raise ParseError(path, f"invalid frontmatter: {_first_line(exc)}") from exc
        if data is None:
            return DocumentMetadata(), content
        if not isinstance(data, dict):
            raise ParseError(path, "frontmatter must be a mapping")
        return DocumentMetadata.from_mapping(data), content

    def parse_bytes(self, file: DiscoveredFile, raw: bytes) -> Tuple[ParsedFragment, List[ParseError]]:
        """Parse the exact bytes read for ``file``.

        The fragment is always returned. Undecodable bytes are replaced and
        malformed frontmatter leaves the metadata empty; both are reported as
        errors alongside the fragment.
        """
        errors: List[ParseError] = []
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            errors.append(ParseError(file.path, f"not valid UTF-8, undecodable bytes replaced: {exc.reason}"))
            text = raw.decode("utf-8", errors="replace")
        try:
            metadata, content = self.parse_text(file.path, text)
        except ParseError as exc:
            errors.append(exc)
            metadata = DocumentMetadata()
            _, content = split_frontmatter(text)
        fragment = ParsedFragment(
            file=file,
            metadata=metadata,
            content=content,
            has_inline_diagrams=has_inline_diagrams(content),
            fingerprint=hash_bytes(raw),
        )
        return fragment, errors

    def parse_file(self, file: DiscoveredFile) -> ParsedFragment:
        """Parse one fragment, raising the first problem found."""
        fragment, errors = self.parse_bytes(file, file.path.read_bytes())
        if errors:
            raise errors[0]
        return fragment

    def parse_all(self, files: Iterable[DiscoveredFile]) -> Tuple[List[ParsedFragment], List[ParseError]]:
        """Parse every fragment; one bad file never stops the batch.

        A file that cannot be read at all is reported with ``fatal`` set.
        """
        parsed: List[ParsedFragment] = []
        errors: List[ParseError] = []
        for file in files:
            self.logger.debug("Parsing fragment %s", file.rel_path)
            try:
                raw = file.path.read_bytes()
            except OSError as exc:
                errors.append(ParseError(file.path, f"unreadable: {exc}", fatal=True))
                continue
            fragment, problems = self.parse_bytes(file, raw)
            parsed.append(fragment)
            errors.extend(problems)
        if errors:
            self.logger.warning(
                "%d fragment problem(s):\n%s",
                len(errors),
                "\n".join(f"  - {error}" for error in errors),
            )
        return parsed, errors


def _first_line(exc: Exception) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__


__all__ = ["DIAGRAM_LANGUAGES", "MetadataParser", "has_inline_diagrams", "split_frontmatter"]
