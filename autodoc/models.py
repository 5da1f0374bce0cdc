"""Core data models shared across autodoc components."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .utils import as_bool, as_int, as_str, as_str_list, is_empty


class FileKind(str, Enum):
    """Classification assigned to every discovered project file."""

    FRAGMENT = "fragment"
    DIAGRAM_SOURCE = "diagram-source"
    IMAGE = "image"
    TEMPLATE = "template"
    BIBLIOGRAPHY = "bibliography"


@dataclass(frozen=True)
class DiscoveredFile:
    """A project file found during discovery. Immutable for the run."""

    path: Path
    rel_path: str
    kind: FileKind
    sort_key: Tuple[Any, ...]

    @property
    def name(self) -> str:
        return self.path.name


STRING_FIELDS = (
    "title",
    "subtitle",
    "date",
    "lang",
    "babel_lang",
    "top_level_division",
    "documentclass",
    "fontsize",
    "mainfont",
    "sansfont",
    "monofont",
    "linkcolor",
    "urlcolor",
    "citecolor",
    "csl",
)
BOOL_FIELDS = ("numbersections", "toc", "lof", "lot", "colorlinks", "link_citations", "book")
INT_FIELDS = ("secnumdepth", "toc_depth")
ARRAY_FIELDS = ("author", "classoption", "geometry", "bibliography", "css")
KNOWN_FIELDS = frozenset(STRING_FIELDS + BOOL_FIELDS + INT_FIELDS + ARRAY_FIELDS)

# Accepted spellings that do not map onto a field name by swapping "-" for "_".
_FIELD_ALIASES = {
    "authors": "author",
    "stylesheet": "css",
    "stylesheets": "css",
    "number_sections": "numbersections",
    "number-sections": "numbersections",
}


def canonical_field_name(key: str) -> Optional[str]:
    """Return the known field a frontmatter key maps to, if any."""
    if key in _FIELD_ALIASES:
        return _FIELD_ALIASES[key]
    candidate = key.replace("-", "_")
    return candidate if candidate in KNOWN_FIELDS else None


@dataclass
class DocumentMetadata:
    """Frontmatter of one fragment: known pandoc fields plus verbatim extras."""

    title: Optional[str] = None
    subtitle: Optional[str] = None
    author: Optional[List[str]] = None
    date: Optional[str] = None

    lang: Optional[str] = None
    babel_lang: Optional[str] = None

    top_level_division: Optional[str] = None
    numbersections: Optional[bool] = None
    secnumdepth: Optional[int] = None
    toc: Optional[bool] = None
    toc_depth: Optional[int] = None
    lof: Optional[bool] = None
    lot: Optional[bool] = None
    book: Optional[bool] = None

    documentclass: Optional[str] = None
    classoption: Optional[List[str]] = None
    geometry: Optional[List[str]] = None
    fontsize: Optional[str] = None
    mainfont: Optional[str] = None
    sansfont: Optional[str] = None
    monofont: Optional[str] = None
    colorlinks: Optional[bool] = None
    linkcolor: Optional[str] = None
    urlcolor: Optional[str] = None
    citecolor: Optional[str] = None
    css: Optional[List[str]] = None

    bibliography: Optional[List[str]] = None
    csl: Optional[str] = None
    link_citations: Optional[bool] = None

    custom: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "DocumentMetadata":
        """Build metadata from a parsed frontmatter mapping.

        Known keys are coerced to their field types; values that cannot be
        coerced and all unrecognised keys are kept verbatim in ``custom``.
        """
        metadata = cls()
        for raw_key, value in data.items():
            key = str(raw_key)
            name = canonical_field_name(key)
            if name is None:
                metadata.custom[key] = value
                continue
            coerced = _coerce_field(name, value)
            if coerced is None and not is_empty(value):
                metadata.custom[key] = value
                continue
            setattr(metadata, name, coerced)
        return metadata

    def get(self, name: str) -> Any:
        if name in KNOWN_FIELDS:
            return getattr(self, name)
        return self.custom.get(name)

    def known_items(self) -> Iterator[Tuple[str, Any]]:
        for item in fields(self):
            if item.name in KNOWN_FIELDS:
                yield item.name, getattr(self, item.name)

    def is_empty(self) -> bool:
        return all(value is None for _, value in self.known_items()) and not self.custom


@dataclass
class MergedMetadata(DocumentMetadata):
    """The single metadata snapshot used for one build."""

    sources: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for name, value in self.known_items():
            if value is not None:
                payload[name] = list(value) if isinstance(value, list) else value
        for key in sorted(self.custom):
            payload[key] = self.custom[key]
        return payload

    def canonical_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False, default=str)


def _coerce_field(name: str, value: Any) -> Any:
    if name in ARRAY_FIELDS:
        items = as_str_list(value)
        return items if items else None
    if name in BOOL_FIELDS:
        return as_bool(value)
    if name in INT_FIELDS:
        return as_int(value)
    return as_str(value)


@dataclass
class ParsedFragment:
    """A fragment after frontmatter extraction."""

    file: DiscoveredFile
    metadata: DocumentMetadata
    content: str
    has_inline_diagrams: bool
    fingerprint: Optional[str] = None

    @property
    def path(self) -> Path:
        return self.file.path


@dataclass(frozen=True)
class DependencyEdge:
    """A fragment's reference to a local asset."""

    owner: Path
    target: Path


@dataclass
class CacheEntry:
    """Persisted build state for one tracked input of one format."""

    path: str
    fingerprint: str
    output: str
    built_at: str
    dependencies: Dict[str, Optional[str]] = field(default_factory=dict)


@dataclass
class DiscoveredProject:
    """Classified, naturally ordered view of a project root."""

    root: Path
    files: List[DiscoveredFile]

    def of_kind(self, kind: FileKind) -> List[DiscoveredFile]:
        return [item for item in self.files if item.kind == kind]

    @property
    def fragments(self) -> List[DiscoveredFile]:
        return self.of_kind(FileKind.FRAGMENT)

    @property
    def diagram_sources(self) -> List[DiscoveredFile]:
        return self.of_kind(FileKind.DIAGRAM_SOURCE)

    @property
    def images(self) -> List[DiscoveredFile]:
        return self.of_kind(FileKind.IMAGE)

    @property
    def templates(self) -> List[DiscoveredFile]:
        return self.of_kind(FileKind.TEMPLATE)

    @property
    def bibliographies(self) -> List[DiscoveredFile]:
        return self.of_kind(FileKind.BIBLIOGRAPHY)


@dataclass
class BuildManifest:
    """Everything the converter needs to produce one artifact."""

    format: str
    inputs: List[Path]
    metadata: MergedMetadata
    output: Path
    template: Optional[Path] = None
    bibliography_files: List[Path] = field(default_factory=list)


@dataclass
class FormatResult:
    """Outcome of building one requested format."""

    format: str
    status: str
    output: Optional[Path] = None
    error: Optional[str] = None
    rebuilt_inputs: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in {"built", "skipped"}


@dataclass
class BuildReport:
    """Aggregated outcome of a pipeline run."""

    results: List[FormatResult] = field(default_factory=list)
    metadata: Optional[MergedMetadata] = None
    parse_errors: List[str] = field(default_factory=list)
    dependency_warnings: List[str] = field(default_factory=list)
    render_warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def result_for(self, fmt: str) -> Optional[FormatResult]:
        for result in self.results:
            if result.format == fmt:
                return result
        return None

    def failed_formats(self) -> Sequence[str]:
        return [result.format for result in self.results if not result.ok]
