"""Local asset references (images, links) extracted from fragment structure."""

from __future__ import annotations

import os
import threading
import xml.etree.ElementTree as etree
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple
from urllib.parse import unquote, urlsplit

import markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from .errors import DependencyWarning
from .logging import get_logger
from .models import DependencyEdge, ParsedFragment


class _ReferenceCollector(Treeprocessor):
    """Records image sources and link targets from the parsed element tree."""

    def __init__(self, md: markdown.Markdown) -> None:
        super().__init__(md)
        self.references: List[Tuple[str, str]] = []

    def run(self, root: etree.Element) -> None:
        for element in root.iter():
            if element.tag == "img":
                src = element.get("src")
                if src:
                    self.references.append(("image", src))
            elif element.tag == "a":
                href = element.get("href")
                if href:
                    self.references.append(("link", href))


class ReferenceExtension(Extension):
    """Python-Markdown extension exposing collected references."""

    def extendMarkdown(self, md: markdown.Markdown) -> None:  # noqa: N802 - markdown API
        self.collector = _ReferenceCollector(md)
        # Runs after the inline processor (priority 20) so links exist as elements.
        md.treeprocessors.register(self.collector, "autodoc_references", 5)


def collect_references(content: str) -> List[Tuple[str, str]]:
    """Return ``(kind, target)`` pairs found in Markdown ``content``."""
    extension = ReferenceExtension()
    converter = markdown.Markdown(extensions=["fenced_code", "tables", "attr_list", extension])
    converter.convert(content)
    return list(extension.collector.references)


def is_local_target(target: str) -> bool:
    target = target.strip()
    if not target or target.startswith("#") or target.startswith("//"):
        return False
    return not urlsplit(target).scheme


def resolve_target(owner: Path, target: str) -> Optional[Path]:
    if not is_local_target(target):
        return None
    raw_path = unquote(urlsplit(target.strip()).path)
    if not raw_path:
        return None
    candidate = Path(raw_path)
    if not candidate.is_absolute():
        candidate = owner.parent / candidate
    # Collapse ".." without touching the filesystem so missing assets resolve too.
    return Path(os.path.normpath(str(candidate)))


@dataclass
class DependencyGraph:
    """Edges from fragments to the local assets they reference."""

    edges: Set[DependencyEdge] = field(default_factory=set)
    warnings: List[DependencyWarning] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, owner: Path, target: Path) -> None:
        with self._lock:
            self.edges.add(DependencyEdge(owner=owner, target=target))

    def targets(self, owner: Path) -> List[Path]:
        with self._lock:
            return sorted({edge.target for edge in self.edges if edge.owner == owner})

    def transitive_targets(self, owner: Path) -> List[Path]:
        """Every asset reachable from ``owner``, following fragment-to-fragment links."""
        seen: Set[Path] = set()
        stack = [owner]
        while stack:
            current = stack.pop()
            for target in self.targets(current):
                if target in seen or target == owner:
                    continue
                seen.add(target)
                stack.append(target)
        return sorted(seen)


class DependencyExtractor:
    """Resolves image and local link targets per fragment."""

    def __init__(self) -> None:
        self.logger = get_logger("dependencies")

    def extract(self, fragment: ParsedFragment) -> Tuple[List[DependencyEdge], List[DependencyWarning]]:
        owner = fragment.path
        edges: List[DependencyEdge] = []
        warnings: List[DependencyWarning] = []
        seen: Set[Path] = set()
        for _, reference in collect_references(fragment.content):
            target = resolve_target(owner, reference)
            if target is None or target in seen:
                continue
            seen.add(target)
            edges.append(DependencyEdge(owner=owner, target=target))
            if not target.exists():
                warnings.append(DependencyWarning(owner, target, reference))
        return edges, warnings

    def build_graph(self, fragments: Sequence[ParsedFragment]) -> DependencyGraph:
        graph = DependencyGraph()
        for fragment in fragments:
            edges, warnings = self.extract(fragment)
            for edge in edges:
                graph.add(edge.owner, edge.target)
            graph.warnings.extend(warnings)
        if graph.warnings:
            self.logger.warning(
                "%d missing local asset(s):\n%s",
                len(graph.warnings),
                "\n".join(f"  - {warning}" for warning in graph.warnings),
            )
        return graph


__all__ = [
    "DependencyExtractor",
    "DependencyGraph",
    "ReferenceExtension",
    "collect_references",
    "is_local_target",
    "resolve_target",
]
