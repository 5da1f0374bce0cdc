"""Tests for local asset reference extraction."""

from __future__ import annotations

from pathlib import Path

from autodoc.dependencies import DependencyExtractor, DependencyGraph, collect_references, is_local_target
from autodoc.metadata import MetadataParser
from tests._fixtures.project_builder import ProjectBuilder


def test_collects_images_and_links_from_element_tree() -> None:
    content = """
# Title

![Figure](images/fig.png "caption") and [details](notes/details.md#part).

```markdown
![in fence](fenced.png)
```

Inline `![in code](code.png)` stays text.
"""
    references = collect_references(content)

    assert ("image", "images/fig.png") in references
    assert ("link", "notes/details.md#part") in references
    targets = [target for _, target in references]
    assert "fenced.png" not in targets
    assert "code.png" not in targets


def test_remote_targets_are_not_local() -> None:
    assert not is_local_target("https://example.com/a.png")
    assert not is_local_target("//cdn.example.com/a.png")
    assert not is_local_target("data:image/png;base64,AAAA")
    assert not is_local_target("mailto:someone@example.com")
    assert not is_local_target("#section")
    assert is_local_target("images/a.png")
    assert is_local_target("../shared/a.png")


def test_extract_resolves_relative_to_owner(project_builder: ProjectBuilder) -> None:
    project_builder.write(
        {
            "01-body.md": "![Fig](images/my%20fig.png?raw=1)\n\n[Up](./images/../02-next.md)\n",
            "02-next.md": "Next\n",
        }
    )
    project_builder.write_bytes("images/my fig.png", b"png")
    parsed, _ = MetadataParser().parse_all(project_builder.discover().fragments)

    edges, warnings = DependencyExtractor().extract(parsed[0])

    root = project_builder.path().resolve()
    assert [edge.target for edge in edges] == [root / "images" / "my fig.png", root / "02-next.md"]
    assert warnings == []


def test_missing_asset_warns_but_keeps_edge(project_builder: ProjectBuilder) -> None:
    project_builder.write({"01-body.md": "![Missing](images/later.png)\n"})
    parsed, _ = MetadataParser().parse_all(project_builder.discover().fragments)

    graph = DependencyExtractor().build_graph(parsed)

    owner = parsed[0].path
    assert graph.targets(owner) == [owner.parent / "images" / "later.png"]
    assert len(graph.warnings) == 1
    assert graph.warnings[0].reference == "images/later.png"


def test_transitive_targets_follow_links_without_looping() -> None:
    graph = DependencyGraph()
    a, b, c = Path("/p/a.md"), Path("/p/b.md"), Path("/p/c.png")
    graph.add(a, b)
    graph.add(b, a)
    graph.add(b, c)

    assert graph.transitive_targets(a) == [b, c]
