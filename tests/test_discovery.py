"""Tests for project discovery and natural ordering."""

from __future__ import annotations

from pathlib import Path

import pytest

from autodoc.discovery import FileDiscovery, natural_sort_key
from autodoc.errors import DiscoveryError
from autodoc.models import FileKind
from tests._fixtures.project_builder import ProjectBuilder


def test_natural_sort_orders_numeric_prefixes_as_integers() -> None:
    names = ["10-results.md", "2-method.md", "intro.md", "1-setup.md", "02-alt.md"]
    ordered = sorted(names, key=natural_sort_key)
    assert ordered == ["1-setup.md", "02-alt.md", "2-method.md", "10-results.md", "intro.md"]


def test_natural_sort_compares_embedded_numbers() -> None:
    names = ["chapter10.md", "1-part10.md", "chapter2.md", "1-part2.md", "1-part2b.md"]
    ordered = sorted(names, key=natural_sort_key)
    assert ordered == ["1-part2.md", "1-part2b.md", "1-part10.md", "chapter2.md", "chapter10.md"]


def test_fragments_sorted_naturally(project_builder: ProjectBuilder) -> None:
    project_builder.write(
        {
            "10-x.md": "ten\n",
            "2-x.md": "two\n",
            "appendix.md": "tail\n",
            "00-setup.md": "---\ntitle: T\n---\n",
        }
    )

    project = project_builder.discover()

    assert [item.rel_path for item in project.fragments] == [
        "00-setup.md",
        "2-x.md",
        "10-x.md",
        "appendix.md",
    ]


def test_conventional_and_hidden_files_are_excluded(project_builder: ProjectBuilder) -> None:
    project_builder.write(
        {
            "README.md": "# readme\n",
            "LICENSE.md": "MIT\n",
            "CHANGELOG.md": "changes\n",
            "autodoc.yml": "name: doc\n",
            ".draft.md": "hidden\n",
            ".notes/idea.md": "hidden dir\n",
            "output/old.md": "generated\n",
            "01-body.md": "body\n",
        }
    )

    project = project_builder.discover()

    assert [item.rel_path for item in project.fragments] == ["01-body.md"]


def test_classifies_assets(project_builder: ProjectBuilder) -> None:
    project_builder.write(
        {
            "01-body.md": "body\n",
            "diagrams/flow.mmd": "graph TD; A-->B\n",
            "deep/a/b/flow.mmd": "graph TD; A-->B\n",
            "refs.bib": "@book{x}\n",
            "templates/eisvogel.latex": "latex\n",
            "chapters/nested.md": "not a fragment\n",
        }
    )
    project_builder.write_bytes("images/figure.png", b"\x89PNG")

    project = project_builder.discover()

    assert [item.rel_path for item in project.diagram_sources] == ["diagrams/flow.mmd"]
    assert [item.rel_path for item in project.images] == ["images/figure.png"]
    assert [item.rel_path for item in project.bibliographies] == ["refs.bib"]
    assert [item.rel_path for item in project.templates] == ["templates/eisvogel.latex"]
    assert all(item.kind is FileKind.FRAGMENT for item in project.fragments)
    assert [item.rel_path for item in project.fragments] == ["01-body.md"]


def test_gitignore_and_exclude_paths_apply(project_builder: ProjectBuilder) -> None:
    project_builder.write(
        {
            ".gitignore": "drafts/\nscratch-*.md\n",
            "drafts/fig.mmd": "graph TD; A-->B\n",
            "scratch-1.md": "x\n",
            "wip.md": "y\n",
            "01-body.md": "body\n",
        }
    )

    project = FileDiscovery(exclude_paths=["wip.md"]).discover(project_builder.path())

    assert [item.rel_path for item in project.fragments] == ["01-body.md"]
    assert project.diagram_sources == []


def test_missing_root_raises(tmp_path: Path) -> None:
    with pytest.raises(DiscoveryError):
        FileDiscovery().discover(tmp_path / "absent")


def test_file_root_raises(tmp_path: Path) -> None:
    target = tmp_path / "file.md"
    target.write_text("x", encoding="utf-8")
    with pytest.raises(DiscoveryError):
        FileDiscovery().discover(target)
