from __future__ import annotations

import datetime as dt
from pathlib import Path

from autodoc.config import load_config
from autodoc.discovery import FileDiscovery
from autodoc.metadata import MetadataParser, merge_metadata
from autodoc.scaffold import PROJECT_DIRECTORIES, ProjectScaffolder


def test_initialize_creates_layout(tmp_path: Path) -> None:
    scaffolder = ProjectScaffolder(today=dt.date(2026, 3, 1))

    result = scaffolder.initialize(tmp_path / "thesis", name='Notes & "Quotes"')

    root = (tmp_path / "thesis").resolve()
    assert result.root == root
    for directory in PROJECT_DIRECTORIES:
        assert (root / directory).is_dir()
    assert result.kept == []
    assert root / "autodoc.yml" in result.created

    config = load_config(root)
    project = FileDiscovery.from_config(config).discover(root)
    assert [item.rel_path for item in project.fragments] == ["00-setup.md", "01-introduction.md"]
    fragments, errors = MetadataParser().parse_all(project.fragments)
    assert errors == []
    merged = merge_metadata(fragments, setup_file=config.setup_file)
    assert merged.get("title") == 'Notes & "Quotes"'
    assert merged.get("date") == "2026-03-01"
    assert merged.get("lang") == "en"
    assert fragments[1].has_inline_diagrams


def test_initialize_keeps_existing_files(tmp_path: Path) -> None:
    tmp_path = tmp_path.resolve()
    (tmp_path / "00-setup.md").write_text("---\ntitle: Mine\n---\n", encoding="utf-8")
    (tmp_path / "autodoc.yaml").write_text("name: mine\n", encoding="utf-8")
    (tmp_path / "images").mkdir()

    result = ProjectScaffolder().initialize(tmp_path)

    assert (tmp_path / "00-setup.md").read_text(encoding="utf-8") == "---\ntitle: Mine\n---\n"
    assert not (tmp_path / "autodoc.yml").exists()
    assert tmp_path / "00-setup.md" in result.kept
    assert tmp_path / "images" in result.kept
    assert tmp_path / "01-introduction.md" in result.created
    assert load_config(tmp_path).name == "mine"


def test_initialize_defaults_title_to_directory_name(tmp_path: Path) -> None:
    ProjectScaffolder().initialize(tmp_path / "field-guide")

    text = (tmp_path / "field-guide" / "00-setup.md").read_text(encoding="utf-8")
    assert 'title: "field-guide"' in text
    assert "**field-guide**" in (tmp_path / "field-guide" / "01-introduction.md").read_text(encoding="utf-8")
