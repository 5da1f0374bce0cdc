"""Tests for frontmatter extraction."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from autodoc.errors import ParseError
from autodoc.metadata import MetadataParser, has_inline_diagrams, split_frontmatter
from tests._fixtures.project_builder import ProjectBuilder


def test_split_frontmatter_returns_block_and_body() -> None:
    source, content = split_frontmatter("---\ntitle: T\n---\n# Heading\n")
    assert source == "title: T\n"
    assert content == "# Heading\n"


def test_split_frontmatter_accepts_dots_terminator_and_crlf() -> None:
    source, content = split_frontmatter("---\r\nlang: en\r\n...\r\nBody\r\n")
    assert source == "lang: en\n"
    assert content == "Body\n"


def test_split_frontmatter_without_block() -> None:
    source, content = split_frontmatter("# Just content\n---\nnot: meta\n---\n")
    assert source is None
    assert content.startswith("# Just content")


def test_empty_block_yields_empty_metadata() -> None:
    metadata, content = MetadataParser().parse_text(Path("a.md"), "---\n---\nBody\n")
    assert metadata.is_empty()
    assert content == "Body\n"


def test_known_fields_are_normalised() -> None:
    text = """---
title: Report
author: Ada Lovelace
babel-lang: ngerman
toc-depth: "3"
numbersections: false
date: 2024-05-01
reviewer: Grace
---
Body
"""
    metadata, _ = MetadataParser().parse_text(Path("a.md"), text)

    assert metadata.title == "Report"
    assert metadata.author == ["Ada Lovelace"]
    assert metadata.babel_lang == "ngerman"
    assert metadata.toc_depth == 3
    assert metadata.numbersections is False
    assert metadata.date == "2024-05-01"
    assert metadata.custom == {"reviewer": "Grace"}


def test_invalid_yaml_raises_parse_error() -> None:
    with pytest.raises(ParseError) as excinfo:
        MetadataParser().parse_text(Path("bad.md"), "---\ntitle: [unclosed\n---\nBody\n")
    assert excinfo.value.path == Path("bad.md")


def test_non_mapping_frontmatter_raises_parse_error() -> None:
    with pytest.raises(ParseError):
        MetadataParser().parse_text(Path("list.md"), "---\n- a\n- b\n---\n")


def test_parse_all_collects_errors_and_keeps_content(project_builder: ProjectBuilder) -> None:
    project_builder.write(
        {
            "01-good.md": "---\ntitle: Good\n---\nGood body\n",
            "02-bad.md": "---\ntitle: [oops\n---\nBad body\n",
            "03-list.md": "---\n- x\n---\nList body\n",
        }
    )
    project = project_builder.discover()

    parsed, errors = MetadataParser().parse_all(project.fragments)

    assert [item.file.rel_path for item in parsed] == ["01-good.md", "02-bad.md", "03-list.md"]
    assert len(errors) == 2
    assert parsed[1].metadata.is_empty()
    assert parsed[1].content == "Bad body\n"
    assert parsed[2].content == "List body\n"


def test_inline_diagram_detection() -> None:
    assert has_inline_diagrams("Text\n\n```mermaid\ngraph TD; A-->B\n```\n")
    assert has_inline_diagrams("~~~ {.mermaid}\nsequenceDiagram\n~~~\n")
    assert not has_inline_diagrams("```python\nprint('mermaid')\n```\n")


def test_fingerprint_matches_bytes_that_were_parsed(project_builder: ProjectBuilder) -> None:
    project_builder.write({"01-body.md": "Original body\n"})
    project = project_builder.discover()

    parsed, _ = MetadataParser().parse_all(project.fragments)
    (project_builder.path() / "01-body.md").write_text("Edited body\n", encoding="utf-8")

    assert parsed[0].fingerprint == hashlib.sha256(b"Original body\n").hexdigest()
    assert parsed[0].content == "Original body\n"


def test_undecodable_fragment_is_kept_with_replacement(project_builder: ProjectBuilder) -> None:
    project_builder.write({"01-good.md": "Good\n"})
    project_builder.write_bytes("02-latin1.md", "Caf\xe9 body\n".encode("latin-1"))
    project = project_builder.discover()

    parsed, errors = MetadataParser().parse_all(project.fragments)

    assert [item.file.rel_path for item in parsed] == ["01-good.md", "02-latin1.md"]
    assert parsed[1].content == "Caf\ufffd body\n"
    assert len(errors) == 1
    assert "UTF-8" in str(errors[0])
    assert errors[0].fatal is False


def test_unreadable_fragment_is_reported_as_fatal(project_builder: ProjectBuilder) -> None:
    project_builder.write({"01-good.md": "Good\n", "02-gone.md": "Gone\n"})
    project = project_builder.discover()
    (project_builder.path() / "02-gone.md").unlink()

    parsed, errors = MetadataParser().parse_all(project.fragments)

    assert [item.file.rel_path for item in parsed] == ["01-good.md"]
    assert len(errors) == 1
    assert errors[0].fatal is True
