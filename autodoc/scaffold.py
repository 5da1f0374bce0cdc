"""Project scaffolding for ``autodoc init``."""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from jinja2 import Environment

from .config import AutodocConfig, find_config_file, write_config
from .logging import get_logger

PROJECT_DIRECTORIES = ("output", "templates", "images")

_ENV = Environment(keep_trailing_newline=True, autoescape=False)

_SETUP_TEMPLATE = _ENV.from_string(
    """---
# Document metadata
title: {{ title | tojson }}
author: ["Your Name"]
date: "{{ date }}"
# subtitle: "Document Subtitle"

# Language
lang: "en"

# Structure
top-level-division: "section"
numbersections: true
# toc: true
# toc-depth: 3

# Layout
# documentclass: "article"
# geometry: ["margin=2.5cm"]
# fontsize: "11pt"

# Fonts (XeLaTeX)
# mainfont: "Times New Roman"
# monofont: "Courier New"

# Bibliography
# bibliography: "references.bib"
# csl: "ieee.csl"

# Template options
# titlepage: true
# logo: "images/logo.png"
---

# Project Setup

The frontmatter above holds the document settings. Other fragments may add
fields; for a field set in several places this file wins.
"""
)

_INTRODUCTION_TEMPLATE = _ENV.from_string(
    """# Introduction

Welcome to your new autodoc project: **{{ title }}**!

Add content in numbered Markdown files such as `02-background.md`. Fragments
are joined in natural order, so `chapter2.md` comes before `chapter10.md`.

```mermaid
graph LR
    A[Markdown] --> B[autodoc]
    B --> C[PDF]
    B --> D[DOCX]
    B --> E[HTML]
```
"""
)


@dataclass
class ScaffoldResult:
    """Paths touched while scaffolding a project."""

    root: Path
    created: List[Path] = field(default_factory=list)
    kept: List[Path] = field(default_factory=list)


class ProjectScaffolder:
    """Creates the starter layout of a document project without overwriting files."""

    def __init__(self, *, today: Optional[_dt.date] = None) -> None:
        self.logger = get_logger("scaffold")
        self.today = today or _dt.date.today()

    def initialize(self, path: Path, *, name: Optional[str] = None) -> ScaffoldResult:
        root = path.expanduser().resolve()
        root.mkdir(parents=True, exist_ok=True)
        title = name or root.name or "document"
        result = ScaffoldResult(root=root)
        self.logger.info("Initializing document project %s in %s", title, root)

        for directory in PROJECT_DIRECTORIES:
            target = root / directory
            if target.is_dir():
                result.kept.append(target)
                continue
            target.mkdir(parents=True)
            result.created.append(target)

        config = AutodocConfig(root=root, name=title)
        self._write(result, root / config.setup_file, _SETUP_TEMPLATE.render(title=title, date=self.today.isoformat()))
        self._write(result, root / "01-introduction.md", _INTRODUCTION_TEMPLATE.render(title=title))

        existing = find_config_file(root)
        if existing is not None:
            result.kept.append(existing)
        else:
            result.created.append(write_config(config))

        self.logger.debug("Created %d path(s), kept %d", len(result.created), len(result.kept))
        return result

    def _write(self, result: ScaffoldResult, target: Path, text: str) -> None:
        if target.exists():
            self.logger.debug("Keeping existing %s", target)
            result.kept.append(target)
            return
        target.write_text(text, encoding="utf-8")
        result.created.append(target)


__all__ = ["PROJECT_DIRECTORIES", "ProjectScaffolder", "ScaffoldResult"]
