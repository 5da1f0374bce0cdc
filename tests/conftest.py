from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.project_builder import ProjectBuilder


@pytest.fixture
def project_builder(tmp_path: Path) -> ProjectBuilder:
    """Provide a reusable project builder rooted at the pytest tmp_path."""
    return ProjectBuilder(tmp_path)


@pytest.fixture
def fake_converter_env(monkeypatch: pytest.MonkeyPatch, project_builder: ProjectBuilder) -> Path:
    """Route fake converter argv logs into the builder's log directory."""
    monkeypatch.setenv("AUTODOC_FAKE_LOG", str(project_builder.log_dir))
    monkeypatch.delenv("AUTODOC_FAKE_FAIL", raising=False)
    monkeypatch.delenv("AUTODOC_FAKE_DELAY", raising=False)
    return project_builder.log_dir
