"""Tests for the persistent build cache."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

from autodoc.models import DiscoveredFile
from autodoc.stores import BuildCache
from tests._fixtures.project_builder import ProjectBuilder


def _record(cache: BuildCache, fmt: str, files: List[DiscoveredFile], deps, artifact: Path) -> None:
    entries = [cache.make_entry(file, dependencies=deps.get(file.path, []), output=artifact) for file in files]
    cache.record_success(fmt, entries, metadata_hash="meta", template_hash="tpl")
    cache.persist()


def _setup(project_builder: ProjectBuilder):
    project_builder.write({"01-a.md": "![Fig](fig.png)\n", "02-b.md": "text\n"})
    asset = project_builder.write_bytes("fig.png", b"image-v1")
    project = project_builder.discover()
    artifact = project.root / "output" / "document.pdf"
    artifact.parent.mkdir(parents=True)
    artifact.write_bytes(b"pdf")
    deps = {project.fragments[0].path: [asset.resolve()]}
    return project, artifact, deps


def _needs(cache: BuildCache, file: DiscoveredFile, deps, artifact: Path, **overrides) -> bool:
    kwargs = {"metadata_hash": "meta", "template_hash": "tpl", "artifact": artifact}
    kwargs.update(overrides)
    return cache.needs_rebuild("pdf", file, dependencies=deps.get(file.path, []), **kwargs)


def test_no_rebuild_after_success_with_unchanged_inputs(project_builder: ProjectBuilder, tmp_path: Path) -> None:
    project, artifact, deps = _setup(project_builder)
    cache_path = tmp_path / "cache.json"
    _record(BuildCache(cache_path, project.root), "pdf", project.fragments, deps, artifact)

    reloaded = BuildCache(cache_path, project.root)

    assert not any(_needs(reloaded, file, deps, artifact) for file in project.fragments)
    assert not reloaded.input_set_changed("pdf", project.fragments)


def test_single_byte_input_change_triggers_rebuild(project_builder: ProjectBuilder, tmp_path: Path) -> None:
    project, artifact, deps = _setup(project_builder)
    cache_path = tmp_path / "cache.json"
    _record(BuildCache(cache_path, project.root), "pdf", project.fragments, deps, artifact)

    second = project.fragments[1]
    second.path.write_text("texT\n", encoding="utf-8")
    reloaded = BuildCache(cache_path, project.root)

    assert _needs(reloaded, second, deps, artifact)
    assert not _needs(reloaded, project.fragments[0], deps, artifact)


def test_asset_change_triggers_rebuild_of_owner(project_builder: ProjectBuilder, tmp_path: Path) -> None:
    project, artifact, deps = _setup(project_builder)
    cache_path = tmp_path / "cache.json"
    _record(BuildCache(cache_path, project.root), "pdf", project.fragments, deps, artifact)

    (project.root / "fig.png").write_bytes(b"image-v2")
    reloaded = BuildCache(cache_path, project.root)

    assert _needs(reloaded, project.fragments[0], deps, artifact)
    assert not _needs(reloaded, project.fragments[1], deps, artifact)


def test_created_missing_asset_triggers_rebuild(project_builder: ProjectBuilder, tmp_path: Path) -> None:
    project_builder.write({"01-a.md": "![Later](later.png)\n"})
    project = project_builder.discover()
    artifact = project.root / "document.pdf"
    artifact.write_bytes(b"pdf")
    later = project.root / "later.png"
    deps = {project.fragments[0].path: [later]}
    cache_path = tmp_path / "cache.json"
    _record(BuildCache(cache_path, project.root), "pdf", project.fragments, deps, artifact)

    assert not _needs(BuildCache(cache_path, project.root), project.fragments[0], deps, artifact)
    later.write_bytes(b"now here")
    assert _needs(BuildCache(cache_path, project.root), project.fragments[0], deps, artifact)


def test_metadata_template_and_artifact_invalidate(project_builder: ProjectBuilder, tmp_path: Path) -> None:
    project, artifact, deps = _setup(project_builder)
    cache_path = tmp_path / "cache.json"
    _record(BuildCache(cache_path, project.root), "pdf", project.fragments, deps, artifact)
    file = project.fragments[1]

    cache = BuildCache(cache_path, project.root)
    assert _needs(cache, file, deps, artifact, metadata_hash="other")
    assert _needs(cache, file, deps, artifact, template_hash="other")
    artifact.unlink()
    assert _needs(cache, file, deps, artifact)


def test_template_change_ignored_when_configured(project_builder: ProjectBuilder, tmp_path: Path) -> None:
    project, artifact, deps = _setup(project_builder)
    cache_path = tmp_path / "cache.json"
    _record(BuildCache(cache_path, project.root), "pdf", project.fragments, deps, artifact)

    cache = BuildCache(cache_path, project.root, template_invalidates=False)

    assert not _needs(cache, project.fragments[1], deps, artifact, template_hash="other")


def test_force_rebuilds_everything(project_builder: ProjectBuilder, tmp_path: Path) -> None:
    project, artifact, deps = _setup(project_builder)
    cache_path = tmp_path / "cache.json"
    _record(BuildCache(cache_path, project.root), "pdf", project.fragments, deps, artifact)

    forced = BuildCache(cache_path, project.root, force=True)

    assert all(_needs(forced, file, deps, artifact) for file in project.fragments)


def test_input_set_change_detected(project_builder: ProjectBuilder, tmp_path: Path) -> None:
    project, artifact, deps = _setup(project_builder)
    cache_path = tmp_path / "cache.json"
    _record(BuildCache(cache_path, project.root), "pdf", project.fragments[:1], deps, artifact)

    cache = BuildCache(cache_path, project.root)

    assert cache.input_set_changed("pdf", project.fragments)
    assert cache.input_set_changed("docx", project.fragments)


def test_persisted_layout(project_builder: ProjectBuilder, tmp_path: Path) -> None:
    project, artifact, deps = _setup(project_builder)
    cache_path = tmp_path / "cache.json"
    _record(BuildCache(cache_path, project.root), "pdf", project.fragments, deps, artifact)

    data = json.loads(cache_path.read_text(encoding="utf-8"))

    assert data["version"] == 1
    assert data["project"] == str(project.root)
    record = data["formats"]["pdf"]
    assert record["metadata"] == "meta"
    assert record["template"] == "tpl"
    entry = record["inputs"]["01-a.md"]
    assert entry["output"] == "output/document.pdf"
    assert entry["dependencies"] == {"fig.png": entry["dependencies"]["fig.png"]}
    assert len(entry["fingerprint"]) == 64


def test_corrupt_or_foreign_cache_is_treated_as_empty(project_builder: ProjectBuilder, tmp_path: Path) -> None:
    project, artifact, deps = _setup(project_builder)
    cache_path = tmp_path / "cache.json"

    cache_path.write_text("{not json", encoding="utf-8")
    assert BuildCache(cache_path, project.root).formats() == []

    cache_path.write_text(json.dumps({"version": 99, "project": str(project.root), "formats": {}}), encoding="utf-8")
    assert BuildCache(cache_path, project.root).formats() == []

    _record(BuildCache(cache_path, project.root), "pdf", project.fragments, deps, artifact)
    assert BuildCache(cache_path, project.root).formats() == ["pdf"]
    assert BuildCache(cache_path, tmp_path / "elsewhere").formats() == []


def test_failed_build_leaves_prior_entries(project_builder: ProjectBuilder, tmp_path: Path) -> None:
    project, artifact, deps = _setup(project_builder)
    cache_path = tmp_path / "cache.json"
    _record(BuildCache(cache_path, project.root), "pdf", project.fragments, deps, artifact)
    before = cache_path.read_text(encoding="utf-8")

    cache = BuildCache(cache_path, project.root)
    project.fragments[0].path.write_text("changed\n", encoding="utf-8")
    assert _needs(cache, project.fragments[0], deps, artifact)
    cache.persist()

    assert cache_path.read_text(encoding="utf-8") == before
