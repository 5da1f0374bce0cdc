from __future__ import annotations

from pathlib import Path
from typing import List

from autodoc.errors import AutodocError
from autodoc.watcher import PollingWatcher
from tests._fixtures.project_builder import ProjectBuilder


def test_snapshot_skips_hidden_ignored_and_unwatched(project_builder: ProjectBuilder) -> None:
    project_builder.write(
        {
            "01-intro.md": "Intro\n",
            "diagrams/flow.mmd": "graph TD; A-->B\n",
            "notes.txt": "ignored suffix\n",
            ".autodoc/build_cache.json": "{}",
            "output/document.html": "<html/>",
        }
    )
    root = project_builder.path()
    watcher = PollingWatcher(root, lambda: None, ignore_dirs=(root / "output",))

    assert sorted(watcher.snapshot()) == ["01-intro.md", "diagrams/flow.mmd"]


def test_changed_paths_covers_added_removed_and_modified() -> None:
    before = {"a.md": (1, 1), "b.md": (1, 1), "c.md": (1, 1)}
    after = {"a.md": (1, 1), "b.md": (2, 1), "d.md": (1, 1)}

    assert PollingWatcher.changed_paths(before, after) == ["b.md", "c.md", "d.md"]


def test_watch_rebuilds_on_change_but_not_on_own_writes(project_builder: ProjectBuilder) -> None:
    project_builder.write({"01-intro.md": "Intro\n"})
    root = project_builder.path()
    calls: List[int] = []

    def build() -> None:
        calls.append(len(calls))
        # Each build touches a watched file; only the first edit predates a snapshot.
        (root / f"0{len(calls) + 1}-generated.md").write_text("new\n", encoding="utf-8")

    watcher = PollingWatcher(root, build, interval=0.01)

    assert watcher.watch(max_iterations=3) == 2
    assert calls == [0, 1]


def test_build_errors_do_not_stop_watching(project_builder: ProjectBuilder) -> None:
    project_builder.write({"01-intro.md": "Intro\n"})

    def build() -> None:
        raise AutodocError("broken")

    watcher = PollingWatcher(project_builder.path(), build, interval=0.01)

    assert watcher.watch(max_iterations=1) == 1


def test_stop_ends_watch(project_builder: ProjectBuilder) -> None:
    watcher = PollingWatcher(project_builder.path(), lambda: None, interval=5)
    watcher.build = watcher.stop

    assert watcher.watch() == 1
