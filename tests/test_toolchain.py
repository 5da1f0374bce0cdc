from __future__ import annotations

from pathlib import Path
from typing import Optional

from autodoc.config import AutodocConfig
from autodoc.toolchain import ToolchainChecker, install_hint


def _which_only(*names: str):
    def which(name: str) -> Optional[str]:
        return f"/usr/bin/{name}" if name in names else None

    return which


def test_pdf_engine_required_only_for_pdf(tmp_path: Path) -> None:
    checker = ToolchainChecker(AutodocConfig(root=tmp_path))

    assert checker.required_tools(["html"]) == {"pandoc": True, "xelatex": False, "mmdc": False}
    assert checker.required_tools(["pdf"])["xelatex"] is True


def test_diagram_tool_dropped_when_disabled(tmp_path: Path) -> None:
    config = AutodocConfig(root=tmp_path)
    config.diagrams.enabled = False

    assert "mmdc" not in ToolchainChecker(config).required_tools(["pdf"])


def test_check_reports_versions_and_hints(tmp_path: Path) -> None:
    checker = ToolchainChecker(
        AutodocConfig(root=tmp_path),
        which=_which_only("pandoc"),
        version=lambda path: "pandoc 3.1" if path.endswith("pandoc") else None,
    )

    statuses = {status.name: status for status in checker.check(["pdf"])}

    assert statuses["pandoc"].available is True
    assert statuses["pandoc"].version == "pandoc 3.1"
    assert statuses["pandoc"].install_hint is None
    assert statuses["xelatex"].available is False
    assert statuses["xelatex"].install_hint
    assert [status.name for status in checker.missing_required(["pdf"])] == ["xelatex"]
    assert checker.missing_required(["html"]) == []


def test_install_hint_per_platform() -> None:
    assert install_hint("pandoc", "darwin") == "brew install pandoc"
    assert install_hint("xelatex", "linux") == "sudo apt install texlive-xetex"
    assert "package manager" in install_hint("pandoc", "win32")
