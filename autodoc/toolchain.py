"""Availability checks for the external tools a build relies on."""

from __future__ import annotations

import shutil
import subprocess
import sys
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from .config import AutodocConfig
from .logging import get_logger

_INSTALL_HINTS: Dict[str, Dict[str, str]] = {
    "pandoc": {
        "darwin": "brew install pandoc",
        "linux": "sudo apt install pandoc",
    },
    "xelatex": {
        "darwin": "brew install --cask mactex",
        "linux": "sudo apt install texlive-xetex",
    },
    "mmdc": {
        "darwin": "npm install -g @mermaid-js/mermaid-cli",
        "linux": "npm install -g @mermaid-js/mermaid-cli",
    },
}


@dataclass
class ToolStatus:
    """Availability of one external tool."""

    name: str
    available: bool
    required: bool
    version: Optional[str] = None
    path: Optional[str] = None
    install_hint: Optional[str] = None


def install_hint(tool: str, platform: str | None = None) -> str:
    platform = platform or sys.platform
    key = "darwin" if platform.startswith("darwin") else "linux" if platform.startswith("linux") else ""
    hints = _INSTALL_HINTS.get(tool, {})
    return hints.get(key) or f"Install {tool} via your package manager"


def _command_version(executable: str, timeout: float = 10.0) -> Optional[str]:
    try:
        completed = subprocess.run(
            [executable, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if completed.returncode != 0:
        return None
    lines = completed.stdout.strip().splitlines()
    return lines[0] if lines else None


class ToolchainChecker:
    """Reports which of pandoc, the PDF engine and mermaid-cli are usable."""

    def __init__(
        self,
        config: AutodocConfig,
        *,
        which: Callable[[str], Optional[str]] = shutil.which,
        version: Callable[[str], Optional[str]] = _command_version,
    ) -> None:
        self.config = config
        self._which = which
        self._version = version
        self.logger = get_logger("toolchain")

    def required_tools(self, formats: Sequence[str]) -> Dict[str, bool]:
        """Map tool name to whether ``formats`` require it."""
        converter = self.config.converter.executable[0]
        tools = {converter: True, self.config.converter.pdf_engine: "pdf" in formats}
        if self.config.diagrams.enabled:
            tools[self.config.diagrams.executable[0]] = False
        return tools

    def check(self, formats: Sequence[str] | None = None) -> List[ToolStatus]:
        formats = list(formats or self.config.formats)
        statuses: List[ToolStatus] = []
        for name, required in self.required_tools(formats).items():
            path = self._which(name)
            statuses.append(
                ToolStatus(
                    name=name,
                    available=path is not None,
                    required=required,
                    version=self._version(path) if path else None,
                    path=path,
                    install_hint=None if path else install_hint(name),
                )
            )
        return statuses

    def missing_required(self, formats: Sequence[str] | None = None) -> List[ToolStatus]:
        missing = [status for status in self.check(formats) if status.required and not status.available]
        for status in missing:
            self.logger.error("Missing required tool %s: %s", status.name, status.install_hint)
        return missing


__all__ = ["ToolStatus", "ToolchainChecker", "install_hint"]
