"""Error taxonomy shared across the build pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class AutodocError(RuntimeError):
    """Base class for errors raised by autodoc components."""


class ConfigError(AutodocError):
    """Raised when the configuration file cannot be parsed."""


class DiscoveryError(AutodocError):
    """Raised when the project root cannot be scanned. Fatal to the run."""


class ParseError(AutodocError):
    """Frontmatter of a single fragment could not be parsed."""

    def __init__(self, path: Path, message: str, *, fatal: bool = False) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.reason = message
        self.fatal = fatal


class RenderError(AutodocError):
    """A single diagram block failed to render."""

    def __init__(self, message: str, *, source: Optional[Path] = None, block: Optional[int] = None) -> None:
        super().__init__(message)
        self.source = source
        self.block = block

    def describe(self) -> str:
        location = str(self.source) if self.source else "<diagram>"
        if self.block is not None:
            location = f"{location} (block {self.block + 1})"
        return f"{location}: {self}"


class ConverterError(AutodocError):
    """The external converter failed for one output format."""

    def __init__(
        self,
        fmt: str,
        message: str,
        *,
        returncode: Optional[int] = None,
        stderr: str = "",
        timed_out: bool = False,
        cancelled: bool = False,
    ) -> None:
        super().__init__(f"{fmt}: {message}")
        self.format = fmt
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out
        self.cancelled = cancelled


class CacheError(AutodocError):
    """The persisted build cache is unreadable or incompatible."""


class DependencyWarning(UserWarning):
    """A fragment references a local asset that does not exist (yet)."""

    def __init__(self, owner: Path, target: Path, reference: str) -> None:
        super().__init__(f"{owner.name}: referenced asset not found: {reference}")
        self.owner = owner
        self.target = target
        self.reference = reference


__all__ = [
    "AutodocError",
    "CacheError",
    "ConfigError",
    "ConverterError",
    "DependencyWarning",
    "DiscoveryError",
    "ParseError",
    "RenderError",
]
