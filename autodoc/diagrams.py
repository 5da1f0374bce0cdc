"""Pre-rendering of Mermaid diagrams to SVG artifacts."""

from __future__ import annotations

import os
import re
import subprocess
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence, Set, Tuple

from .errors import RenderError
from .logging import get_logger
from .models import DiscoveredFile, ParsedFragment
from .utils import hash_text

DiagramRenderer = Callable[[str], bytes]

_DIAGRAM_BLOCK = re.compile(
    r"^(?P<indent>[ \t]*)(?P<fence>```|~~~)[ \t]*\{?\.?mermaid\b[^\n]*\n"
    r"(?P<body>.*?)"
    r"^[ \t]*(?P=fence)[ \t]*$",
    re.MULTILINE | re.DOTALL,
)


class MermaidCliRenderer:
    """Renders Mermaid source with the mermaid-cli (``mmdc``) executable."""

    def __init__(
        self,
        executable: Sequence[str] = ("mmdc",),
        *,
        timeout: float = 60.0,
        theme: str | None = None,
    ) -> None:
        self.executable = list(executable)
        self.timeout = timeout
        self.theme = theme

    def __call__(self, source: str) -> bytes:
        with tempfile.TemporaryDirectory(prefix="autodoc-mmd-") as workdir:
            input_path = Path(workdir) / "diagram.mmd"
            output_path = Path(workdir) / "diagram.svg"
            input_path.write_text(source, encoding="utf-8")
            args = [*self.executable, "-i", str(input_path), "-o", str(output_path), "-b", "transparent"]
            if self.theme:
                args.extend(["-t", self.theme])
            try:
                completed = subprocess.run(
                    args,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except FileNotFoundError as exc:
                raise RenderError(
                    f"Unable to locate '{self.executable[0]}'. Install @mermaid-js/mermaid-cli."
                ) from exc
            except subprocess.TimeoutExpired as exc:
                raise RenderError(f"mermaid-cli timed out after {self.timeout:g}s") from exc
            if completed.returncode != 0:
                detail = (completed.stderr or completed.stdout).strip()
                raise RenderError(f"mermaid-cli failed with exit code {completed.returncode}: {detail}")
            if not output_path.exists():
                raise RenderError("mermaid-cli produced no output")
            return output_path.read_bytes()


@dataclass
class DiagramOutcome:
    """Result of processing the diagrams of one fragment."""

    content: str
    artifacts: List[Path] = field(default_factory=list)
    rendered: List[Path] = field(default_factory=list)
    errors: List[RenderError] = field(default_factory=list)


class DiagramProcessor:
    """Replaces diagram blocks with references to rendered SVG files.

    Inline blocks become content-addressed artifacts named
    ``<stem>-<n>-<hash>.svg``; standalone sources become ``<stem>.svg``.
    A block that fails to render is left untouched in the content.
    """

    def __init__(
        self,
        output_dir: Path,
        renderer: DiagramRenderer | None = None,
        *,
        enabled: bool = True,
    ) -> None:
        self.diagrams_dir = output_dir / "diagrams"
        self.renderer = renderer
        self.enabled = enabled and renderer is not None
        self.logger = get_logger("diagrams")
        self._guard = threading.Lock()
        self._locks: Dict[Path, threading.Lock] = {}
        self._rendered: Set[Path] = set()
        self._failed: Dict[Path, RenderError] = {}

    def artifact_for_block(self, fragment: ParsedFragment, index: int, source: str) -> Path:
        digest = hash_text(source)[:12]
        return self.diagrams_dir / f"{fragment.path.stem}-{index + 1}-{digest}.svg"

    def artifact_for_source(self, source: DiscoveredFile) -> Path:
        return self.diagrams_dir / f"{source.path.stem}.svg"

    def process_fragment(self, fragment: ParsedFragment, *, changed: bool) -> DiagramOutcome:
        if not self.enabled or not fragment.has_inline_diagrams:
            return DiagramOutcome(content=fragment.content)

        outcome = DiagramOutcome(content="")
        pieces: List[str] = []
        cursor = 0
        for index, match in enumerate(_DIAGRAM_BLOCK.finditer(fragment.content)):
            source = _dedent(match.group("body"), match.group("indent"))
            artifact = self.artifact_for_block(fragment, index, source)
            pieces.append(fragment.content[cursor:match.start()])
            cursor = match.end()
            try:
                if self._render(artifact, source, force=changed):
                    outcome.rendered.append(artifact)
            except RenderError as exc:
                error = RenderError(str(exc), source=fragment.path, block=index)
                outcome.errors.append(error)
                pieces.append(match.group(0))
                continue
            outcome.artifacts.append(artifact)
            pieces.append(f"{match.group('indent')}![Diagram {index + 1}]({artifact.as_posix()})")
        pieces.append(fragment.content[cursor:])
        outcome.content = "".join(pieces)

        for error in outcome.errors:
            self.logger.warning("Diagram render failed: %s", error.describe())
        return outcome

    def process_sources(
        self, sources: Sequence[DiscoveredFile], *, force: bool = False
    ) -> Tuple[List[Path], List[RenderError]]:
        """Render standalone diagram files whose artifact is missing or older."""
        rendered: List[Path] = []
        errors: List[RenderError] = []
        if not self.enabled:
            return rendered, errors
        for source in sources:
            artifact = self.artifact_for_source(source)
            try:
                text = source.path.read_text(encoding="utf-8")
                if self._render(artifact, text, force=force or _older_than(artifact, source.path)):
                    rendered.append(artifact)
            except OSError as exc:
                errors.append(RenderError(f"unreadable diagram source: {exc}", source=source.path))
            except RenderError as exc:
                errors.append(RenderError(str(exc), source=source.path))
        for error in errors:
            self.logger.warning("Diagram render failed: %s", error.describe())
        return rendered, errors

    def prune(self, keep: Iterable[Path]) -> List[Path]:
        """Delete rendered SVGs that no current diagram produces."""
        if not self.diagrams_dir.is_dir():
            return []
        wanted = set(keep)
        removed: List[Path] = []
        for path in sorted(self.diagrams_dir.glob("*.svg")):
            if path in wanted or path.name.startswith("."):
                continue
            path.unlink(missing_ok=True)
            removed.append(path)
        if removed:
            self.logger.info("Removed %d outdated diagram(s)", len(removed))
        return removed

    def _lock_for(self, artifact: Path) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(artifact, threading.Lock())

    def _render(self, artifact: Path, source: str, *, force: bool) -> bool:
        """Render ``source`` to ``artifact``; returns True when the renderer ran."""
        with self._lock_for(artifact):
            if artifact in self._failed:
                raise self._failed[artifact]
            if artifact in self._rendered:
                return False
            if not force and artifact.exists():
                return False
            if self.renderer is None:
                raise RenderError("no diagram renderer configured")
            self.logger.debug("Rendering diagram %s", artifact.name)
            try:
                payload = self.renderer(source)
            except RenderError as exc:
                self._failed[artifact] = exc
                raise
            except Exception as exc:
                error = RenderError(f"renderer raised {exc.__class__.__name__}: {exc}")
                self._failed[artifact] = error
                raise error from exc
            _write_atomic(artifact, payload)
            self._rendered.add(artifact)
            return True


def _dedent(body: str, indent: str) -> str:
    if not indent:
        return body
    lines = body.splitlines(keepends=True)
    return "".join(line[len(indent):] if line.startswith(indent) else line for line in lines)


def _older_than(artifact: Path, source: Path) -> bool:
    try:
        return artifact.stat().st_mtime < source.stat().st_mtime
    except FileNotFoundError:
        return True


def _write_atomic(target: Path, payload: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    handle, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
    try:
        with os.fdopen(handle, "wb") as stream:
            stream.write(payload)
        os.replace(temp_name, target)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


def find_diagram_blocks(content: str) -> List[str]:
    """Return the source of every Mermaid block in ``content``."""
    return [_dedent(match.group("body"), match.group("indent")) for match in _DIAGRAM_BLOCK.finditer(content)]


__all__ = [
    "DiagramOutcome",
    "DiagramProcessor",
    "DiagramRenderer",
    "MermaidCliRenderer",
    "find_diagram_blocks",
]
