"""Bounded, cancellable invocation of the external converter."""

from __future__ import annotations

import os
import subprocess
import threading
import time
from pathlib import Path
from typing import Optional, Sequence

from ..config import ConverterConfig
from ..errors import ConverterError
from ..logging import get_logger
from ..models import BuildManifest
from .arguments import build_arguments


def partial_path(output: Path) -> Path:
    """Temporary sibling the converter writes to before the atomic move."""
    return output.with_name(f".{output.stem}.partial{output.suffix}")


class PandocConverter:
    """Runs pandoc for one manifest and moves the artifact into place on success."""

    def __init__(
        self,
        config: ConverterConfig | None = None,
        *,
        poll_interval: float = 0.1,
    ) -> None:
        self.config = config or ConverterConfig()
        self.poll_interval = poll_interval
        self.logger = get_logger("converter")

    @property
    def executable(self) -> Sequence[str]:
        return self.config.executable

    def convert(
        self,
        manifest: BuildManifest,
        *,
        root: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> Path:
        fmt = manifest.format
        partial = partial_path(manifest.output)
        manifest.output.parent.mkdir(parents=True, exist_ok=True)
        args = [*self.executable, *build_arguments(manifest, root=root, config=self.config, output=partial)]
        self.logger.debug("Converter command (%s): %s", fmt, " ".join(args))

        try:
            self._run(fmt, args, cwd=root, cancel_event=cancel_event)
            if not partial.exists():
                raise ConverterError(fmt, "converter reported success but produced no output")
            os.replace(partial, manifest.output)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        return manifest.output

    def _run(
        self,
        fmt: str,
        args: Sequence[str],
        *,
        cwd: Path,
        cancel_event: Optional[threading.Event],
    ) -> None:
        try:
            process = subprocess.Popen(
                list(args),
                cwd=str(cwd),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError as exc:
            raise ConverterError(
                fmt, f"Unable to locate '{args[0]}'. Install pandoc or configure converter.executable."
            ) from exc

        deadline = time.monotonic() + self.config.timeout
        while True:
            try:
                _, stderr = process.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel_event is not None and cancel_event.is_set():
                    _kill(process)
                    raise ConverterError(fmt, "conversion cancelled", cancelled=True)
                if time.monotonic() >= deadline:
                    _kill(process)
                    raise ConverterError(
                        fmt, f"converter timed out after {self.config.timeout:g}s", timed_out=True
                    )

        if process.returncode != 0:
            detail = (stderr or "").strip()
            raise ConverterError(
                fmt,
                f"converter failed with exit code {process.returncode}: {detail}",
                returncode=process.returncode,
                stderr=stderr or "",
            )


def _kill(process: subprocess.Popen) -> None:
    process.kill()
    process.communicate()


__all__ = ["PandocConverter", "partial_path"]
