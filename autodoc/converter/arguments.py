"""Mapping of merged metadata onto pandoc command-line arguments."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional, Sequence

from ..config import ConverterConfig
from ..models import BuildManifest, MergedMetadata
from ..utils import hash_text

_BABEL_LANGUAGES = {
    "de": "ngerman",
    "fr": "french",
    "es": "spanish",
    "it": "italian",
    "pt": "portuguese",
    "nl": "dutch",
    "ru": "russian",
}

# LaTeX variables taken straight from metadata fields of the same name.
_PDF_VARIABLES = (
    "fontsize",
    "mainfont",
    "sansfont",
    "monofont",
    "linkcolor",
    "urlcolor",
    "citecolor",
)
_PDF_LIST_VARIABLES = ("classoption", "geometry")
_PDF_FLAG_VARIABLES = ("colorlinks", "lof", "lot")


def detect_babel_lang(lang: str) -> str:
    """Map a BCP 47 language tag onto the babel language name."""
    primary = lang.replace("_", "-").split("-", 1)[0].lower()
    return _BABEL_LANGUAGES.get(primary, "english")


def metadata_arguments(metadata: MergedMetadata, fmt: str, *, pdf_engine: str = "xelatex") -> List[str]:
    """Arguments derived only from metadata and format.

    These are the arguments whose hash decides whether a metadata change
    invalidates the cached artifact of ``fmt``.
    """
    args: List[str] = []
    if fmt == "pdf":
        args.append(f"--pdf-engine={pdf_engine}")
        args.append("--listings")
        args.append(f"--top-level-division={metadata.top_level_division or 'section'}")
    elif fmt == "docx":
        args.append("--to=docx")
    elif fmt == "html":
        args.extend(["--to=html5", "--embed-resources"])
        for stylesheet in metadata.css or []:
            args.append(f"--css={stylesheet}")

    if metadata.numbersections:
        args.append("--number-sections")
    if metadata.toc:
        args.append("--toc")
        if metadata.toc_depth is not None:
            args.append(f"--toc-depth={metadata.toc_depth}")
    if metadata.csl:
        args.append(f"--csl={metadata.csl}")

    _metadata(args, "title", metadata.title or "Document")
    if metadata.subtitle:
        _metadata(args, "subtitle", metadata.subtitle)
    if metadata.author:
        _metadata(args, "author", ", ".join(metadata.author))
    if metadata.date:
        _metadata(args, "date", metadata.date)
    if metadata.lang:
        _metadata(args, "lang", metadata.lang)
    babel_lang = metadata.babel_lang or (detect_babel_lang(metadata.lang) if metadata.lang else None)
    if babel_lang:
        _metadata(args, "babel-lang", babel_lang)
    if metadata.link_citations is not None:
        _metadata(args, "link-citations", _flag(metadata.link_citations))

    if fmt == "pdf":
        if metadata.documentclass:
            _metadata(args, "documentclass", metadata.documentclass)
        if metadata.book:
            _metadata(args, "book", "true")
        if metadata.secnumdepth is not None:
            _variable(args, "secnumdepth", str(metadata.secnumdepth))
        for name in _PDF_VARIABLES:
            value = getattr(metadata, name)
            if value:
                _variable(args, name, value)
        for name in _PDF_LIST_VARIABLES:
            for value in getattr(metadata, name) or []:
                _variable(args, name, value)
        for name in _PDF_FLAG_VARIABLES:
            if getattr(metadata, name):
                _variable(args, name, "true")

    for key in sorted(metadata.custom):
        value = metadata.custom[key]
        if isinstance(value, list):
            for item in value:
                _metadata(args, key, _render_value(item))
        else:
            _metadata(args, key, _render_value(value))
    return args


def metadata_hash(metadata: MergedMetadata, fmt: str, *, pdf_engine: str = "xelatex") -> str:
    return hash_text("\0".join(metadata_arguments(metadata, fmt, pdf_engine=pdf_engine)))


def build_arguments(
    manifest: BuildManifest,
    *,
    root: Path,
    config: ConverterConfig,
    output: Optional[Path] = None,
) -> List[str]:
    """Full pandoc argument list for ``manifest`` (executable not included)."""
    args = ["--standalone", "--citeproc", f"--resource-path={root}"]
    args.extend(metadata_arguments(manifest.metadata, manifest.format, pdf_engine=config.pdf_engine))

    if manifest.template is not None:
        flag = "--reference-doc" if manifest.format == "docx" else "--template"
        args.append(f"{flag}={manifest.template}")

    for bibliography in _bibliographies(manifest):
        args.append(f"--bibliography={bibliography}")

    args.extend(config.extra_args)
    args.extend(str(path) for path in manifest.inputs)
    args.extend(["-o", str(output or manifest.output)])
    return args


def _bibliographies(manifest: BuildManifest) -> Sequence[str]:
    declared = manifest.metadata.bibliography or []
    if declared:
        return list(declared)
    return [str(path) for path in manifest.bibliography_files]


def _metadata(args: List[str], key: str, value: str) -> None:
    args.extend(["--metadata", f"{key}={value}"])


def _variable(args: List[str], key: str, value: str) -> None:
    args.extend(["--variable", f"{key}={value}"])


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _render_value(value: Any) -> str:
    if isinstance(value, bool):
        return _flag(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
    if value is None:
        return ""
    return str(value)


__all__ = ["build_arguments", "detect_babel_lang", "metadata_arguments", "metadata_hash"]
