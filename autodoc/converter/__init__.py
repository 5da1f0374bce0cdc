"""Conversion of staged fragments into output documents via pandoc."""

from .arguments import build_arguments, detect_babel_lang, metadata_arguments, metadata_hash
from .runner import PandocConverter, partial_path

__all__ = [
    "PandocConverter",
    "build_arguments",
    "detect_babel_lang",
    "metadata_arguments",
    "metadata_hash",
    "partial_path",
]
