"""Persistent stores used by autodoc."""

from .build_cache import BuildCache, Fingerprinter

__all__ = ["BuildCache", "Fingerprinter"]
