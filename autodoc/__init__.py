"""Build formatted documents from a directory of Markdown fragments."""

__version__ = "0.1.0"
