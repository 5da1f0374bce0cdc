"""Fragment frontmatter parsing and merging."""

from .merge import BUILTIN_DEFAULTS, DEFAULT_SETUP_FILE, merge_metadata, parse_overrides
from .parser import MetadataParser, has_inline_diagrams, split_frontmatter

__all__ = [
    "BUILTIN_DEFAULTS",
    "DEFAULT_SETUP_FILE",
    "MetadataParser",
    "has_inline_diagrams",
    "merge_metadata",
    "parse_overrides",
    "split_frontmatter",
]
