"""Plan rendering."""

from .tree import RIGHT_JOIN_MARKER, render_tree, starts_with_join

__all__ = [
    "RIGHT_JOIN_MARKER",
    "render_tree",
    "starts_with_join",
]
