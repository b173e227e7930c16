"""Utility exports for filesystem helpers."""

from playground.utils.fs import atomic_write, remove_tree_quietly, which_excluding

__all__ = [
    "atomic_write",
    "remove_tree_quietly",
    "which_excluding",
]
