"""SQLModel database models for deskvfs."""

from deskvfs.models.nodes import StoredNode, StoredNodeBase

__all__ = [
    "StoredNode",
    "StoredNodeBase",
]
