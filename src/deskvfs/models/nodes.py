"""StoredNode model — one row per file or directory in a DatabaseAdapter.

Provides ``StoredNodeBase`` as a non-table base class.  Subclass with
``table=True`` and a custom ``__tablename__`` to keep several adapters'
trees in separate tables of the same database.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, LargeBinary
from sqlmodel import Field, SQLModel


class StoredNodeBase(SQLModel):
    """Base fields for a stored node. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    path: str = Field(index=True, unique=True)
    parent_path: str = Field(default="", index=True)
    name: str = Field(default="")
    is_directory: bool = Field(default=False)
    data: bytes | None = Field(default=None, sa_type=LargeBinary)
    size_bytes: int = Field(default=0)
    mode: str = Field(default="644")
    owner: str = Field(default="user")
    group: str = Field(default="users")
    node_metadata: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )


class StoredNode(StoredNodeBase, table=True):
    """Default node table — ``deskvfs_nodes``."""

    __tablename__ = "deskvfs_nodes"
