"""Record types: VFSNode, FileOperation, VFSTransaction, Watcher, etc."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable


def _now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class NodeType(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


@dataclass
class FilePermissions:
    """POSIX-flavoured permission record attached to every node."""

    read: bool = True
    write: bool = True
    execute: bool = False
    owner: str = "user"
    group: str = "users"
    mode: str = "644"
    """Octal mode string, e.g. ``"755"``."""


@dataclass
class VFSNode:
    """File/directory metadata produced by an adapter."""

    path: str
    name: str
    type: NodeType
    size: int = 0
    created: datetime = field(default_factory=_now)
    modified: datetime = field(default_factory=_now)
    permissions: FilePermissions = field(default_factory=FilePermissions)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_directory(self) -> bool:
        return self.type is NodeType.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.type is NodeType.FILE


# ---------------------------------------------------------------------------
# Adapter capabilities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AdapterCapabilities:
    """Capability descriptor checked by the manager before dispatch."""

    supports_realtime: bool = False
    supports_permissions: bool = False
    supports_symlinks: bool = False
    supports_hardlinks: bool = False
    supports_locking: bool = False
    max_file_size: int | None = None
    """Largest payload ``write`` accepts, in bytes.  ``None`` means unbounded."""
    protocols: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Watching
# ---------------------------------------------------------------------------


class WatchEventType(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class WatchEvent:
    """Change notification pushed by an adapter to its watchers."""

    type: WatchEventType
    path: str
    old_path: str | None = None
    timestamp: datetime = field(default_factory=_now)


@dataclass(eq=False)
class Watcher:
    """Handle for a registered watch callback.

    ``adapter_path`` is what the adapter matches events against.  ``path``
    starts out equal to it; the manager rewrites ``path`` to the virtual
    path before handing the watcher out and records the owning mount in
    ``mount_path``.
    """

    path: str
    callback: Callable[[WatchEvent], Any]
    active: bool = True
    adapter_path: str = ""
    mount_path: str | None = None
    _on_close: Callable[[Watcher], None] | None = field(default=None, repr=False)

    def close(self) -> None:
        """Deactivate the watcher.  Idempotent."""
        if not self.active:
            return
        self.active = False
        if self._on_close is not None:
            self._on_close(self)


# ---------------------------------------------------------------------------
# Operations & transactions
# ---------------------------------------------------------------------------


class OperationType(str, Enum):
    COPY = "copy"
    MOVE = "move"
    DELETE = "delete"


class OperationStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(eq=False)
class FileOperation:
    """A tracked copy/move/delete with progress counters."""

    type: OperationType
    source: str
    destination: str | None = None
    id: str = field(default_factory=_new_id)
    total_bytes: int = 0
    transferred_bytes: int = 0
    progress: float = 0.0
    """Percent complete, 0-100."""
    status: OperationStatus = OperationStatus.PENDING
    start_time: datetime = field(default_factory=_now)
    end_time: datetime | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            OperationStatus.COMPLETED,
            OperationStatus.ERROR,
            OperationStatus.CANCELLED,
        )

    def add_transferred(self, nbytes: int) -> None:
        self.transferred_bytes += nbytes
        if self.total_bytes > 0:
            self.progress = min(100.0, self.transferred_bytes * 100.0 / self.total_bytes)
        else:
            self.progress = 100.0


class TransactionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMMITTED = "committed"
    ERROR = "error"
    ROLLING_BACK = "rolling_back"
    ROLLEDBACK = "rolledback"


@dataclass(eq=False)
class VFSTransaction:
    """Ordered batch of operations with recorded compensating actions.

    ``rollback_operations`` holds compensations for operations that
    completed, plus a restore step for every destination a step was about
    to overwrite; rollback replays it in reverse.
    """

    id: str = field(default_factory=_new_id)
    operations: list[FileOperation] = field(default_factory=list)
    rollback_operations: list[FileOperation] = field(default_factory=list)
    status: TransactionStatus = TransactionStatus.PENDING
    start_time: datetime = field(default_factory=_now)
    end_time: datetime | None = None
    compensations: dict[str, FileOperation | None] = field(default_factory=dict, repr=False)
    """Queued compensation per operation id, promoted on completion."""
    restores: dict[str, str] = field(default_factory=dict, repr=False)
    """Rollback step id to the path its backup is restored to."""


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    size: int
