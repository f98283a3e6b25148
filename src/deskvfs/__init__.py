"""deskvfs: one async namespace over many storage backends.

Mount points, TTL caching, tracked copy/move operations, compensating
transactions and push-based watching for desktop-style file managers.
"""

__version__ = "0.1.0"

from deskvfs._desk_vfs import DeskVFS
from deskvfs.events import EventBus, EventType, Subscription, VFSEvent
from deskvfs.fs import (
    AdapterCapabilities,
    CancellationToken,
    DatabaseAdapter,
    ErrorCode,
    FileOperation,
    LocalDiskAdapter,
    MemoryAdapter,
    Mount,
    VFSConfig,
    VFSError,
    VFSManager,
    VFSNode,
    VFSTransaction,
    WatchEvent,
)

__all__ = [
    "AdapterCapabilities",
    "CancellationToken",
    "DatabaseAdapter",
    "DeskVFS",
    "ErrorCode",
    "EventBus",
    "EventType",
    "FileOperation",
    "LocalDiskAdapter",
    "MemoryAdapter",
    "Mount",
    "Subscription",
    "VFSConfig",
    "VFSError",
    "VFSEvent",
    "VFSManager",
    "VFSNode",
    "VFSTransaction",
    "WatchEvent",
    "__version__",
]
