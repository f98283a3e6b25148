"""Filesystem layer — adapters, mounts, cache, operations, transactions."""

from deskvfs.fs.base import BaseAdapter
from deskvfs.fs.cache import TTLCache, cache_key
from deskvfs.fs.config import VFSConfig
from deskvfs.fs.database import DatabaseAdapter
from deskvfs.fs.exceptions import (
    AdapterNotFoundError,
    ErrorCode,
    InvalidPathError,
    MountPointExistsError,
    NetworkError,
    NotFoundError,
    OperationCancelledError,
    PermissionDeniedError,
    QuotaExceededError,
    TransactionRollbackError,
    UnsupportedOperationError,
    VFSError,
)
from deskvfs.fs.local_disk import LocalDiskAdapter
from deskvfs.fs.memory import MemoryAdapter
from deskvfs.fs.mounts import Mount, MountRegistry
from deskvfs.fs.operations import CancellationToken, OperationTracker
from deskvfs.fs.permissions import PermissionKind
from deskvfs.fs.protocol import SupportsPermissions, VFSAdapter
from deskvfs.fs.registry import AdapterRegistry
from deskvfs.fs.transactions import TransactionCoordinator
from deskvfs.fs.types import (
    AdapterCapabilities,
    CacheStats,
    FileOperation,
    FilePermissions,
    NodeType,
    OperationStatus,
    OperationType,
    TransactionStatus,
    VFSNode,
    VFSTransaction,
    WatchEvent,
    WatchEventType,
    Watcher,
)
from deskvfs.fs.utils import normalize_path, validate_path
from deskvfs.fs.vfs import VFSManager
from deskvfs.fs.watchers import WatchRegistry

__all__ = [
    "AdapterCapabilities",
    "AdapterNotFoundError",
    "AdapterRegistry",
    "BaseAdapter",
    "CacheStats",
    "CancellationToken",
    "DatabaseAdapter",
    "ErrorCode",
    "FileOperation",
    "FilePermissions",
    "InvalidPathError",
    "LocalDiskAdapter",
    "MemoryAdapter",
    "Mount",
    "MountPointExistsError",
    "MountRegistry",
    "NetworkError",
    "NodeType",
    "NotFoundError",
    "OperationCancelledError",
    "OperationStatus",
    "OperationTracker",
    "OperationType",
    "PermissionDeniedError",
    "PermissionKind",
    "QuotaExceededError",
    "SupportsPermissions",
    "TTLCache",
    "TransactionCoordinator",
    "TransactionRollbackError",
    "TransactionStatus",
    "UnsupportedOperationError",
    "VFSAdapter",
    "VFSConfig",
    "VFSError",
    "VFSManager",
    "VFSNode",
    "VFSTransaction",
    "WatchEvent",
    "WatchEventType",
    "WatchRegistry",
    "Watcher",
    "cache_key",
    "normalize_path",
    "validate_path",
]
