"""MemoryAdapter — process-local flat map of path -> bytes + node."""

from __future__ import annotations

import copy
import errno
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from .base import BaseAdapter
from .permissions import apply_permissions, default_permissions
from .types import AdapterCapabilities, NodeType, VFSNode, WatchEventType
from .utils import ancestors, guess_mime_type, is_under, normalize_path, parent_path, split_path

DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB


@dataclass
class _Entry:
    node: VFSNode
    data: bytes = b""


class MemoryAdapter(BaseAdapter):
    """In-memory adapter.  Everything lives in one dict keyed by path.

    Directories are explicit entries; writing a file creates any missing
    parent directories.  Contents are discarded on ``unmount``.
    """

    adapter_type = "memory"
    default_capabilities = AdapterCapabilities(
        supports_realtime=True,
        supports_permissions=True,
        max_file_size=DEFAULT_MAX_FILE_SIZE,
        protocols=("memory",),
    )

    def __init__(
        self,
        name: str = "memory",
        capabilities: AdapterCapabilities | None = None,
    ) -> None:
        super().__init__(name, capabilities)
        self._entries: dict[str, _Entry] = {}
        self._reset()

    def _reset(self) -> None:
        self._entries = {"/": _Entry(self._new_node("/", NodeType.DIRECTORY))}

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _new_node(path: str, node_type: NodeType, size: int = 0) -> VFSNode:
        _, name = split_path(path)
        now = datetime.now(UTC)
        is_dir = node_type is NodeType.DIRECTORY
        metadata: dict[str, Any] = {} if is_dir else {"mime_type": guess_mime_type(name)}
        return VFSNode(
            path=path,
            name=name,
            type=node_type,
            size=size,
            created=now,
            modified=now,
            permissions=default_permissions(is_dir),
            metadata=metadata,
        )

    def _get(self, path: str) -> _Entry:
        entry = self._entries.get(path)
        if entry is None:
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)
        return entry

    def _get_dir(self, path: str) -> _Entry:
        entry = self._get(path)
        if not entry.node.is_directory:
            raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), path)
        return entry

    def _children(self, path: str) -> list[str]:
        return [p for p in self._entries if p != path and parent_path(p) == path]

    async def _ensure_parents(self, path: str) -> None:
        for ancestor in reversed(ancestors(path)):
            entry = self._entries.get(ancestor)
            if entry is None:
                self._entries[ancestor] = _Entry(self._new_node(ancestor, NodeType.DIRECTORY))
                await self._notify(WatchEventType.CREATED, ancestor)
            elif not entry.node.is_directory:
                raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), ancestor)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def unmount(self) -> None:
        await super().unmount()
        self._reset()

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def read(self, path: str) -> bytes:
        path = normalize_path(path)
        entry = self._get(path)
        if entry.node.is_directory:
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
        return entry.data

    async def exists(self, path: str) -> bool:
        return normalize_path(path) in self._entries

    async def stat(self, path: str) -> VFSNode:
        return copy.deepcopy(self._get(normalize_path(path)).node)

    async def readdir(self, path: str) -> list[VFSNode]:
        path = normalize_path(path)
        self._get_dir(path)
        nodes = [copy.deepcopy(self._entries[p].node) for p in self._children(path)]
        nodes.sort(key=lambda n: (not n.is_directory, n.name.lower()))
        return nodes

    # =========================================================================
    # Write Operations
    # =========================================================================

    async def write(self, path: str, data: bytes) -> None:
        path = normalize_path(path)
        existing = self._entries.get(path)
        if path == "/" or (existing is not None and existing.node.is_directory):
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)

        await self._ensure_parents(path)
        payload = bytes(data)
        if existing is None:
            self._entries[path] = _Entry(self._new_node(path, NodeType.FILE, len(payload)), payload)
            await self._notify(WatchEventType.CREATED, path)
        else:
            existing.data = payload
            existing.node.size = len(payload)
            existing.node.modified = datetime.now(UTC)
            await self._notify(WatchEventType.MODIFIED, path)

    async def mkdir(self, path: str) -> None:
        path = normalize_path(path)
        if path in self._entries:
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), path)
        self._get_dir(parent_path(path))
        self._entries[path] = _Entry(self._new_node(path, NodeType.DIRECTORY))
        await self._notify(WatchEventType.CREATED, path)

    async def rmdir(self, path: str) -> None:
        path = normalize_path(path)
        if path == "/":
            raise PermissionError(errno.EPERM, "Cannot remove adapter root", path)
        self._get_dir(path)
        if self._children(path):
            raise OSError(errno.ENOTEMPTY, os.strerror(errno.ENOTEMPTY), path)
        del self._entries[path]
        await self._notify(WatchEventType.DELETED, path)

    async def unlink(self, path: str) -> None:
        path = normalize_path(path)
        entry = self._get(path)
        if entry.node.is_directory:
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
        del self._entries[path]
        await self._notify(WatchEventType.DELETED, path)

    async def rename(self, old_path: str, new_path: str) -> None:
        old_path = normalize_path(old_path)
        new_path = normalize_path(new_path)
        entry = self._get(old_path)
        if old_path == new_path:
            return
        if old_path == "/":
            raise PermissionError(errno.EPERM, "Cannot rename adapter root", old_path)
        if entry.node.is_directory and is_under(new_path, old_path):
            raise OSError(errno.EINVAL, "Cannot move directory into itself", new_path)

        target = self._entries.get(new_path)
        if target is not None and (target.node.is_directory or entry.node.is_directory):
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), new_path)

        await self._ensure_parents(new_path)
        moved = [p for p in self._entries if is_under(p, old_path)]
        for src in moved:
            moved_entry = self._entries.pop(src)
            dest = new_path + src[len(old_path):]
            moved_entry.node.path = dest
            moved_entry.node.name = split_path(dest)[1]
            self._entries[dest] = moved_entry
        await self._notify(WatchEventType.RENAMED, new_path, old_path=old_path)

    async def set_permissions(self, path: str, partial: dict[str, Any]) -> VFSNode:
        entry = self._get(normalize_path(path))
        entry.node.permissions = apply_permissions(entry.node.permissions, partial)
        entry.node.modified = datetime.now(UTC)
        await self._notify(WatchEventType.MODIFIED, entry.node.path)
        return copy.deepcopy(entry.node)
