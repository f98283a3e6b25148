"""VFSManager — mount router with caching, events, operations and transactions."""

from __future__ import annotations

import copy
import inspect
import logging
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from deskvfs.events import EventBus, EventType, VFSEvent

from .cache import KIND_CONTENT, KIND_LIST, KIND_STAT, TTLCache, cache_key
from .config import VFSConfig
from .exceptions import (
    AdapterNotFoundError,
    InvalidPathError,
    MountPointExistsError,
    NetworkError,
    NotFoundError,
    OperationCancelledError,
    PermissionDeniedError,
    QuotaExceededError,
    UnsupportedOperationError,
    VFSError,
)
from .memory import MemoryAdapter
from .mounts import Mount, MountRegistry
from .operations import OperationTracker
from .permissions import PERMISSION_KEYS, PermissionKind
from .protocol import SupportsPermissions
from .registry import AdapterRegistry
from .search import mounts_for, search_mount
from .transactions import TransactionCoordinator
from .types import NodeType, OperationType, VFSNode, WatchEvent
from .utils import is_under, join_path, normalize_path, parent_path, split_path, validate_path
from .watchers import WatchRegistry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from .operations import CancellationToken
    from .protocol import VFSAdapter
    from .types import CacheStats, FileOperation, VFSTransaction, Watcher

logger = logging.getLogger(__name__)


class _TransactionBackups:
    """Keeps transaction backups as hidden siblings on the destination's mount."""

    def __init__(self, vfs: VFSManager) -> None:
        self._vfs = vfs

    async def stash(self, path: str) -> str | None:
        vfs = self._vfs
        path = normalize_path(path)
        if not await vfs.exists(path):
            return None
        mount, rel = vfs._mounts.resolve(path)
        if rel == "/":
            return None
        parent, name = split_path(rel)
        backup_rel = join_path(parent, f".{name}.{uuid.uuid4().hex[:8]}.txbak")
        backup = mount.to_virtual(backup_rel)
        with vfs._translate_errors(path, "backup", NetworkError, map_os_errors=False):
            await self._clone(mount.adapter, rel, backup_rel)
        vfs._cache.invalidate_path(backup)
        return backup

    @staticmethod
    async def _clone(adapter: VFSAdapter, src: str, dest: str) -> None:
        node = await adapter.stat(src)
        if not node.is_directory:
            await adapter.write(dest, await adapter.read(src))
            return
        await adapter.mkdir(dest)
        stack = [(src, dest)]
        while stack:
            src_dir, dest_dir = stack.pop()
            for child in await adapter.readdir(src_dir):
                target = join_path(dest_dir, child.name)
                if child.is_directory:
                    await adapter.mkdir(target)
                    stack.append((child.path, target))
                else:
                    await adapter.write(target, await adapter.read(child.path))

    async def restore(self, backup: str, path: str) -> None:
        vfs = self._vfs
        mount, rel = vfs._mounts.resolve(path)
        _, backup_rel = vfs._mounts.resolve(backup)
        if await mount.adapter.exists(rel):
            await vfs._remove(mount, rel, path, recursive=True)
        with vfs._translate_errors(path, "restore", NetworkError, map_os_errors=False):
            await mount.adapter.rename(backup_rel, rel)
        vfs._cache.invalidate_path(backup)
        vfs._cache.invalidate_path(path)
        await vfs._emit(VFSEvent(event_type=EventType.FILE_RENAMED, path=path, old_path=backup))

    async def discard(self, backup: str) -> None:
        mount, rel = self._vfs._mounts.resolve(backup)
        await self._vfs._remove(mount, rel, backup, recursive=True)


class VFSManager:
    """Routes operations to adapters via the mount table.

    Presents a single namespace to callers while delegating to the
    adapter that owns each path.  Reads go through a TTL cache; every
    mutation invalidates it and emits an event on :attr:`event_bus`.
    Adapter failures (the ``OSError`` family) are re-wrapped into
    :class:`~deskvfs.fs.exceptions.VFSError` kinds here.

    Usage::

        async with VFSManager() as vfs:
            await vfs.mount("/mem", "memory")
            await vfs.write_file("/mem/a.txt", "hi")
            assert await vfs.read_file("/mem/a.txt") == b"hi"
    """

    def __init__(
        self,
        config: VFSConfig | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config or VFSConfig()
        self.event_bus = event_bus or EventBus()
        self._adapters = AdapterRegistry()
        self._mounts = MountRegistry()
        self._cache = TTLCache(clock=self.config.clock)
        self._watchers = WatchRegistry()
        self._operations = OperationTracker()
        self._transactions = TransactionCoordinator(
            self._run_operation, self._emit, backups=_TransactionBackups(self)
        )

        if self.config.register_default_adapters:
            self._adapters.register(MemoryAdapter("memory"))

    async def __aenter__(self) -> VFSManager:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def mounts(self) -> MountRegistry:
        return self._mounts

    @property
    def cache(self) -> TTLCache:
        return self._cache

    @property
    def watchers(self) -> WatchRegistry:
        return self._watchers

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def _emit(self, event: VFSEvent) -> None:
        await self.event_bus.emit(event)

    # ------------------------------------------------------------------
    # Error translation
    # ------------------------------------------------------------------

    @contextmanager
    def _translate_errors(
        self,
        path: str,
        operation: str,
        default: type[VFSError],
        *,
        map_os_errors: bool = True,
    ) -> Iterator[None]:
        """Re-raise adapter exceptions as ``VFSError`` kinds.

        ``VFSError`` passes through.  With *map_os_errors*,
        ``FileNotFoundError`` and ``PermissionError`` keep their meaning;
        everything else becomes *default*.
        """
        try:
            yield
        except VFSError:
            raise
        except Exception as exc:
            cls = default
            if map_os_errors and isinstance(exc, FileNotFoundError):
                cls = NotFoundError
            elif map_os_errors and isinstance(exc, PermissionError):
                cls = PermissionDeniedError
            raise cls(
                f"{operation} failed for {path}: {exc}", path=path, operation=operation, cause=exc
            ) from exc

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def normalize_path(self, path: str) -> str:
        return normalize_path(path)

    def resolve_path(self, path: str) -> tuple[Mount, str]:
        """Resolve *path* to ``(mount, adapter-relative path)``."""
        return self._mounts.resolve(path)

    @staticmethod
    def _validate(path: str, operation: str) -> None:
        ok, message = validate_path(path)
        if not ok:
            raise InvalidPathError(message, path=path, operation=operation)

    @staticmethod
    def _check_writable(mount: Mount, path: str, operation: str) -> None:
        if mount.read_only:
            raise PermissionDeniedError(
                f"Cannot {operation} on read-only mount: {mount.path}",
                path=path,
                operation=operation,
            )

    @staticmethod
    def _virtualize(mount: Mount, node: VFSNode) -> VFSNode:
        rel = node.path
        node.path = mount.to_virtual(rel)
        if rel == "/" and mount.path != "/":
            node.name = split_path(mount.path)[1]
        return node

    def _mount_nodes(self, path: str, taken: set[str]) -> list[VFSNode]:
        """Directory nodes for mount points directly beneath *path*."""
        nodes: list[VFSNode] = []
        for mount in self._mounts.list_mounts():
            if mount.path == "/" or parent_path(mount.path) != path:
                continue
            name = split_path(mount.path)[1]
            if name in taken:
                continue
            nodes.append(
                VFSNode(
                    path=mount.path,
                    name=name,
                    type=NodeType.DIRECTORY,
                    metadata={"mount_point": True, "adapter": mount.adapter.name},
                )
            )
        return nodes

    # ------------------------------------------------------------------
    # Adapter registry
    # ------------------------------------------------------------------

    async def register_adapter(self, adapter: VFSAdapter) -> None:
        """Register *adapter* under its name, replacing any previous holder."""
        self._adapters.register(adapter)
        await self._emit(VFSEvent(event_type=EventType.ADAPTER_REGISTERED, adapter=adapter))

    async def unregister_adapter(self, name: str) -> bool:
        """Unmount everything served by *name*, then drop it.  Unknown names are a no-op.

        A failing unmount hook is logged; the mount is gone either way.
        """
        adapter = self._adapters.get(name)
        if adapter is None:
            return False
        for mount in self._mounts.list_mounts():
            if mount.adapter.name != name:
                continue
            try:
                await self.unmount(mount.path)
            except Exception:
                logger.warning("Unmount failed for %s", mount.path, exc_info=True)
        self._adapters.unregister(name)
        await self._emit(VFSEvent(event_type=EventType.ADAPTER_UNREGISTERED, adapter=adapter))
        return True

    def get_adapter(self, name: str) -> VFSAdapter | None:
        return self._adapters.get(name)

    def list_adapters(self) -> list[VFSAdapter]:
        return self._adapters.list()

    # ------------------------------------------------------------------
    # Mounting
    # ------------------------------------------------------------------

    async def mount(
        self,
        path: str,
        adapter: VFSAdapter | str,
        options: dict[str, Any] | None = None,
    ) -> Mount:
        """Mount a registered adapter (instance or name) at *path*."""
        path = normalize_path(path)
        self._validate(path, "mount")
        if self._mounts.has_mount(path):
            raise MountPointExistsError(
                f"Mount point already exists: {path}", path=path, operation="mount"
            )

        name = adapter if isinstance(adapter, str) else adapter.name
        registered = self._adapters.get(name)
        if registered is None:
            raise AdapterNotFoundError(
                f"Adapter not registered: {name}", path=path, operation="mount"
            )
        instance = registered if isinstance(adapter, str) else adapter

        with self._translate_errors(path, "mount", NetworkError, map_os_errors=False):
            await instance.mount()

        mount = Mount(path=path, adapter=instance, options=dict(options or {}))
        self._mounts.add_mount(mount)
        self._cache.invalidate_path(path)
        logger.debug("Mounted %r at %s", instance, path)
        await self._emit(VFSEvent(event_type=EventType.MOUNT_ADDED, path=path, mount=mount))
        return mount

    async def unmount(self, path: str) -> None:
        """Close the mount's watchers, run the adapter hook and drop the mount.

        The mount is removed even if the hook fails; the failure is then
        raised as ``NetworkError``.
        """
        path = normalize_path(path)
        mount = self._mounts.get(path)
        if mount is None:
            raise NotFoundError(f"Not mounted: {path}", path=path, operation="unmount")

        self._watchers.close_mount(path)
        failure: Exception | None = None
        try:
            await mount.adapter.unmount()
        except Exception as exc:
            failure = exc

        self._mounts.remove_mount(path)
        self._cache.invalidate_path(path)
        await self._emit(VFSEvent(event_type=EventType.MOUNT_REMOVED, path=path, mount=mount))

        if failure is not None:
            if isinstance(failure, VFSError):
                raise failure
            raise NetworkError(
                f"unmount hook failed for {path}: {failure}",
                path=path,
                operation="unmount",
                cause=failure,
            ) from failure

    def list_mounts(self) -> list[Mount]:
        return self._mounts.list_mounts()

    # ------------------------------------------------------------------
    # Read operations (cached)
    # ------------------------------------------------------------------

    async def read_file(self, path: str) -> bytes:
        path = normalize_path(path)
        key = cache_key(path, KIND_CONTENT)
        if self.config.cache_enabled:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        mount, rel = self._mounts.resolve(path)
        with self._translate_errors(path, "read", NotFoundError):
            data = await mount.adapter.read(rel)

        if self.config.cache_enabled:
            self._cache.set(key, data, self.config.content_ttl)
        return data

    async def exists(self, path: str) -> bool:
        """True if *path* exists.  Never raises."""
        try:
            path = normalize_path(path)
            if self._mounts.has_mount(path):
                return True
            mount, rel = self._mounts.resolve(path)
            return await mount.adapter.exists(rel)
        except Exception:
            logger.debug("exists(%r) treated as False", path, exc_info=True)
            return False

    async def stat(self, path: str) -> VFSNode:
        path = normalize_path(path)
        key = cache_key(path, KIND_STAT)
        if self.config.cache_enabled:
            cached = self._cache.get(key)
            if cached is not None:
                return copy.deepcopy(cached)

        mount, rel = self._mounts.resolve(path)
        with self._translate_errors(path, "stat", NotFoundError):
            node = self._virtualize(mount, await mount.adapter.stat(rel))

        if self.config.cache_enabled:
            self._cache.set(key, copy.deepcopy(node), self.config.stat_ttl)
        return node

    async def readdir(self, path: str) -> list[VFSNode]:
        """List *path*.  Mount points directly beneath it appear as directories."""
        path = normalize_path(path)
        key = cache_key(path, KIND_LIST)
        if self.config.cache_enabled:
            cached = self._cache.get(key)
            if cached is not None:
                return copy.deepcopy(cached)

        try:
            mount, rel = self._mounts.resolve(path)
        except NotFoundError:
            nodes = self._mount_nodes(path, set())
            if not nodes:
                raise
        else:
            with self._translate_errors(path, "readdir", NotFoundError):
                nodes = [self._virtualize(mount, n) for n in await mount.adapter.readdir(rel)]
            nodes.extend(self._mount_nodes(path, {n.name for n in nodes}))

        if self.config.cache_enabled:
            self._cache.set(key, copy.deepcopy(nodes), self.config.listing_ttl)
        return nodes

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def write_file(self, path: str, data: bytes | bytearray | memoryview | str) -> None:
        path = normalize_path(path)
        self._validate(path, "write")
        mount, rel = self._mounts.resolve(path)
        self._check_writable(mount, path, "write")

        payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        self._check_quota(mount, path, len(payload), "write")

        with self._translate_errors(path, "write", PermissionDeniedError):
            await mount.adapter.write(rel, payload)

        self._cache.invalidate_path(path)
        await self._emit(VFSEvent(event_type=EventType.FILE_MODIFIED, path=path))

    @staticmethod
    def _check_quota(mount: Mount, path: str, size: int, operation: str) -> None:
        limit = mount.adapter.capabilities.max_file_size
        if limit is not None and size > limit:
            raise QuotaExceededError(
                f"{size} bytes exceeds the {limit} byte limit of {mount.adapter.name!r}",
                path=path,
                operation=operation,
            )

    async def mkdir(self, path: str, recursive: bool = False) -> list[str]:
        """Create a directory.  Returns the virtual paths actually created.

        With *recursive*, missing ancestors up to the mount root are
        created top-down and an existing target is a no-op.
        """
        path = normalize_path(path)
        self._validate(path, "mkdir")
        mount, rel = self._mounts.resolve(path)
        self._check_writable(mount, path, "mkdir")

        with self._translate_errors(path, "mkdir", PermissionDeniedError):
            if recursive:
                return await self._make_dirs(mount, rel)
            await mount.adapter.mkdir(rel)
            await self._after_mkdir(mount, rel)
            return [path]

    async def _make_dirs(self, mount: Mount, rel: str) -> list[str]:
        missing: list[str] = []
        current = rel
        while current != "/" and not await mount.adapter.exists(current):
            missing.append(current)
            current = parent_path(current)

        created: list[str] = []
        for target in reversed(missing):
            await mount.adapter.mkdir(target)
            created.append(await self._after_mkdir(mount, target))
        return created

    async def _after_mkdir(self, mount: Mount, rel: str) -> str:
        virtual = mount.to_virtual(rel)
        self._cache.invalidate_path(virtual)
        await self._emit(VFSEvent(event_type=EventType.DIRECTORY_CREATED, path=virtual))
        return virtual

    async def remove(self, path: str, recursive: bool = False) -> None:
        """Remove a file or directory.

        A non-empty directory needs *recursive*; without it the adapter's
        refusal is surfaced as ``PermissionDeniedError``.
        """
        path = normalize_path(path)
        self._validate(path, "remove")
        mount, rel = self._mounts.resolve(path)
        self._check_writable(mount, path, "remove")
        await self._remove(mount, rel, path, recursive=recursive)

    async def _remove(
        self,
        mount: Mount,
        rel: str,
        path: str,
        *,
        recursive: bool,
        token: CancellationToken | None = None,
    ) -> None:
        if rel == "/":
            raise PermissionDeniedError(
                f"Cannot remove mount point {path}; unmount it instead",
                path=path,
                operation="remove",
            )
        adapter = mount.adapter
        with self._translate_errors(path, "remove", PermissionDeniedError):
            node = await adapter.stat(rel)
            if not node.is_directory:
                await adapter.unlink(rel)
                await self._after_remove(mount, rel, is_directory=False)
                return
            if not recursive:
                await adapter.rmdir(rel)
                await self._after_remove(mount, rel, is_directory=True)
                return

            # Children first; a directory is revisited once its entries are gone.
            stack: list[tuple[str, bool]] = [(rel, False)]
            while stack:
                current, expanded = stack.pop()
                if token is not None:
                    token.raise_if_cancelled(path=mount.to_virtual(current), operation="remove")
                if expanded:
                    await adapter.rmdir(current)
                    await self._after_remove(mount, current, is_directory=True)
                    continue
                stack.append((current, True))
                for child in await adapter.readdir(current):
                    if child.is_directory:
                        stack.append((child.path, False))
                    else:
                        await adapter.unlink(child.path)
                        await self._after_remove(mount, child.path, is_directory=False)

    async def _after_remove(self, mount: Mount, rel: str, *, is_directory: bool) -> None:
        virtual = mount.to_virtual(rel)
        self._cache.invalidate_path(virtual)
        event_type = EventType.DIRECTORY_DELETED if is_directory else EventType.FILE_DELETED
        await self._emit(VFSEvent(event_type=event_type, path=virtual))

    # ------------------------------------------------------------------
    # Tracked operations: copy / move / delete
    # ------------------------------------------------------------------

    async def copy(
        self, src: str, dest: str, token: CancellationToken | None = None
    ) -> FileOperation:
        """Copy a file or directory tree, possibly across mounts."""
        op = self._operations.create(OperationType.COPY, normalize_path(src), normalize_path(dest))
        await self._run_operation(op, token)
        return op

    async def move(
        self, src: str, dest: str, token: CancellationToken | None = None
    ) -> FileOperation:
        """Move a file or directory.

        Within one mount this is a single adapter ``rename``.  Across
        mounts it is a copy followed by a recursive remove of the source.
        """
        op = self._operations.create(OperationType.MOVE, normalize_path(src), normalize_path(dest))
        await self._run_operation(op, token)
        return op

    def list_operations(self) -> list[FileOperation]:
        return self._operations.list()

    def get_operation(self, operation_id: str) -> FileOperation | None:
        return self._operations.get(operation_id)

    async def _run_operation(self, op: FileOperation, token: CancellationToken | None) -> None:
        """Drive *op* through its lifecycle.  The record leaves the live registry at the end."""
        self._operations.start(op)
        await self._emit(
            VFSEvent(event_type=EventType.OPERATION_STARTED, path=op.source, operation=op)
        )
        try:
            if token is not None:
                token.raise_if_cancelled(path=op.source, operation=op.type.value)
            if op.type is OperationType.COPY:
                await self._copy_impl(op, token)
            elif op.type is OperationType.MOVE:
                await self._move_impl(op, token)
            else:
                await self._delete_impl(op, token)
        except OperationCancelledError as exc:
            self._operations.cancel(op, exc)
            await self._emit(
                VFSEvent(
                    event_type=EventType.OPERATION_CANCELLED,
                    path=op.source,
                    operation=op,
                    error=exc,
                )
            )
            raise
        except Exception as exc:
            self._operations.fail(op, exc)
            await self._emit(
                VFSEvent(
                    event_type=EventType.OPERATION_ERROR, path=op.source, operation=op, error=exc
                )
            )
            if isinstance(exc, VFSError):
                raise
            raise NetworkError(
                f"{op.type.value} failed for {op.source}: {exc}",
                path=op.source,
                operation=op.type.value,
                cause=exc,
            ) from exc
        else:
            self._operations.complete(op)
            await self._emit(
                VFSEvent(event_type=EventType.OPERATION_COMPLETED, path=op.source, operation=op)
            )
            if op.type is OperationType.MOVE:
                await self._emit(
                    VFSEvent(
                        event_type=EventType.FILE_RENAMED, path=op.destination, old_path=op.source
                    )
                )
        finally:
            self._operations.discard(op.id)

    async def _emit_progress(self, op: FileOperation) -> None:
        await self._emit(
            VFSEvent(event_type=EventType.OPERATION_PROGRESS, path=op.source, operation=op)
        )

    @staticmethod
    def _destination_of(op: FileOperation) -> str:
        if op.destination is None:
            raise InvalidPathError(
                f"{op.type.value} needs a destination", path=op.source, operation=op.type.value
            )
        return op.destination

    async def _copy_impl(self, op: FileOperation, token: CancellationToken | None) -> None:
        src, dest = op.source, self._destination_of(op)
        self._validate(dest, "copy")
        src_mount, src_rel = self._mounts.resolve(src)
        dest_mount, dest_rel = self._mounts.resolve(dest)
        self._check_writable(dest_mount, dest, "copy")

        with self._translate_errors(src, "copy", NetworkError, map_os_errors=False):
            node = await src_mount.adapter.stat(src_rel)
            if not node.is_directory:
                await self._copy_file(op, src_mount, src_rel, dest_mount, dest_rel, token)
                return

            if src_mount is dest_mount and is_under(dest_rel, src_rel):
                raise InvalidPathError(
                    f"Cannot copy {src} into itself", path=dest, operation="copy"
                )

            # Snapshot the tree first so totals are known before any byte moves.
            entries: list[VFSNode] = []
            stack = [src_rel]
            while stack:
                current = stack.pop()
                if token is not None:
                    token.raise_if_cancelled(path=src_mount.to_virtual(current), operation="copy")
                for child in await src_mount.adapter.readdir(current):
                    entries.append(child)
                    if child.is_directory:
                        stack.append(child.path)
            op.total_bytes = sum(e.size for e in entries if not e.is_directory)

            await self._make_dirs(dest_mount, dest_rel)
            for entry in sorted(entries, key=lambda e: e.path):
                target = dest_rel.rstrip("/") + entry.path[len(src_rel.rstrip("/")):]
                if entry.is_directory:
                    await self._make_dirs(dest_mount, target)
                else:
                    await self._copy_file(op, src_mount, entry.path, dest_mount, target, token)
        await self._emit_progress(op)

    async def _copy_file(
        self,
        op: FileOperation,
        src_mount: Mount,
        src_rel: str,
        dest_mount: Mount,
        dest_rel: str,
        token: CancellationToken | None,
    ) -> None:
        src_virtual = src_mount.to_virtual(src_rel)
        dest_virtual = dest_mount.to_virtual(dest_rel)
        if token is not None:
            token.raise_if_cancelled(path=src_virtual, operation="copy")
        data = await src_mount.adapter.read(src_rel)

        if op.transferred_bytes + len(data) > op.total_bytes:
            op.total_bytes = op.transferred_bytes + len(data)
        op.add_transferred(len(data))
        await self._emit_progress(op)

        if token is not None:
            token.raise_if_cancelled(path=dest_virtual, operation="copy")
        self._check_quota(dest_mount, dest_virtual, len(data), "copy")
        await dest_mount.adapter.write(dest_rel, data)
        self._cache.invalidate_path(dest_virtual)
        await self._emit(VFSEvent(event_type=EventType.FILE_MODIFIED, path=dest_virtual))

    async def _move_impl(self, op: FileOperation, token: CancellationToken | None) -> None:
        src, dest = op.source, self._destination_of(op)
        self._validate(src, "move")
        self._validate(dest, "move")
        src_mount, src_rel = self._mounts.resolve(src)
        dest_mount, dest_rel = self._mounts.resolve(dest)
        self._check_writable(src_mount, src, "move")
        self._check_writable(dest_mount, dest, "move")
        if src_rel == "/":
            raise PermissionDeniedError(
                f"Cannot move mount point {src}", path=src, operation="move"
            )

        if src_mount is dest_mount:
            with self._translate_errors(src, "move", NetworkError, map_os_errors=False):
                await src_mount.adapter.rename(src_rel, dest_rel)
            op.add_transferred(0)
            self._cache.invalidate_path(src)
            self._cache.invalidate_path(dest)
            return

        await self._copy_impl(op, token)
        try:
            if token is not None:
                token.raise_if_cancelled(path=src, operation="move")
            await self._remove(src_mount, src_rel, src, recursive=True)
        except Exception as exc:
            await self._discard_copy(dest_mount, dest_rel, dest)
            if isinstance(exc, OperationCancelledError):
                raise
            raise NetworkError(
                f"Copied {src} to {dest} but could not delete the source: {exc}",
                path=src,
                operation="move",
                cause=exc,
            ) from exc

    async def _discard_copy(self, mount: Mount, rel: str, path: str) -> None:
        """Remove the provisional destination of a cross-mount move."""
        try:
            await self._remove(mount, rel, path, recursive=True)
        except Exception:
            logger.warning(
                "Could not remove provisional copy %s; source and copy both remain",
                path,
                exc_info=True,
            )

    async def _delete_impl(self, op: FileOperation, token: CancellationToken | None) -> None:
        path = op.source
        self._validate(path, "delete")
        mount, rel = self._mounts.resolve(path)
        self._check_writable(mount, path, "delete")
        await self._remove(mount, rel, path, recursive=True, token=token)
        op.add_transferred(0)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def create_transaction(self) -> VFSTransaction:
        return self._transactions.create()

    def get_transaction(self, transaction_id: str) -> VFSTransaction:
        return self._transactions.get(transaction_id)

    def add_operation(
        self,
        transaction_id: str,
        operation: FileOperation,
        rollback: FileOperation | None = None,
    ) -> FileOperation:
        return self._transactions.add_operation(transaction_id, operation, rollback)

    def queue_copy(self, transaction_id: str, src: str, dest: str) -> FileOperation:
        return self._transactions.queue_copy(transaction_id, src, dest)

    def queue_move(self, transaction_id: str, src: str, dest: str) -> FileOperation:
        return self._transactions.queue_move(transaction_id, src, dest)

    def queue_delete(
        self, transaction_id: str, path: str, rollback: FileOperation | None = None
    ) -> FileOperation:
        return self._transactions.queue_delete(transaction_id, path, rollback)

    async def commit_transaction(
        self, transaction_id: str, token: CancellationToken | None = None
    ) -> VFSTransaction:
        return await self._transactions.commit(transaction_id, token)

    async def rollback_transaction(self, transaction_id: str) -> VFSTransaction:
        return await self._transactions.rollback(transaction_id)

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    async def watch(self, path: str, callback: Callable[[WatchEvent], Any]) -> Watcher:
        """Register *callback* for changes at or below *path*.

        Events reach the callback with virtual paths.  Requires an adapter
        with ``supports_realtime``.
        """
        path = normalize_path(path)
        mount, rel = self._mounts.resolve(path)
        if not mount.adapter.capabilities.supports_realtime:
            raise UnsupportedOperationError(
                f"Adapter {mount.adapter.name!r} does not support watching",
                path=path,
                operation="watch",
            )

        async def _relay(event: WatchEvent) -> None:
            result = callback(
                WatchEvent(
                    type=event.type,
                    path=mount.to_virtual(event.path),
                    old_path=mount.to_virtual(event.old_path) if event.old_path else None,
                    timestamp=event.timestamp,
                )
            )
            if inspect.isawaitable(result):
                await result

        with self._translate_errors(path, "watch", NetworkError, map_os_errors=False):
            watcher = await mount.adapter.watch(rel, _relay)
        watcher.path = path
        self._watchers.add(mount.path, watcher)
        return watcher

    def unwatch(self, watcher: Watcher) -> None:
        watcher.close()
        self._watchers.remove(watcher)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, query: str, base_path: str | None = None) -> list[VFSNode]:
        """Case-insensitive name search below *base_path* (or everywhere)."""
        base = normalize_path(base_path) if base_path is not None else None
        results: list[VFSNode] = []
        for mount, start in mounts_for(self._mounts.list_mounts(), base):
            try:
                results.extend(await search_mount(mount, query, start))
            except Exception:
                logger.warning("Search failed in mount %s", mount.path, exc_info=True)
        return results

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    async def check_permission(self, path: str, kind: PermissionKind | str) -> bool:
        """True if *kind* access is allowed on *path*.  Errors yield False."""
        try:
            kind = PermissionKind(kind)
            path = normalize_path(path)
            mount, _ = self._mounts.resolve(path)
            if kind is PermissionKind.WRITE and mount.read_only:
                return False
            node = await self.stat(path)
            return bool(getattr(node.permissions, kind.value))
        except Exception:
            logger.debug("check_permission(%r, %r) treated as False", path, kind, exc_info=True)
            return False

    async def set_permissions(self, path: str, partial: dict[str, Any]) -> VFSNode:
        unknown = set(partial) - PERMISSION_KEYS
        if unknown:
            raise ValueError(f"Unknown permission keys: {sorted(unknown)}")

        path = normalize_path(path)
        mount, rel = self._mounts.resolve(path)
        self._check_writable(mount, path, "set_permissions")
        adapter = mount.adapter
        if not adapter.capabilities.supports_permissions or not isinstance(
            adapter, SupportsPermissions
        ):
            raise UnsupportedOperationError(
                f"Adapter {adapter.name!r} does not support permissions",
                path=path,
                operation="set_permissions",
            )

        with self._translate_errors(path, "set_permissions", PermissionDeniedError):
            node = self._virtualize(mount, await adapter.set_permissions(rel, partial))

        self._cache.invalidate_path(path)
        await self._emit(VFSEvent(event_type=EventType.FILE_MODIFIED, path=path, node=node))
        return node

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def clear_cache(self, path: str | None = None) -> int:
        if path is None:
            return self._cache.clear()
        return self._cache.invalidate_path(path)

    def get_cache_stats(self) -> CacheStats:
        return self._cache.stats()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Unmount everything, innermost mounts first."""
        for mount in reversed(self._mounts.list_mounts()):
            try:
                await self.unmount(mount.path)
            except Exception:
                logger.warning("Unmount failed for %s", mount.path, exc_info=True)
