"""DeskVFS — synchronous facade over :class:`~deskvfs.fs.vfs.VFSManager`."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from deskvfs.fs.vfs import VFSManager

if TYPE_CHECKING:
    from collections.abc import Callable

    from deskvfs.events import EventBus, EventType, Subscription, VFSEvent
    from deskvfs.fs.config import VFSConfig
    from deskvfs.fs.mounts import Mount
    from deskvfs.fs.operations import CancellationToken
    from deskvfs.fs.protocol import VFSAdapter
    from deskvfs.fs.types import (
        CacheStats,
        FileOperation,
        VFSNode,
        VFSTransaction,
        WatchEvent,
        Watcher,
    )

logger = logging.getLogger(__name__)


class DeskVFS:
    """Blocking wrapper for scripts, REPLs and non-async host code.

    Presents a synchronous API backed by a private event loop in a
    background thread.  The manager and every adapter live on that loop,
    so watch callbacks and event handlers run there too.

    Usage::

        with DeskVFS(mounts={"/mem": "memory"}) as vfs:
            vfs.write_file("/mem/notes.txt", "hello")
            print(vfs.read_text("/mem/notes.txt"))
    """

    def __init__(
        self,
        config: VFSConfig | None = None,
        *,
        mounts: dict[str, VFSAdapter | str] | None = None,
    ) -> None:
        self._closed = False

        # Private event loop in a daemon thread
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

        try:
            self._manager: VFSManager = self._run(self._async_init(config, mounts or {}))
        except BaseException:
            self._stop_loop()
            raise

    async def _async_init(
        self, config: VFSConfig | None, mounts: dict[str, VFSAdapter | str]
    ) -> VFSManager:
        manager = VFSManager(config)
        for path, adapter in mounts.items():
            if not isinstance(adapter, str) and manager.get_adapter(adapter.name) is None:
                await manager.register_adapter(adapter)
            await manager.mount(path, adapter)
        return manager

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run(self, coro: Any) -> Any:
        """Submit *coro* to the private loop and block for the result."""
        if self._closed:
            coro.close()
            raise RuntimeError("DeskVFS is closed")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def _stop_loop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Unmount everything, stop the event loop and join the thread."""
        if self._closed:
            return
        try:
            self._run(self._manager.close())
        finally:
            self._closed = True
            self._stop_loop()

    def __enter__(self) -> DeskVFS:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    @property
    def manager(self) -> VFSManager:
        """The underlying async manager.  Only await it on this facade's loop."""
        return self._manager

    @property
    def event_bus(self) -> EventBus:
        return self._manager.event_bus

    def subscribe(
        self, event_type: EventType | None, handler: Callable[[VFSEvent], Any]
    ) -> Subscription:
        return self._manager.event_bus.subscribe(event_type, handler)

    # ------------------------------------------------------------------
    # Adapters & mounts
    # ------------------------------------------------------------------

    def register_adapter(self, adapter: VFSAdapter) -> None:
        self._run(self._manager.register_adapter(adapter))

    def unregister_adapter(self, name: str) -> bool:
        return self._run(self._manager.unregister_adapter(name))

    def mount(
        self, path: str, adapter: VFSAdapter | str, options: dict[str, Any] | None = None
    ) -> Mount:
        return self._run(self._manager.mount(path, adapter, options))

    def unmount(self, path: str) -> None:
        self._run(self._manager.unmount(path))

    def list_mounts(self) -> list[Mount]:
        return self._manager.list_mounts()

    # ------------------------------------------------------------------
    # Filesystem wrappers (sync)
    # ------------------------------------------------------------------

    def read_file(self, path: str) -> bytes:
        return self._run(self._manager.read_file(path))

    def read_text(self, path: str, encoding: str = "utf-8") -> str:
        """Read *path* and decode it."""
        return self.read_file(path).decode(encoding)

    def write_file(self, path: str, data: bytes | str) -> None:
        self._run(self._manager.write_file(path, data))

    def exists(self, path: str) -> bool:
        return self._run(self._manager.exists(path))

    def stat(self, path: str) -> VFSNode:
        return self._run(self._manager.stat(path))

    def readdir(self, path: str = "/") -> list[VFSNode]:
        return self._run(self._manager.readdir(path))

    def mkdir(self, path: str, recursive: bool = False) -> list[str]:
        return self._run(self._manager.mkdir(path, recursive))

    def remove(self, path: str, recursive: bool = False) -> None:
        self._run(self._manager.remove(path, recursive))

    def copy(self, src: str, dest: str, token: CancellationToken | None = None) -> FileOperation:
        return self._run(self._manager.copy(src, dest, token))

    def move(self, src: str, dest: str, token: CancellationToken | None = None) -> FileOperation:
        return self._run(self._manager.move(src, dest, token))

    def search(self, query: str, base_path: str | None = None) -> list[VFSNode]:
        return self._run(self._manager.search(query, base_path))

    def check_permission(self, path: str, kind: str) -> bool:
        return self._run(self._manager.check_permission(path, kind))

    def set_permissions(self, path: str, partial: dict[str, Any]) -> VFSNode:
        return self._run(self._manager.set_permissions(path, partial))

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def create_transaction(self) -> VFSTransaction:
        return self._manager.create_transaction()

    def queue_copy(self, transaction_id: str, src: str, dest: str) -> FileOperation:
        return self._manager.queue_copy(transaction_id, src, dest)

    def queue_move(self, transaction_id: str, src: str, dest: str) -> FileOperation:
        return self._manager.queue_move(transaction_id, src, dest)

    def queue_delete(
        self, transaction_id: str, path: str, rollback: FileOperation | None = None
    ) -> FileOperation:
        return self._manager.queue_delete(transaction_id, path, rollback)

    def commit_transaction(
        self, transaction_id: str, token: CancellationToken | None = None
    ) -> VFSTransaction:
        return self._run(self._manager.commit_transaction(transaction_id, token))

    def rollback_transaction(self, transaction_id: str) -> VFSTransaction:
        return self._run(self._manager.rollback_transaction(transaction_id))

    # ------------------------------------------------------------------
    # Watching & cache
    # ------------------------------------------------------------------

    def watch(self, path: str, callback: Callable[[WatchEvent], Any]) -> Watcher:
        return self._run(self._manager.watch(path, callback))

    def unwatch(self, watcher: Watcher) -> None:
        self._manager.unwatch(watcher)

    def clear_cache(self, path: str | None = None) -> int:
        return self._manager.clear_cache(path)

    def get_cache_stats(self) -> CacheStats:
        return self._manager.get_cache_stats()
