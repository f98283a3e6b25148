"""BaseAdapter — shared lifecycle state and push-based watch hub."""

from __future__ import annotations

import contextlib
import inspect
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from .types import AdapterCapabilities, WatchEvent, WatchEventType, Watcher
from .utils import is_under, normalize_path

if TYPE_CHECKING:
    from collections.abc import Callable

    from .types import VFSNode

logger = logging.getLogger(__name__)


class BaseAdapter(ABC):
    """Base adapter with the bookkeeping every concrete backend shares.

    Subclasses implement the primitive I/O methods and call
    :meth:`_notify` after each successful mutation.  Watchers are kept
    here and fed directly from that mutation path — nothing polls.

    Subclasses must implement:
    - read / write / exists / stat / readdir
    - mkdir / rmdir / unlink / rename
    """

    adapter_type: str = "memory"
    default_capabilities = AdapterCapabilities()

    def __init__(self, name: str, capabilities: AdapterCapabilities | None = None) -> None:
        self.name = name
        self._capabilities = capabilities or self.default_capabilities
        self._connected = False
        self._watchers: list[Watcher] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    @property
    def capabilities(self) -> AdapterCapabilities:
        return self._capabilities

    @property
    def is_connected(self) -> bool:
        return self._connected

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def mount(self) -> None:
        self._connected = True

    async def unmount(self) -> None:
        for watcher in list(self._watchers):
            watcher.close()
        self._connected = False

    # =========================================================================
    # Primitive I/O: subclasses must implement
    # =========================================================================

    @abstractmethod
    async def read(self, path: str) -> bytes: ...

    @abstractmethod
    async def write(self, path: str, data: bytes) -> None: ...

    @abstractmethod
    async def exists(self, path: str) -> bool: ...

    @abstractmethod
    async def stat(self, path: str) -> VFSNode: ...

    @abstractmethod
    async def readdir(self, path: str) -> list[VFSNode]: ...

    @abstractmethod
    async def mkdir(self, path: str) -> None: ...

    @abstractmethod
    async def rmdir(self, path: str) -> None: ...

    @abstractmethod
    async def unlink(self, path: str) -> None: ...

    @abstractmethod
    async def rename(self, old_path: str, new_path: str) -> None: ...

    # =========================================================================
    # Watching
    # =========================================================================

    async def watch(self, path: str, callback: Callable[[WatchEvent], Any]) -> Watcher:
        """Register *callback* for changes at or below *path*."""
        path = normalize_path(path)
        watcher = Watcher(
            path=path,
            callback=callback,
            adapter_path=path,
            _on_close=self._drop_watcher,
        )
        self._watchers.append(watcher)
        return watcher

    def _drop_watcher(self, watcher: Watcher) -> None:
        with contextlib.suppress(ValueError):
            self._watchers.remove(watcher)

    @property
    def watcher_count(self) -> int:
        return len(self._watchers)

    async def _notify(
        self, event_type: WatchEventType, path: str, old_path: str | None = None
    ) -> None:
        """Push a change to every active watcher covering *path* (or *old_path*)."""
        if not self._watchers:
            return
        event = WatchEvent(type=event_type, path=path, old_path=old_path)
        for watcher in list(self._watchers):
            if not watcher.active:
                continue
            covered = is_under(path, watcher.adapter_path) or (
                old_path is not None and is_under(old_path, watcher.adapter_path)
            )
            if not covered:
                continue
            try:
                result = watcher.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning(
                    "Watch callback %r failed for %s on %s",
                    watcher.callback,
                    event_type.value,
                    path,
                    exc_info=True,
                )
