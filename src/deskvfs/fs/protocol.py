"""VFSAdapter protocol — runtime-checkable interfaces.

Split into a core protocol and an opt-in permissions protocol so that
backends without a permission model only implement the core.  Which
optional behaviour an adapter really offers is declared by its
:class:`~deskvfs.fs.types.AdapterCapabilities`; the manager checks that
descriptor before dispatch instead of probing attributes.

All paths handed to an adapter are adapter-relative and normalized
(``/`` is the adapter root).  Adapters signal failures with the built-in
``OSError`` family; the manager re-wraps them into ``VFSError`` kinds.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

    from .types import AdapterCapabilities, VFSNode, WatchEvent, Watcher


@runtime_checkable
class VFSAdapter(Protocol):
    """Core interface every adapter must implement."""

    name: str
    """Unique registry key."""

    adapter_type: str
    """Backend family: ``memory``, ``local``, ``database``, ``webdav``..."""

    @property
    def capabilities(self) -> AdapterCapabilities: ...

    @property
    def is_connected(self) -> bool: ...

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def mount(self) -> None:
        """Called by the manager before the mount is recorded."""
        ...

    async def unmount(self) -> None:
        """Called on unmount, after the mount's watchers are closed."""
        ...

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def read(self, path: str) -> bytes: ...

    async def exists(self, path: str) -> bool: ...

    async def stat(self, path: str) -> VFSNode: ...

    async def readdir(self, path: str) -> list[VFSNode]: ...

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def write(self, path: str, data: bytes) -> None: ...

    async def mkdir(self, path: str) -> None:
        """Create one directory.  The parent must exist."""
        ...

    async def rmdir(self, path: str) -> None:
        """Remove an empty directory."""
        ...

    async def unlink(self, path: str) -> None: ...

    async def rename(self, old_path: str, new_path: str) -> None: ...

    # ------------------------------------------------------------------
    # Watch
    # ------------------------------------------------------------------

    async def watch(self, path: str, callback: Callable[[WatchEvent], Any]) -> Watcher: ...


@runtime_checkable
class SupportsPermissions(Protocol):
    """Opt-in: adapters that can change node permissions."""

    async def set_permissions(self, path: str, partial: dict[str, Any]) -> VFSNode: ...
