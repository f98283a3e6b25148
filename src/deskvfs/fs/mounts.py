"""MountRegistry and Mount."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from .exceptions import NotFoundError
from .utils import is_under, normalize_path

if TYPE_CHECKING:
    from .protocol import VFSAdapter


@dataclass
class Mount:
    """A single mount point."""

    path: str
    """Virtual path prefix, e.g. ``"/"``, ``"/tmp"``, ``"/home"``."""

    adapter: VFSAdapter
    """Adapter implementing the :class:`~deskvfs.fs.protocol.VFSAdapter` protocol."""

    options: dict[str, Any] = field(default_factory=dict)
    """Free-form mount options.  ``read_only`` is the one the manager acts on."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    mounted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def read_only(self) -> bool:
        return bool(self.options.get("read_only", False))

    def __post_init__(self) -> None:
        self.path = normalize_path(self.path)

    def to_virtual(self, relative: str) -> str:
        """Map an adapter-relative path back into the virtual namespace."""
        relative = normalize_path(relative)
        if self.path == "/":
            return relative
        if relative == "/":
            return self.path
        return self.path + relative


class MountRegistry:
    """Registry of active mount points.

    Resolves virtual paths to (Mount, relative_path) tuples by longest
    segment-aware prefix.
    """

    def __init__(self) -> None:
        self._mounts: dict[str, Mount] = {}

    def add_mount(self, mount: Mount) -> None:
        """Add or replace a mount point."""
        self._mounts[mount.path] = mount

    def remove_mount(self, mount_path: str) -> Mount | None:
        """Remove a mount point.  Returns the removed mount, if any."""
        return self._mounts.pop(normalize_path(mount_path), None)

    def get(self, mount_path: str) -> Mount | None:
        return self._mounts.get(normalize_path(mount_path))

    def has_mount(self, mount_path: str) -> bool:
        """Check if a mount exists at exactly the given path."""
        return normalize_path(mount_path) in self._mounts

    def resolve(self, virtual_path: str) -> tuple[Mount, str]:
        """Resolve a virtual path to its mount and relative path.

        Finds the longest matching mount prefix and strips it.  ``/a`` is
        never a prefix of ``/ab``.
        """
        virtual_path = normalize_path(virtual_path)

        best_match: Mount | None = None
        best_len = -1

        for mount_path, mount in self._mounts.items():
            if is_under(virtual_path, mount_path) and len(mount_path) > best_len:
                best_match = mount
                best_len = len(mount_path)

        if best_match is None:
            raise NotFoundError(
                f"No mount found for path: {virtual_path}",
                path=virtual_path,
                operation="resolve",
            )

        if best_match.path == "/":
            return best_match, virtual_path
        relative = virtual_path[best_len:] or "/"
        return best_match, relative

    def mounts_under(self, virtual_path: str) -> list[Mount]:
        """Mounts whose path lies at or below *virtual_path*."""
        virtual_path = normalize_path(virtual_path)
        return [m for m in self.list_mounts() if is_under(m.path, virtual_path)]

    def list_mounts(self) -> list[Mount]:
        """List all registered mounts, sorted by path."""
        return sorted(self._mounts.values(), key=lambda m: m.path)

    def __len__(self) -> int:
        return len(self._mounts)
