"""WatchRegistry — manager-side bookkeeping of watch handles per mount."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import Watcher

logger = logging.getLogger(__name__)


class WatchRegistry:
    """Tracks every handed-out :class:`Watcher`, grouped by mount path."""

    def __init__(self) -> None:
        self._by_mount: dict[str, list[Watcher]] = {}

    def add(self, mount_path: str, watcher: Watcher) -> None:
        watcher.mount_path = mount_path
        self._by_mount.setdefault(mount_path, []).append(watcher)

    def remove(self, watcher: Watcher) -> bool:
        """Forget *watcher*.  Returns False if it was not tracked."""
        bucket = self._by_mount.get(watcher.mount_path or "")
        if bucket is None or watcher not in bucket:
            return False
        bucket.remove(watcher)
        if not bucket:
            del self._by_mount[watcher.mount_path or ""]
        return True

    def close_mount(self, mount_path: str) -> int:
        """Close and discard every watcher under *mount_path*.  Returns the count."""
        watchers = self._by_mount.pop(mount_path, [])
        for watcher in watchers:
            watcher.close()
        if watchers:
            logger.debug("Closed %d watcher(s) on %s", len(watchers), mount_path)
        return len(watchers)

    def list(self, mount_path: str | None = None) -> list[Watcher]:
        if mount_path is not None:
            return list(self._by_mount.get(mount_path, []))
        return [w for bucket in self._by_mount.values() for w in bucket]

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._by_mount.values())
