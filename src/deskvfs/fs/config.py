"""VFSConfig — manager-wide tunables."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

CONTENT_TTL = 300.0
STAT_TTL = 60.0
LISTING_TTL = 30.0


@dataclass
class VFSConfig:
    """Configuration for a :class:`~deskvfs.fs.vfs.VFSManager`."""

    content_ttl: float = CONTENT_TTL
    """Seconds a ``read_file`` result stays cached."""

    stat_ttl: float = STAT_TTL
    """Seconds a ``stat`` result stays cached."""

    listing_ttl: float = LISTING_TTL
    """Seconds a ``readdir`` result stays cached."""

    cache_enabled: bool = True
    """If False, every read goes straight to the adapter."""

    register_default_adapters: bool = True
    """Register a ``MemoryAdapter`` named ``memory`` at construction."""

    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    """Monotonic clock used for cache expiry."""

    def __post_init__(self) -> None:
        for name in ("content_ttl", "stat_ttl", "listing_ttl"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
