"""Shared fixtures for deskvfs tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from deskvfs.events import EventBus, VFSEvent
from deskvfs.fs.config import VFSConfig
from deskvfs.fs.database import DatabaseAdapter
from deskvfs.fs.memory import MemoryAdapter
from deskvfs.fs.vfs import VFSManager

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> list[VFSEvent]:
    """Every event emitted by the ``vfs`` fixture, in order."""
    return []


@pytest.fixture
async def vfs(clock: FakeClock, events: list[VFSEvent]) -> AsyncIterator[VFSManager]:
    """Manager with a fake clock and a wildcard event recorder; nothing mounted."""
    bus = EventBus()
    bus.subscribe(None, events.append)
    manager = VFSManager(VFSConfig(clock=clock), event_bus=bus)
    yield manager
    await manager.close()


@pytest.fixture
async def mem_vfs(vfs: VFSManager) -> VFSManager:
    """``vfs`` with the default memory adapter mounted at ``/mem``."""
    await vfs.mount("/mem", "memory")
    return vfs


@pytest.fixture
def memory() -> MemoryAdapter:
    return MemoryAdapter("scratch")


@pytest.fixture
async def database() -> AsyncIterator[DatabaseAdapter]:
    """Mounted in-memory SQLite database adapter."""
    adapter = DatabaseAdapter("sqlite+aiosqlite://", name="db")
    await adapter.mount()
    yield adapter
    await adapter.unmount()
