"""Tests for tracked copy / move operations and cancellation."""

from __future__ import annotations

import errno
import os

import pytest

from deskvfs.events import EventType
from deskvfs.fs.database import DatabaseAdapter
from deskvfs.fs.exceptions import (
    ErrorCode,
    InvalidPathError,
    NetworkError,
    OperationCancelledError,
    PermissionDeniedError,
    QuotaExceededError,
)
from deskvfs.fs.memory import MemoryAdapter
from deskvfs.fs.operations import CancellationToken, OperationTracker
from deskvfs.fs.types import AdapterCapabilities, OperationStatus, OperationType


class SpyAdapter(MemoryAdapter):
    """Memory adapter recording rename calls."""

    def __init__(self, name: str = "spy") -> None:
        super().__init__(name)
        self.renames: list[tuple[str, str]] = []

    async def rename(self, old_path: str, new_path: str) -> None:
        self.renames.append((old_path, new_path))
        await super().rename(old_path, new_path)


class UndeletableAdapter(MemoryAdapter):
    """Memory adapter whose files can be written but never unlinked."""

    async def unlink(self, path: str) -> None:
        raise PermissionError(errno.EACCES, os.strerror(errno.EACCES), path)


async def _tree(vfs, root: str) -> None:
    await vfs.write_file(f"{root}/a.txt", b"aaa")
    await vfs.write_file(f"{root}/sub/b.txt", b"bbbb")
    await vfs.write_file(f"{root}/sub/deep/c.txt", b"cc")
    await vfs.mkdir(f"{root}/empty", recursive=True)


@pytest.fixture
async def two_mounts(mem_vfs):
    """``/mem`` plus a second memory adapter at ``/other``."""
    await mem_vfs.register_adapter(MemoryAdapter("other"))
    await mem_vfs.mount("/other", "other")
    return mem_vfs


# ---------------------------------------------------------------------------
# CancellationToken / OperationTracker
# ---------------------------------------------------------------------------


class TestCancellationToken:
    def test_initial_state(self):
        token = CancellationToken()
        assert token.cancelled is False
        token.raise_if_cancelled()

    def test_cancel_with_reason(self):
        token = CancellationToken()
        token.cancel("user abort")
        assert token.cancelled is True
        with pytest.raises(OperationCancelledError, match="user abort") as exc_info:
            token.raise_if_cancelled(path="/x", operation="copy")
        assert exc_info.value.path == "/x"
        assert exc_info.value.code is ErrorCode.OPERATION_CANCELLED

    def test_cancel_idempotent(self):
        calls = []
        token = CancellationToken()
        token.on_cancel(lambda: calls.append(1))
        token.cancel("first")
        token.cancel("second")
        assert calls == [1]
        assert token.reason == "first"

    def test_on_cancel_after_cancel_runs_now(self):
        calls = []
        token = CancellationToken()
        token.cancel()
        token.on_cancel(lambda: calls.append(1))
        assert calls == [1]

    def test_failing_callback_logged(self, caplog):
        token = CancellationToken()
        seen = []

        def boom():
            raise RuntimeError("nope")

        token.on_cancel(boom)
        token.on_cancel(lambda: seen.append(True))
        token.cancel()
        assert seen == [True]
        assert "Cancellation callback" in caplog.text


class TestOperationTracker:
    def test_lifecycle(self):
        tracker = OperationTracker()
        op = tracker.create(OperationType.COPY, "/a", "/b")
        assert tracker.get(op.id) is op
        tracker.start(op)
        assert op.status is OperationStatus.RUNNING
        tracker.complete(op)
        assert op.status is OperationStatus.COMPLETED
        assert op.progress == 100.0
        assert op.end_time is not None
        assert tracker.discard(op.id) is op
        assert len(tracker) == 0

    def test_fail_records_message(self):
        tracker = OperationTracker()
        op = tracker.create(OperationType.DELETE, "/a")
        tracker.fail(op, RuntimeError("disk on fire"))
        assert op.status is OperationStatus.ERROR
        assert op.error == "disk on fire"
        assert op.is_terminal


# ---------------------------------------------------------------------------
# Copy
# ---------------------------------------------------------------------------


class TestCopy:
    async def test_file(self, mem_vfs, events):
        await mem_vfs.write_file("/mem/a", b"hello")
        events.clear()
        op = await mem_vfs.copy("/mem/a", "/mem/b")

        assert await mem_vfs.read_file("/mem/b") == b"hello"
        assert await mem_vfs.read_file("/mem/a") == b"hello"
        assert op.status is OperationStatus.COMPLETED
        assert (op.total_bytes, op.transferred_bytes, op.progress) == (5, 5, 100.0)
        assert [e.event_type for e in events] == [
            EventType.OPERATION_STARTED,
            EventType.OPERATION_PROGRESS,
            EventType.FILE_MODIFIED,
            EventType.OPERATION_COMPLETED,
        ]

    async def test_tree_across_mounts(self, two_mounts, events):
        await _tree(two_mounts, "/mem/src")
        events.clear()
        op = await two_mounts.copy("/mem/src", "/other/dst")

        assert await two_mounts.read_file("/other/dst/a.txt") == b"aaa"
        assert await two_mounts.read_file("/other/dst/sub/b.txt") == b"bbbb"
        assert await two_mounts.read_file("/other/dst/sub/deep/c.txt") == b"cc"
        assert (await two_mounts.stat("/other/dst/empty")).is_directory
        assert await two_mounts.exists("/mem/src/a.txt")
        assert op.total_bytes == 9
        assert op.transferred_bytes == 9

    async def test_progress_monotonic(self, two_mounts, events):
        await _tree(two_mounts, "/mem/src")
        events.clear()
        await two_mounts.copy("/mem/src", "/other/dst")

        progress = [
            (e.operation.transferred_bytes, e.operation.progress)
            for e in events
            if e.event_type is EventType.OPERATION_PROGRESS
        ]
        assert len(progress) == 4
        assert [p[0] for p in progress] == sorted(p[0] for p in progress)
        assert progress[-1][1] == 100.0

    async def test_tree_into_database(self, mem_vfs):
        db = DatabaseAdapter(name="db")
        await mem_vfs.register_adapter(db)
        await mem_vfs.mount("/db", db)
        await _tree(mem_vfs, "/mem/src")
        await mem_vfs.copy("/mem/src", "/db/copy")
        assert [n.name for n in await mem_vfs.readdir("/db/copy")] == ["empty", "sub", "a.txt"]
        assert await mem_vfs.read_file("/db/copy/sub/deep/c.txt") == b"cc"

    async def test_into_itself(self, mem_vfs, events):
        await _tree(mem_vfs, "/mem/src")
        with pytest.raises(InvalidPathError):
            await mem_vfs.copy("/mem/src", "/mem/src/inner")
        assert events[-1].event_type is EventType.OPERATION_ERROR
        assert events[-1].operation.status is OperationStatus.ERROR

    async def test_missing_source(self, mem_vfs):
        with pytest.raises(NetworkError) as exc_info:
            await mem_vfs.copy("/mem/ghost", "/mem/b")
        assert isinstance(exc_info.value.cause, FileNotFoundError)

    async def test_quota(self, mem_vfs):
        small = MemoryAdapter("small", AdapterCapabilities(max_file_size=2))
        await mem_vfs.register_adapter(small)
        await mem_vfs.mount("/small", small)
        await mem_vfs.write_file("/mem/big", b"too big")
        with pytest.raises(QuotaExceededError):
            await mem_vfs.copy("/mem/big", "/small/big")
        assert await mem_vfs.exists("/small/big") is False

    async def test_read_only_destination(self, mem_vfs):
        await mem_vfs.register_adapter(MemoryAdapter("ro"))
        await mem_vfs.mount("/ro", "ro", {"read_only": True})
        await mem_vfs.write_file("/mem/a", b"x")
        with pytest.raises(PermissionDeniedError):
            await mem_vfs.copy("/mem/a", "/ro/a")

    async def test_registry_empty_afterwards(self, mem_vfs):
        seen = []
        mem_vfs.event_bus.subscribe(
            EventType.OPERATION_STARTED, lambda e: seen.append(mem_vfs.list_operations())
        )
        await mem_vfs.write_file("/mem/a", b"x")
        op = await mem_vfs.copy("/mem/a", "/mem/b")
        assert [o.id for o in seen[0]] == [op.id]
        assert mem_vfs.list_operations() == []
        assert mem_vfs.get_operation(op.id) is None

    async def test_registry_empty_after_failure(self, mem_vfs):
        with pytest.raises(NetworkError):
            await mem_vfs.copy("/mem/ghost", "/mem/b")
        assert mem_vfs.list_operations() == []


# ---------------------------------------------------------------------------
# Move
# ---------------------------------------------------------------------------


class TestMove:
    async def test_same_mount_single_rename(self, vfs, events):
        spy = SpyAdapter()
        await vfs.register_adapter(spy)
        await vfs.mount("/spy", spy)
        await _tree(vfs, "/spy/src")
        events.clear()

        op = await vfs.move("/spy/src", "/spy/dst")

        assert spy.renames == [("/src", "/dst")]
        assert op.status is OperationStatus.COMPLETED
        assert await vfs.exists("/spy/src") is False
        assert await vfs.read_file("/spy/dst/sub/b.txt") == b"bbbb"
        renamed = events[-1]
        assert renamed.event_type is EventType.FILE_RENAMED
        assert (renamed.path, renamed.old_path) == ("/spy/dst", "/spy/src")

    async def test_same_mount_invalidates_cache(self, mem_vfs):
        await mem_vfs.write_file("/mem/a", b"x")
        await mem_vfs.read_file("/mem/a")
        await mem_vfs.readdir("/mem")
        await mem_vfs.move("/mem/a", "/mem/b")
        assert await mem_vfs.exists("/mem/a") is False
        assert [n.name for n in await mem_vfs.readdir("/mem")] == ["b"]

    async def test_cross_mount_file(self, two_mounts):
        await two_mounts.write_file("/mem/a", b"payload")
        await two_mounts.move("/mem/a", "/other/a")
        assert await two_mounts.exists("/mem/a") is False
        assert await two_mounts.read_file("/other/a") == b"payload"

    async def test_cross_mount_tree(self, two_mounts, events):
        await _tree(two_mounts, "/mem/src")
        events.clear()
        await two_mounts.move("/mem/src", "/other/moved")
        assert await two_mounts.exists("/mem/src") is False
        assert await two_mounts.read_file("/other/moved/sub/deep/c.txt") == b"cc"
        kinds = {e.event_type for e in events}
        assert EventType.FILE_DELETED in kinds
        assert events[-1].event_type is EventType.FILE_RENAMED

    async def test_cross_mount_source_delete_fails(self, mem_vfs):
        stuck = UndeletableAdapter("stuck")
        await mem_vfs.register_adapter(stuck)
        await mem_vfs.mount("/stuck", stuck)
        await mem_vfs.write_file("/stuck/a", b"x")

        with pytest.raises(NetworkError) as exc_info:
            await mem_vfs.move("/stuck/a", "/mem/a")

        assert isinstance(exc_info.value.cause, PermissionDeniedError)
        assert await mem_vfs.exists("/stuck/a") is True
        assert await mem_vfs.exists("/mem/a") is False

    async def test_mount_point_refused(self, two_mounts):
        with pytest.raises(PermissionDeniedError):
            await two_mounts.move("/other", "/mem/other")

    async def test_read_only_source(self, vfs):
        await vfs.mount("/ro", "memory", {"read_only": True})
        with pytest.raises(PermissionDeniedError):
            await vfs.move("/ro/a", "/ro/b")


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    async def test_pre_cancelled(self, two_mounts, events):
        await two_mounts.write_file("/mem/a", b"x")
        token = CancellationToken()
        token.cancel("not today")
        events.clear()

        with pytest.raises(OperationCancelledError):
            await two_mounts.copy("/mem/a", "/other/a", token)

        assert [e.event_type for e in events] == [
            EventType.OPERATION_STARTED,
            EventType.OPERATION_CANCELLED,
        ]
        assert events[-1].operation.status is OperationStatus.CANCELLED
        assert await two_mounts.exists("/other/a") is False
        assert two_mounts.list_operations() == []

    async def test_cancel_mid_copy(self, two_mounts, events):
        await _tree(two_mounts, "/mem/src")
        token = CancellationToken()
        two_mounts.event_bus.subscribe(
            EventType.OPERATION_PROGRESS, lambda e: token.cancel("enough")
        )

        with pytest.raises(OperationCancelledError):
            await two_mounts.copy("/mem/src", "/other/dst", token)

        assert await two_mounts.exists("/other/dst/a.txt") is False
        assert events[-1].event_type is EventType.OPERATION_CANCELLED

    async def test_cancel_cross_mount_move_keeps_source(self, two_mounts):
        await _tree(two_mounts, "/mem/src")
        token = CancellationToken()
        two_mounts.event_bus.subscribe(
            EventType.OPERATION_PROGRESS, lambda e: token.cancel()
        )

        with pytest.raises(OperationCancelledError):
            await two_mounts.move("/mem/src", "/other/dst", token)

        assert await two_mounts.read_file("/mem/src/a.txt") == b"aaa"
