"""Tests for transactions — ordered commit and compensating rollback."""

from __future__ import annotations

import pytest

from deskvfs.events import EventType
from deskvfs.fs.exceptions import (
    InvalidPathError,
    NetworkError,
    NotFoundError,
    OperationCancelledError,
    QuotaExceededError,
    TransactionRollbackError,
)
from deskvfs.fs.memory import MemoryAdapter
from deskvfs.fs.operations import CancellationToken
from deskvfs.fs.transactions import derive_compensation
from deskvfs.fs.types import AdapterCapabilities, FileOperation, OperationType, TransactionStatus


async def snapshot(vfs, root: str) -> dict[str, bytes | None]:
    """Map every path under *root* to its content (None for directories)."""
    result: dict[str, bytes | None] = {}
    stack = [root]
    while stack:
        for node in await vfs.readdir(stack.pop()):
            if node.is_directory:
                result[node.path] = None
                stack.append(node.path)
            else:
                result[node.path] = await vfs.read_file(node.path)
    return result


@pytest.fixture
async def seeded(mem_vfs):
    await mem_vfs.write_file("/mem/a.txt", b"alpha")
    await mem_vfs.write_file("/mem/b.txt", b"beta")
    await mem_vfs.write_file("/mem/dir/c.txt", b"gamma")
    return mem_vfs


# ---------------------------------------------------------------------------
# Compensation
# ---------------------------------------------------------------------------


class TestDeriveCompensation:
    def test_copy_deletes_destination(self):
        comp = derive_compensation(FileOperation(OperationType.COPY, "/a", "/b"))
        assert (comp.type, comp.source, comp.destination) == (OperationType.DELETE, "/b", None)

    def test_move_moves_back(self):
        comp = derive_compensation(FileOperation(OperationType.MOVE, "/a", "/b"))
        assert (comp.type, comp.source, comp.destination) == (OperationType.MOVE, "/b", "/a")

    def test_delete_has_none(self):
        assert derive_compensation(FileOperation(OperationType.DELETE, "/a")) is None


# ---------------------------------------------------------------------------
# Queueing
# ---------------------------------------------------------------------------


class TestQueueing:
    def test_queue_helpers_normalize(self, vfs):
        tx = vfs.create_transaction()
        copy = vfs.queue_copy(tx.id, "mem/a/", "/mem//b")
        move = vfs.queue_move(tx.id, "/mem/c", "/mem/d")
        delete = vfs.queue_delete(tx.id, "/mem/e")
        assert (copy.source, copy.destination) == ("/mem/a", "/mem/b")
        assert [op.type for op in tx.operations] == [
            OperationType.COPY,
            OperationType.MOVE,
            OperationType.DELETE,
        ]
        assert tx.compensations[delete.id] is None
        assert tx.compensations[move.id].destination == "/mem/c"

    def test_explicit_rollback(self, vfs):
        tx = vfs.create_transaction()
        undo = FileOperation(OperationType.COPY, "/backup/x", "/mem/x")
        op = vfs.queue_delete(tx.id, "/mem/x", rollback=undo)
        assert tx.compensations[op.id] is undo

    def test_unknown_transaction(self, vfs):
        with pytest.raises(NotFoundError):
            vfs.queue_copy("nope", "/a", "/b")
        with pytest.raises(NotFoundError):
            vfs.get_transaction("nope")

    async def test_add_while_running_rejected(self, seeded):
        tx = seeded.create_transaction()
        seeded.queue_copy(tx.id, "/mem/a.txt", "/mem/a2.txt")
        errors = []

        def try_add(event):
            try:
                seeded.queue_delete(tx.id, "/mem/b.txt")
            except ValueError as exc:
                errors.append(exc)

        seeded.event_bus.subscribe(EventType.OPERATION_STARTED, try_add)
        await seeded.commit_transaction(tx.id)
        assert len(errors) == 1
        assert len(tx.operations) == 1


# ---------------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------------


class TestCommit:
    async def test_runs_in_order(self, seeded, events):
        tx = seeded.create_transaction()
        seeded.queue_copy(tx.id, "/mem/a.txt", "/mem/copied.txt")
        seeded.queue_move(tx.id, "/mem/copied.txt", "/mem/final.txt")
        seeded.queue_delete(tx.id, "/mem/dir")

        result = await seeded.commit_transaction(tx.id)

        assert result is tx
        assert tx.status is TransactionStatus.COMMITTED
        assert tx.end_time is not None
        assert await seeded.read_file("/mem/final.txt") == b"alpha"
        assert await seeded.exists("/mem/copied.txt") is False
        assert await seeded.exists("/mem/dir") is False
        assert events[-1].event_type is EventType.TRANSACTION_COMMITTED
        assert events[-1].transaction is tx

    async def test_records_compensations_for_completed(self, seeded):
        tx = seeded.create_transaction()
        seeded.queue_copy(tx.id, "/mem/a.txt", "/mem/x.txt")
        seeded.queue_delete(tx.id, "/mem/b.txt")
        await seeded.commit_transaction(tx.id)
        assert [op.type for op in tx.rollback_operations] == [OperationType.DELETE]

    async def test_terminal_transaction_discarded(self, seeded):
        tx = seeded.create_transaction()
        seeded.queue_copy(tx.id, "/mem/a.txt", "/mem/x.txt")
        await seeded.commit_transaction(tx.id)
        with pytest.raises(NotFoundError):
            seeded.get_transaction(tx.id)
        with pytest.raises(NotFoundError):
            await seeded.commit_transaction(tx.id)

    async def test_overwrite_leaves_no_backup(self, seeded):
        before = await snapshot(seeded, "/mem")
        tx = seeded.create_transaction()
        seeded.queue_copy(tx.id, "/mem/a.txt", "/mem/b.txt")
        await seeded.commit_transaction(tx.id)

        after = await snapshot(seeded, "/mem")
        assert after.keys() == before.keys()
        assert after["/mem/b.txt"] == b"alpha"

    async def test_copy_into_existing_directory_still_merges(self, seeded):
        await seeded.write_file("/mem/src/d.txt", b"delta")
        tx = seeded.create_transaction()
        seeded.queue_copy(tx.id, "/mem/src", "/mem/dir")
        await seeded.commit_transaction(tx.id)

        assert sorted(n.name for n in await seeded.readdir("/mem/dir")) == ["c.txt", "d.txt"]
        assert not [n for n in await seeded.readdir("/mem") if n.name.endswith(".txbak")]

    async def test_step_without_destination_is_rejected(self, seeded):
        for kind in (OperationType.COPY, OperationType.MOVE):
            tx = seeded.create_transaction()
            seeded.add_operation(tx.id, FileOperation(kind, "/mem/a.txt"))
            with pytest.raises(InvalidPathError) as exc_info:
                await seeded.commit_transaction(tx.id)
            assert exc_info.value.operation == kind.value
            assert tx.status is TransactionStatus.ERROR
        assert await seeded.read_file("/mem/a.txt") == b"alpha"

    async def test_empty_commit(self, vfs):
        tx = vfs.create_transaction()
        await vfs.commit_transaction(tx.id)
        assert tx.status is TransactionStatus.COMMITTED


# ---------------------------------------------------------------------------
# Rollback
# ---------------------------------------------------------------------------


class TestRollback:
    async def test_failure_restores_pre_state(self, seeded, events):
        before = await snapshot(seeded, "/mem")
        tx = seeded.create_transaction()
        seeded.queue_copy(tx.id, "/mem/a.txt", "/mem/new/a.txt")
        seeded.queue_move(tx.id, "/mem/b.txt", "/mem/moved.txt")
        seeded.queue_copy(tx.id, "/mem/ghost", "/mem/never")

        with pytest.raises(NetworkError):
            await seeded.commit_transaction(tx.id)

        assert tx.status is TransactionStatus.ERROR
        assert await seeded.exists("/mem/moved.txt") is False
        assert await seeded.read_file("/mem/b.txt") == b"beta"
        assert await seeded.exists("/mem/new/a.txt") is False
        after = await snapshot(seeded, "/mem")
        assert {p: v for p, v in after.items() if v is not None} == {
            p: v for p, v in before.items() if v is not None
        }
        assert EventType.TRANSACTION_ROLLEDBACK in [e.event_type for e in events]

    async def test_overwritten_copy_destination_restored(self, seeded):
        await seeded.write_file("/mem/b.txt", b"precious")
        before = await snapshot(seeded, "/mem")
        tx = seeded.create_transaction()
        seeded.queue_copy(tx.id, "/mem/a.txt", "/mem/b.txt")
        seeded.queue_copy(tx.id, "/mem/ghost", "/mem/never")

        with pytest.raises(NetworkError):
            await seeded.commit_transaction(tx.id)

        assert tx.status is TransactionStatus.ERROR
        assert await seeded.read_file("/mem/b.txt") == b"precious"
        assert await snapshot(seeded, "/mem") == before

    async def test_overwritten_move_target_restored(self, seeded):
        before = await snapshot(seeded, "/mem")
        tx = seeded.create_transaction()
        seeded.queue_move(tx.id, "/mem/a.txt", "/mem/b.txt")
        seeded.queue_copy(tx.id, "/mem/ghost", "/mem/never")

        with pytest.raises(NetworkError):
            await seeded.commit_transaction(tx.id)

        assert await seeded.read_file("/mem/a.txt") == b"alpha"
        assert await seeded.read_file("/mem/b.txt") == b"beta"
        assert await snapshot(seeded, "/mem") == before

    async def test_merged_directory_restored(self, seeded):
        await seeded.write_file("/mem/src/d.txt", b"delta")
        before = await snapshot(seeded, "/mem")
        tx = seeded.create_transaction()
        seeded.queue_copy(tx.id, "/mem/src", "/mem/dir")
        seeded.queue_copy(tx.id, "/mem/ghost", "/mem/never")

        with pytest.raises(NetworkError):
            await seeded.commit_transaction(tx.id)

        assert await snapshot(seeded, "/mem") == before

    async def test_failed_overwriting_step_restored(self, seeded):
        tiny = MemoryAdapter("tiny", AdapterCapabilities(max_file_size=2))
        await seeded.register_adapter(tiny)
        await seeded.mount("/tiny", tiny)
        await seeded.write_file("/tiny/keep.txt", b"ok")
        tx = seeded.create_transaction()
        seeded.queue_copy(tx.id, "/mem/a.txt", "/tiny/keep.txt")

        with pytest.raises(QuotaExceededError):
            await seeded.commit_transaction(tx.id)

        assert await seeded.read_file("/tiny/keep.txt") == b"ok"
        assert [n.name for n in await seeded.readdir("/tiny")] == ["keep.txt"]

    async def test_delete_without_compensation_stays_deleted(self, seeded):
        tx = seeded.create_transaction()
        seeded.queue_delete(tx.id, "/mem/a.txt")
        seeded.queue_copy(tx.id, "/mem/ghost", "/mem/never")
        with pytest.raises(NetworkError):
            await seeded.commit_transaction(tx.id)
        assert await seeded.exists("/mem/a.txt") is False

    async def test_rollback_step_failure(self, seeded):
        tx = seeded.create_transaction()
        copy = FileOperation(OperationType.COPY, "/mem/a.txt", "/mem/x.txt")
        seeded.add_operation(
            tx.id, copy, rollback=FileOperation(OperationType.DELETE, "/mem/not-there")
        )
        seeded.queue_copy(tx.id, "/mem/ghost", "/mem/never")

        with pytest.raises(TransactionRollbackError) as exc_info:
            await seeded.commit_transaction(tx.id)

        err = exc_info.value
        assert err.transaction_id == tx.id
        assert isinstance(err.original, NetworkError)
        assert isinstance(err.cause, NotFoundError)
        assert tx.status is TransactionStatus.ERROR
        assert await seeded.exists("/mem/x.txt") is True

    async def test_manual_rollback_of_pending(self, vfs, events):
        tx = vfs.create_transaction()
        vfs.queue_copy(tx.id, "/mem/a", "/mem/b")
        await vfs.rollback_transaction(tx.id)
        assert tx.status is TransactionStatus.ROLLEDBACK
        assert events[-1].event_type is EventType.TRANSACTION_ROLLEDBACK
        with pytest.raises(NotFoundError):
            vfs.get_transaction(tx.id)

    async def test_cancel_mid_commit(self, seeded):
        before = await snapshot(seeded, "/mem")
        token = CancellationToken()
        tx = seeded.create_transaction()
        seeded.queue_copy(tx.id, "/mem/a.txt", "/mem/one.txt")
        seeded.queue_copy(tx.id, "/mem/b.txt", "/mem/two.txt")
        seeded.event_bus.subscribe(EventType.OPERATION_COMPLETED, lambda e: token.cancel())

        with pytest.raises(OperationCancelledError):
            await seeded.commit_transaction(tx.id, token)

        assert tx.status is TransactionStatus.ERROR
        assert await snapshot(seeded, "/mem") == before
