"""TransactionCoordinator — ordered batches with compensating rollback."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from deskvfs.events import EventType, VFSEvent

from .exceptions import NotFoundError, TransactionRollbackError
from .types import FileOperation, OperationType, TransactionStatus, VFSTransaction
from .utils import normalize_path

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .operations import CancellationToken

    Executor = Callable[[FileOperation, CancellationToken | None], Awaitable[None]]
    Emitter = Callable[[VFSEvent], Awaitable[None]]

logger = logging.getLogger(__name__)

_TERMINAL = (TransactionStatus.COMMITTED, TransactionStatus.ROLLEDBACK, TransactionStatus.ERROR)


class BackupStore(Protocol):
    """Sets overwritten destinations aside for the length of a commit."""

    async def stash(self, path: str) -> str | None:
        """Copy an existing *path* to a backup.  None if there is nothing to keep."""
        ...

    async def restore(self, backup: str, path: str) -> None:
        """Replace whatever is at *path* with *backup*."""
        ...

    async def discard(self, backup: str) -> None: ...


def derive_compensation(op: FileOperation) -> FileOperation | None:
    """The operation that undoes *op*, where one can be derived.

    copy -> delete the destination, move -> move back.  A delete cannot
    be undone without a snapshot, so it has none.
    """
    if op.type is OperationType.COPY and op.destination is not None:
        return FileOperation(type=OperationType.DELETE, source=op.destination)
    if op.type is OperationType.MOVE and op.destination is not None:
        return FileOperation(type=OperationType.MOVE, source=op.destination, destination=op.source)
    return None


class TransactionCoordinator:
    """Queues operations per transaction and drives commit/rollback.

    Execution is delegated to *execute* (the manager's operation runner),
    so every step goes through the same path, cache and event handling
    as a direct call.  Transactions leave the registry once terminal.

    With a *backups* store, a copy or move whose destination already
    exists first stashes that destination, so rollback can put the old
    content back instead of only undoing the step.
    """

    def __init__(
        self,
        execute: Executor,
        emit: Emitter | None = None,
        backups: BackupStore | None = None,
    ) -> None:
        self._execute = execute
        self._emit = emit
        self._backups = backups
        self._transactions: dict[str, VFSTransaction] = {}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def create(self) -> VFSTransaction:
        tx = VFSTransaction()
        self._transactions[tx.id] = tx
        return tx

    def get(self, transaction_id: str) -> VFSTransaction:
        tx = self._transactions.get(transaction_id)
        if tx is None:
            raise NotFoundError(
                f"Transaction not found: {transaction_id}", operation="transaction"
            )
        return tx

    def list(self) -> list[VFSTransaction]:
        return list(self._transactions.values())

    def _finish(self, tx: VFSTransaction, status: TransactionStatus) -> None:
        tx.status = status
        tx.end_time = datetime.now(UTC)
        self._transactions.pop(tx.id, None)

    # ------------------------------------------------------------------
    # Queueing
    # ------------------------------------------------------------------

    def add_operation(
        self,
        transaction_id: str,
        operation: FileOperation,
        rollback: FileOperation | None = None,
    ) -> FileOperation:
        """Queue *operation*; *rollback* defaults to the derived compensation."""
        tx = self.get(transaction_id)
        if tx.status is not TransactionStatus.PENDING:
            raise ValueError(
                f"Transaction {transaction_id} is {tx.status.value}; operations can only be "
                "added while pending"
            )
        tx.operations.append(operation)
        tx.compensations[operation.id] = (
            rollback if rollback is not None else derive_compensation(operation)
        )
        return operation

    def queue_copy(self, transaction_id: str, src: str, dest: str) -> FileOperation:
        op = FileOperation(
            type=OperationType.COPY, source=normalize_path(src), destination=normalize_path(dest)
        )
        return self.add_operation(transaction_id, op)

    def queue_move(self, transaction_id: str, src: str, dest: str) -> FileOperation:
        op = FileOperation(
            type=OperationType.MOVE, source=normalize_path(src), destination=normalize_path(dest)
        )
        return self.add_operation(transaction_id, op)

    def queue_delete(
        self,
        transaction_id: str,
        path: str,
        rollback: FileOperation | None = None,
    ) -> FileOperation:
        op = FileOperation(type=OperationType.DELETE, source=normalize_path(path))
        return self.add_operation(transaction_id, op, rollback)

    # ------------------------------------------------------------------
    # Commit / rollback
    # ------------------------------------------------------------------

    async def commit(
        self, transaction_id: str, token: CancellationToken | None = None
    ) -> VFSTransaction:
        """Run every queued operation in order.

        On the first failure (cancellation included) the completed prefix
        is rolled back, the transaction ends in ``error`` and the original
        failure is re-raised.
        """
        tx = self.get(transaction_id)
        if tx.status is not TransactionStatus.PENDING:
            raise ValueError(f"Transaction {transaction_id} is {tx.status.value}, not pending")

        tx.status = TransactionStatus.RUNNING
        try:
            for op in tx.operations:
                if token is not None:
                    token.raise_if_cancelled(path=op.source, operation="commit")
                await self._stash_destination(tx, op)
                await self._execute(op, token)
                compensation = tx.compensations.get(op.id)
                if compensation is not None:
                    tx.rollback_operations.append(compensation)
        except Exception as exc:
            logger.warning(
                "Transaction %s failed after %d step(s); rolling back",
                tx.id,
                len(tx.rollback_operations),
            )
            await self._rollback(tx, original=exc)
            self._finish(tx, TransactionStatus.ERROR)
            raise

        await self._discard_backups(tx)
        self._finish(tx, TransactionStatus.COMMITTED)
        await self._emit_event(VFSEvent(event_type=EventType.TRANSACTION_COMMITTED, transaction=tx))
        return tx

    async def rollback(self, transaction_id: str) -> VFSTransaction:
        """Replay recorded compensations in reverse."""
        tx = self.get(transaction_id)
        if tx.status in _TERMINAL:
            raise ValueError(f"Transaction {transaction_id} is already {tx.status.value}")
        await self._rollback(tx)
        return tx

    async def _rollback(self, tx: VFSTransaction, original: BaseException | None = None) -> None:
        tx.status = TransactionStatus.ROLLING_BACK
        for compensation in reversed(tx.rollback_operations):
            try:
                target = tx.restores.get(compensation.id)
                if target is not None and self._backups is not None:
                    await self._backups.restore(compensation.source, target)
                else:
                    await self._execute(compensation, None)
            except Exception as exc:
                self._finish(tx, TransactionStatus.ERROR)
                logger.error(
                    "Rollback of transaction %s failed at %s %s",
                    tx.id,
                    compensation.type.value,
                    compensation.source,
                )
                raise TransactionRollbackError(
                    f"Rollback of transaction {tx.id} failed: {exc}",
                    transaction_id=tx.id,
                    original=original,
                    cause=exc,
                ) from exc

        self._finish(tx, TransactionStatus.ROLLEDBACK)
        await self._emit_event(
            VFSEvent(event_type=EventType.TRANSACTION_ROLLEDBACK, transaction=tx)
        )

    async def _stash_destination(self, tx: VFSTransaction, op: FileOperation) -> None:
        """Back up what *op* is about to overwrite and record the restore step.

        The restore step is recorded before *op* runs, so a step that fails
        halfway is still undone.
        """
        if self._backups is None or op.type is OperationType.DELETE or op.destination is None:
            return
        backup = await self._backups.stash(op.destination)
        if backup is None:
            return
        restore = FileOperation(type=OperationType.MOVE, source=backup, destination=op.destination)
        tx.rollback_operations.append(restore)
        tx.restores[restore.id] = op.destination
        logger.debug("Transaction %s backed up %s to %s", tx.id, op.destination, backup)

    async def _discard_backups(self, tx: VFSTransaction) -> None:
        if self._backups is None:
            return
        for step in tx.rollback_operations:
            if step.id not in tx.restores:
                continue
            try:
                await self._backups.discard(step.source)
            except Exception:
                logger.warning("Could not remove transaction backup %s", step.source, exc_info=True)

    async def _emit_event(self, event: VFSEvent) -> None:
        if self._emit is not None:
            await self._emit(event)
