"""Live operation registry and cooperative cancellation."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .exceptions import OperationCancelledError
from .types import FileOperation, OperationStatus, OperationType

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag checked between operation steps.

    A token may be shared by several operations; cancelling it stops
    every one of them at its next checkpoint.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        for callback in self._callbacks:
            try:
                callback()
            except Exception:
                logger.warning("Cancellation callback %r failed", callback, exc_info=True)

    def on_cancel(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def raise_if_cancelled(self, *, path: str | None = None, operation: str | None = None) -> None:
        if self._cancelled:
            message = "Operation cancelled"
            if self._reason:
                message = f"{message}: {self._reason}"
            raise OperationCancelledError(message, path=path, operation=operation)


class OperationTracker:
    """In-flight :class:`FileOperation` records, keyed by id.

    Records enter on :meth:`start` and leave on :meth:`discard`; the
    manager discards in a ``finally`` so only live operations are listed.
    """

    def __init__(self) -> None:
        self._operations: dict[str, FileOperation] = {}

    def create(
        self,
        op_type: OperationType,
        source: str,
        destination: str | None = None,
    ) -> FileOperation:
        op = FileOperation(type=op_type, source=source, destination=destination)
        self._operations[op.id] = op
        return op

    def start(self, op: FileOperation) -> FileOperation:
        op.status = OperationStatus.RUNNING
        op.start_time = datetime.now(UTC)
        self._operations[op.id] = op
        return op

    def complete(self, op: FileOperation) -> None:
        op.status = OperationStatus.COMPLETED
        op.progress = 100.0
        op.end_time = datetime.now(UTC)

    def fail(self, op: FileOperation, error: BaseException) -> None:
        op.status = OperationStatus.ERROR
        op.error = str(error)
        op.end_time = datetime.now(UTC)

    def cancel(self, op: FileOperation, error: BaseException | None = None) -> None:
        op.status = OperationStatus.CANCELLED
        op.error = str(error) if error is not None else None
        op.end_time = datetime.now(UTC)

    def discard(self, op_id: str) -> FileOperation | None:
        return self._operations.pop(op_id, None)

    def get(self, op_id: str) -> FileOperation | None:
        return self._operations.get(op_id)

    def list(self) -> list[FileOperation]:
        return list(self._operations.values())

    def __len__(self) -> int:
        return len(self._operations)
