"""Custom exception hierarchy for the deskvfs filesystem layer."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Stable error codes carried by every :class:`VFSError`."""

    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_PATH = "INVALID_PATH"
    ADAPTER_NOT_FOUND = "ADAPTER_NOT_FOUND"
    MOUNT_POINT_EXISTS = "MOUNT_POINT_EXISTS"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    OPERATION_CANCELLED = "OPERATION_CANCELLED"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
    TRANSACTION_ROLLBACK_FAILED = "TRANSACTION_ROLLBACK_FAILED"


class VFSError(Exception):
    """Base exception for all deskvfs errors.

    Attributes:
        code: Stable machine-readable error code.
        path: Virtual path the failing call was addressed to, if any.
        operation: Name of the attempted operation (``"read"``, ``"mount"``...).
        cause: The original exception raised below the manager boundary.
    """

    code: ErrorCode = ErrorCode.NETWORK_ERROR

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        operation: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.operation = operation
        self.cause = cause


class NotFoundError(VFSError):
    """Raised when a file, directory, mount or transaction does not exist."""

    code = ErrorCode.FILE_NOT_FOUND


class PermissionDeniedError(VFSError):
    """Raised when a mutation is refused by the mount or the adapter."""

    code = ErrorCode.PERMISSION_DENIED


class InvalidPathError(VFSError):
    """Raised when a virtual path fails validation."""

    code = ErrorCode.INVALID_PATH


class AdapterNotFoundError(VFSError):
    """Raised when mounting an adapter that is not registered."""

    code = ErrorCode.ADAPTER_NOT_FOUND


class MountPointExistsError(VFSError):
    """Raised when mounting over an already mounted path."""

    code = ErrorCode.MOUNT_POINT_EXISTS


class QuotaExceededError(VFSError):
    """Raised when a payload exceeds the adapter's ``max_file_size``."""

    code = ErrorCode.QUOTA_EXCEEDED


class OperationCancelledError(VFSError):
    """Raised when a cancellation token aborts an operation or transaction."""

    code = ErrorCode.OPERATION_CANCELLED


class NetworkError(VFSError):
    """Raised on adapter I/O failures (lifecycle hooks, copy, move)."""

    code = ErrorCode.NETWORK_ERROR


class UnsupportedOperationError(VFSError):
    """Raised when an adapter's capabilities do not cover a requested call."""

    code = ErrorCode.UNSUPPORTED_OPERATION


class TransactionRollbackError(VFSError):
    """Raised when a compensating step fails during rollback.

    The transaction is left in the terminal ``error`` state; callers must
    reconcile manually.  ``original`` holds the commit failure that
    triggered the rollback, when there was one.
    """

    code = ErrorCode.TRANSACTION_ROLLBACK_FAILED

    def __init__(
        self,
        message: str,
        *,
        transaction_id: str,
        original: BaseException | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, operation="rollback", cause=cause)
        self.transaction_id = transaction_id
        self.original = original
