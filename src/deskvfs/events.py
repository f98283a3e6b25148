"""EventBus and event types — the VFS's observable side channel."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

    from deskvfs.fs.mounts import Mount
    from deskvfs.fs.protocol import VFSAdapter
    from deskvfs.fs.types import FileOperation, VFSNode, VFSTransaction

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Lifecycle and mutation events emitted by the manager."""

    ADAPTER_REGISTERED = "adapter:registered"
    ADAPTER_UNREGISTERED = "adapter:unregistered"
    MOUNT_ADDED = "mount:added"
    MOUNT_REMOVED = "mount:removed"
    FILE_MODIFIED = "file:modified"
    FILE_DELETED = "file:deleted"
    FILE_RENAMED = "file:renamed"
    DIRECTORY_CREATED = "directory:created"
    DIRECTORY_DELETED = "directory:deleted"
    OPERATION_STARTED = "operation:started"
    OPERATION_PROGRESS = "operation:progress"
    OPERATION_COMPLETED = "operation:completed"
    OPERATION_ERROR = "operation:error"
    OPERATION_CANCELLED = "operation:cancelled"
    TRANSACTION_COMMITTED = "transaction:committed"
    TRANSACTION_ROLLEDBACK = "transaction:rolledback"


@dataclass(frozen=True, slots=True)
class VFSEvent:
    """Immutable record of something the manager did.

    Only the fields relevant to ``event_type`` are populated.

    Attributes:
        event_type: The kind of event.
        path: Virtual path affected (destination for renames).
        old_path: Previous path (renames only).
        node: Node metadata when the emitter has it at hand.
        mount: The mount added or removed.
        adapter: The adapter registered or unregistered.
        operation: The tracked operation (``operation:*`` events).
        transaction: The transaction (``transaction:*`` events).
        error: The failure (``operation:error``).
    """

    event_type: EventType
    path: str | None = None
    old_path: str | None = None
    node: VFSNode | None = None
    mount: Mount | None = None
    adapter: VFSAdapter | None = None
    operation: FileOperation | None = None
    transaction: VFSTransaction | None = None
    error: BaseException | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class Subscription:
    """Handle returned by :meth:`EventBus.subscribe`."""

    __slots__ = ("_bus", "event_type", "handler")

    def __init__(
        self,
        bus: EventBus,
        event_type: EventType | None,
        handler: Callable[[VFSEvent], Any],
    ) -> None:
        self._bus = bus
        self.event_type = event_type
        self.handler = handler

    @property
    def active(self) -> bool:
        return self._bus.is_subscribed(self)

    def unsubscribe(self) -> bool:
        """Detach the handler.  Return True if it was still attached."""
        return self._bus.unsubscribe(self)


class EventBus:
    """Typed publish/subscribe bus.

    Handlers may be plain callables or coroutine functions and are called
    sequentially in subscription order; wildcard subscribers (``None``)
    run after the type-specific ones.  Exceptions are logged but never
    propagated — a failing consumer must not break a file operation.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[EventType | None, list[Subscription]] = {
            et: [] for et in EventType
        }
        self._subscriptions[None] = []

    def subscribe(
        self, event_type: EventType | None, handler: Callable[[VFSEvent], Any]
    ) -> Subscription:
        """Attach *handler* to *event_type* (``None`` for every event)."""
        subscription = Subscription(self, event_type, handler)
        self._subscriptions[event_type].append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        subs = self._subscriptions[subscription.event_type]
        try:
            subs.remove(subscription)
            return True
        except ValueError:
            return False

    def is_subscribed(self, subscription: Subscription) -> bool:
        return subscription in self._subscriptions[subscription.event_type]

    async def emit(self, event: VFSEvent) -> None:
        """Dispatch *event* to all subscribers of its type, then wildcards."""
        targets = [*self._subscriptions[event.event_type], *self._subscriptions[None]]
        for subscription in targets:
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on %s",
                    subscription.handler,
                    event.event_type.value,
                    event.path,
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        """Total number of subscriptions across all event types."""
        return sum(len(s) for s in self._subscriptions.values())

    def clear(self) -> None:
        """Remove all subscriptions."""
        for subs in self._subscriptions.values():
            subs.clear()
