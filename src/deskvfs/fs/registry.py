"""AdapterRegistry — named adapters available for mounting."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .protocol import VFSAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Name -> adapter map.

    Pure bookkeeping: the manager owns the side effects (unmounting,
    events) that go with registering and unregistering.
    """

    def __init__(self) -> None:
        self._adapters: dict[str, VFSAdapter] = {}

    def register(self, adapter: VFSAdapter) -> VFSAdapter | None:
        """Store *adapter* under its name.  Returns the adapter it replaced, if any."""
        previous = self._adapters.get(adapter.name)
        self._adapters[adapter.name] = adapter
        if previous is not None and previous is not adapter:
            logger.debug("Adapter %r replaced by %r", previous, adapter)
        return previous

    def unregister(self, name: str) -> VFSAdapter | None:
        return self._adapters.pop(name, None)

    def get(self, name: str) -> VFSAdapter | None:
        return self._adapters.get(name)

    def list(self) -> list[VFSAdapter]:
        return list(self._adapters.values())

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)
