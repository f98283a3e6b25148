"""Name search across mounted adapters."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .utils import is_under

if TYPE_CHECKING:
    from .mounts import Mount
    from .types import VFSNode

logger = logging.getLogger(__name__)


def matches(name: str, query: str) -> bool:
    """Case-insensitive substring match on a node name."""
    return query.lower() in name.lower()


async def search_mount(mount: Mount, query: str, start: str = "/") -> list[VFSNode]:
    """Walk *mount* from the adapter-relative *start* directory.

    Uses an explicit work stack.  A directory that cannot be listed is
    logged and skipped; the rest of the tree is still searched.  Returned
    nodes carry virtual paths.
    """
    results: list[VFSNode] = []
    stack = [start]
    while stack:
        current = stack.pop()
        try:
            children = await mount.adapter.readdir(current)
        except Exception:
            logger.warning(
                "Search skipped %s on mount %s", current, mount.path, exc_info=True
            )
            continue
        for node in children:
            rel = node.path
            if node.is_directory:
                stack.append(rel)
            if matches(node.name, query):
                node.path = mount.to_virtual(rel)
                results.append(node)
    return results


def mounts_for(mounts: list[Mount], base_path: str | None) -> list[tuple[Mount, str]]:
    """Pick the (mount, adapter start path) pairs a search must cover.

    With no *base_path*, every mount from its root.  Otherwise the mount
    that owns *base_path* plus any mount nested beneath it.
    """
    if base_path is None:
        return [(m, "/") for m in mounts]

    owner: Mount | None = None
    for mount in mounts:
        if is_under(base_path, mount.path) and (owner is None or len(mount.path) > len(owner.path)):
            owner = mount

    pairs: list[tuple[Mount, str]] = []
    if owner is not None:
        start = base_path[len(owner.path):] if owner.path != "/" else base_path
        pairs.append((owner, start or "/"))
    pairs.extend(
        (m, "/")
        for m in mounts
        if m is not owner and m.path != base_path and is_under(m.path, base_path)
    )
    return pairs
