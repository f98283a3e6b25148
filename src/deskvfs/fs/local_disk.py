"""LocalDiskAdapter — direct host-filesystem access under a root directory."""

from __future__ import annotations

import asyncio
import contextlib
import errno
import os
import shutil
import stat as stat_mod
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .base import BaseAdapter
from .permissions import apply_permissions, parse_mode
from .types import AdapterCapabilities, FilePermissions, NodeType, VFSNode, WatchEventType
from .utils import guess_mime_type, normalize_path

try:
    import grp
    import pwd
except ImportError:  # pragma: no cover - Windows
    grp = None  # type: ignore[assignment]
    pwd = None  # type: ignore[assignment]


class LocalDiskAdapter(BaseAdapter):
    """Pure local disk access adapter.

    All operations are performed directly on the host filesystem below
    ``root_dir``.  Blocking calls run in worker threads.

    Security: _resolve_path() ensures all paths stay within root_dir,
    preventing path traversal attacks.  Symlinks inside the root are
    rejected unless ``follow_symlinks`` is set.

    Change notifications cover mutations made through this adapter only,
    so the adapter does not advertise ``supports_realtime``.
    """

    adapter_type = "local"
    default_capabilities = AdapterCapabilities(
        supports_realtime=False,
        supports_permissions=True,
        supports_symlinks=True,
        supports_hardlinks=True,
        supports_locking=True,
        max_file_size=None,
        protocols=("file",),
    )

    def __init__(
        self,
        root_dir: Path | str,
        name: str = "local",
        *,
        follow_symlinks: bool = False,
        capabilities: AdapterCapabilities | None = None,
    ) -> None:
        super().__init__(name, capabilities)
        self.root_dir = Path(root_dir).resolve()
        self.follow_symlinks = follow_symlinks

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def mount(self) -> None:
        if not self.root_dir.exists():
            raise FileNotFoundError(f"Root directory does not exist: {self.root_dir}")
        if not self.root_dir.is_dir():
            raise NotADirectoryError(f"Root path is not a directory: {self.root_dir}")
        await super().mount()

    # =========================================================================
    # Path Resolution & Security
    # =========================================================================

    def _resolve_path(self, virtual_path: str) -> Path:
        """Resolve an adapter path to a physical path on disk.

        Validates that the resolved path stays within root_dir.
        """
        virtual_path = normalize_path(virtual_path)
        rel = virtual_path.lstrip("/")
        if not rel:
            return self.root_dir

        candidate = self.root_dir / rel

        if not self.follow_symlinks:
            current = self.root_dir
            for part in Path(rel).parts:
                current = current / part
                if current.is_symlink():
                    raise PermissionError(
                        f"Symlinks not allowed: {virtual_path} contains symlink at "
                        f"{current.relative_to(self.root_dir)}"
                    )

        resolved = candidate.resolve()

        try:
            resolved.relative_to(self.root_dir)
        except ValueError:
            raise PermissionError(
                f"Path traversal detected: {virtual_path} resolves outside mount directory"
            ) from None

        return resolved

    def _to_virtual_path(self, physical_path: Path) -> str:
        """Convert a physical path back to an adapter path."""
        rel = physical_path.relative_to(self.root_dir)
        vpath = "/" + str(rel).replace("\\", "/")
        return vpath if vpath != "/." else "/"

    @staticmethod
    def _owner_names(st: os.stat_result) -> tuple[str, str]:
        owner, group = str(st.st_uid), str(st.st_gid)
        if pwd is not None:
            with contextlib.suppress(KeyError):
                owner = pwd.getpwuid(st.st_uid).pw_name
        if grp is not None:
            with contextlib.suppress(KeyError):
                group = grp.getgrgid(st.st_gid).gr_name
        return owner, group

    def _node_from_stat(self, physical: Path, virtual: str, st: os.stat_result) -> VFSNode:
        if stat_mod.S_ISLNK(st.st_mode):
            node_type = NodeType.SYMLINK
        elif stat_mod.S_ISDIR(st.st_mode):
            node_type = NodeType.DIRECTORY
        else:
            node_type = NodeType.FILE

        owner, group = self._owner_names(st)
        metadata: dict[str, Any] = {"inode": st.st_ino}
        if node_type is NodeType.FILE:
            metadata["mime_type"] = guess_mime_type(physical.name)
        elif node_type is NodeType.SYMLINK:
            metadata["target"] = os.readlink(physical)

        return VFSNode(
            path=virtual,
            name=physical.name if virtual != "/" else "",
            type=node_type,
            size=st.st_size if node_type is NodeType.FILE else 0,
            created=datetime.fromtimestamp(st.st_ctime, tz=UTC),
            modified=datetime.fromtimestamp(st.st_mtime, tz=UTC),
            permissions=FilePermissions(
                read=os.access(physical, os.R_OK, follow_symlinks=False),
                write=os.access(physical, os.W_OK, follow_symlinks=False),
                execute=os.access(physical, os.X_OK, follow_symlinks=False),
                owner=owner,
                group=group,
                mode=f"{stat_mod.S_IMODE(st.st_mode) & 0o777:03o}",
            ),
            metadata=metadata,
        )

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def read(self, path: str) -> bytes:
        resolved = self._resolve_path(path)
        return await asyncio.to_thread(resolved.read_bytes)

    async def exists(self, path: str) -> bool:
        try:
            resolved = self._resolve_path(path)
        except PermissionError:
            return False
        return await asyncio.to_thread(resolved.exists)

    async def stat(self, path: str) -> VFSNode:
        path = normalize_path(path)
        resolved = self._resolve_path(path)

        def _stat() -> VFSNode:
            return self._node_from_stat(resolved, path, resolved.lstat())

        return await asyncio.to_thread(_stat)

    async def readdir(self, path: str) -> list[VFSNode]:
        resolved = self._resolve_path(path)

        def _scan() -> list[VFSNode]:
            nodes: list[VFSNode] = []
            with os.scandir(resolved) as it:
                for entry in it:
                    try:
                        entry_path = Path(entry.path)
                        st = entry.stat(follow_symlinks=False)
                        nodes.append(
                            self._node_from_stat(entry_path, self._to_virtual_path(entry_path), st)
                        )
                    except (OSError, ValueError):
                        continue
            nodes.sort(key=lambda n: (not n.is_directory, n.name.lower()))
            return nodes

        return await asyncio.to_thread(_scan)

    # =========================================================================
    # Write Operations
    # =========================================================================

    async def write(self, path: str, data: bytes) -> None:
        """Write bytes to a file on disk. Atomic via tempfile + replace."""
        path = normalize_path(path)
        resolved = self._resolve_path(path)

        def _write() -> bool:
            if resolved.is_dir():
                raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
            was_created = not resolved.exists()
            resolved.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(resolved.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                Path(tmp_path).replace(resolved)
            except Exception:
                with contextlib.suppress(OSError):
                    Path(tmp_path).unlink()
                raise
            return was_created

        created = await asyncio.to_thread(_write)
        await self._notify(WatchEventType.CREATED if created else WatchEventType.MODIFIED, path)

    async def mkdir(self, path: str) -> None:
        path = normalize_path(path)
        resolved = self._resolve_path(path)
        await asyncio.to_thread(resolved.mkdir)
        await self._notify(WatchEventType.CREATED, path)

    async def rmdir(self, path: str) -> None:
        path = normalize_path(path)
        resolved = self._resolve_path(path)
        if resolved == self.root_dir:
            raise PermissionError(errno.EPERM, "Cannot remove adapter root", path)
        await asyncio.to_thread(resolved.rmdir)
        await self._notify(WatchEventType.DELETED, path)

    async def unlink(self, path: str) -> None:
        path = normalize_path(path)
        resolved = self._resolve_path(path)
        await asyncio.to_thread(resolved.unlink)
        await self._notify(WatchEventType.DELETED, path)

    async def rename(self, old_path: str, new_path: str) -> None:
        """Move a file or directory on disk."""
        old_path = normalize_path(old_path)
        new_path = normalize_path(new_path)
        src_resolved = self._resolve_path(old_path)
        dest_resolved = self._resolve_path(new_path)

        def _move() -> None:
            if not src_resolved.exists():
                raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), old_path)
            dest_resolved.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(src_resolved), str(dest_resolved))

        await asyncio.to_thread(_move)
        await self._notify(WatchEventType.RENAMED, new_path, old_path=old_path)

    async def set_permissions(self, path: str, partial: dict[str, Any]) -> VFSNode:
        path = normalize_path(path)
        resolved = self._resolve_path(path)
        current = await self.stat(path)
        updated = apply_permissions(current.permissions, partial)

        def _apply() -> None:
            if updated.mode != current.permissions.mode:
                os.chmod(resolved, parse_mode(updated.mode))
            owner = updated.owner if updated.owner != current.permissions.owner else None
            group = updated.group if updated.group != current.permissions.group else None
            if owner is not None or group is not None:
                shutil.chown(resolved, user=owner, group=group)

        await asyncio.to_thread(_apply)
        await self._notify(WatchEventType.MODIFIED, path)
        return await self.stat(path)
