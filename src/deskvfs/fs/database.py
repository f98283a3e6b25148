"""DatabaseAdapter — persisted object store on SQLModel / async SQLAlchemy."""

from __future__ import annotations

import errno
import logging
import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import select

from .base import BaseAdapter
from .permissions import apply_permissions, default_permissions, flags_from_mode
from .types import AdapterCapabilities, FilePermissions, NodeType, VFSNode, WatchEventType
from .utils import ancestors, guess_mime_type, normalize_path, parent_path, split_path

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from deskvfs.models.nodes import StoredNodeBase

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 50 * 1024 * 1024  # 50MB


class DatabaseAdapter(BaseAdapter):
    """Database-backed adapter — a flat path -> bytes + metadata table.

    Works with any async SQLAlchemy URL (SQLite via ``aiosqlite`` by
    default).  The engine is created in ``mount()`` and disposed in
    ``unmount()`` unless it was supplied by the caller, in which case the
    caller owns it.  Each primitive runs in its own session and commits
    before watchers are notified.
    """

    adapter_type = "database"
    default_capabilities = AdapterCapabilities(
        supports_realtime=True,
        supports_permissions=True,
        max_file_size=DEFAULT_MAX_FILE_SIZE,
        protocols=("sqlite", "postgresql"),
    )

    def __init__(
        self,
        url: str = "sqlite+aiosqlite://",
        name: str = "database",
        *,
        engine: AsyncEngine | None = None,
        node_model: type[StoredNodeBase] | None = None,
        capabilities: AdapterCapabilities | None = None,
    ) -> None:
        from deskvfs.models.nodes import StoredNode

        super().__init__(name, capabilities)
        self.url = url
        self._engine = engine
        self._owns_engine = engine is None
        self._node_model: type[StoredNodeBase] = node_model or StoredNode
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def node_model(self) -> type[StoredNodeBase]:
        return self._node_model

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def mount(self) -> None:
        if self._engine is None:
            self._engine = create_async_engine(self.url, echo=False)
        model = self._node_model
        async with self._engine.begin() as conn:
            await conn.run_sync(
                lambda c: model.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
            )
        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        async with self._session() as session:
            if await self._get_row(session, "/") is None:
                session.add(self._new_row("/", is_directory=True))
        await super().mount()
        logger.debug("Mounted database adapter %s on %s", self.name, self.url)

    async def unmount(self) -> None:
        await super().unmount()
        self._session_factory = None
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            self._engine = None

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession]:
        if self._session_factory is None:
            raise ConnectionError(f"Database adapter {self.name!r} is not mounted")
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # =========================================================================
    # Row helpers
    # =========================================================================

    def _new_row(self, path: str, *, is_directory: bool, data: bytes | None = None) -> Any:
        _, name = split_path(path)
        perms = default_permissions(is_directory)
        metadata: dict[str, Any] = {} if is_directory else {"mime_type": guess_mime_type(name)}
        return self._node_model(
            path=path,
            parent_path="" if path == "/" else parent_path(path),
            name=name,
            is_directory=is_directory,
            data=data,
            size_bytes=len(data) if data else 0,
            mode=perms.mode,
            owner=perms.owner,
            group=perms.group,
            node_metadata=metadata,
        )

    async def _get_row(self, session: AsyncSession, path: str) -> Any | None:
        model = self._node_model
        result = await session.execute(
            select(model).where(model.path == path)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def _require_row(self, session: AsyncSession, path: str) -> Any:
        row = await self._get_row(session, path)
        if row is None:
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)
        return row

    async def _require_dir(self, session: AsyncSession, path: str) -> Any:
        row = await self._require_row(session, path)
        if not row.is_directory:
            raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), path)
        return row

    async def _ensure_parents(self, session: AsyncSession, path: str) -> list[str]:
        created: list[str] = []
        for ancestor in reversed(ancestors(path)):
            row = await self._get_row(session, ancestor)
            if row is None:
                session.add(self._new_row(ancestor, is_directory=True))
                created.append(ancestor)
            elif not row.is_directory:
                raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), ancestor)
        if created:
            await session.flush()
        return created

    @staticmethod
    def _row_to_node(row: Any) -> VFSNode:
        read, write, execute = flags_from_mode(row.mode)
        return VFSNode(
            path=row.path,
            name=row.name,
            type=NodeType.DIRECTORY if row.is_directory else NodeType.FILE,
            size=row.size_bytes,
            created=row.created_at,
            modified=row.updated_at,
            permissions=FilePermissions(
                read=read,
                write=write,
                execute=execute,
                owner=row.owner,
                group=row.group,
                mode=row.mode,
            ),
            metadata=dict(row.node_metadata or {}),
        )

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def read(self, path: str) -> bytes:
        path = normalize_path(path)
        async with self._session() as session:
            row = await self._require_row(session, path)
            if row.is_directory:
                raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
            return bytes(row.data or b"")

    async def exists(self, path: str) -> bool:
        async with self._session() as session:
            return await self._get_row(session, normalize_path(path)) is not None

    async def stat(self, path: str) -> VFSNode:
        async with self._session() as session:
            return self._row_to_node(await self._require_row(session, normalize_path(path)))

    async def readdir(self, path: str) -> list[VFSNode]:
        path = normalize_path(path)
        model = self._node_model
        async with self._session() as session:
            await self._require_dir(session, path)
            result = await session.execute(
                select(model).where(model.parent_path == path)  # type: ignore[arg-type]
            )
            nodes = [self._row_to_node(row) for row in result.scalars().all()]
        nodes.sort(key=lambda n: (not n.is_directory, n.name.lower()))
        return nodes

    # =========================================================================
    # Write Operations
    # =========================================================================

    async def write(self, path: str, data: bytes) -> None:
        path = normalize_path(path)
        payload = bytes(data)
        async with self._session() as session:
            row = await self._get_row(session, path)
            if path == "/" or (row is not None and row.is_directory):
                raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
            created_dirs = await self._ensure_parents(session, path)
            if row is None:
                session.add(self._new_row(path, is_directory=False, data=payload))
            else:
                row.data = payload
                row.size_bytes = len(payload)
                row.updated_at = datetime.now(UTC)
                session.add(row)

        for directory in created_dirs:
            await self._notify(WatchEventType.CREATED, directory)
        await self._notify(
            WatchEventType.CREATED if row is None else WatchEventType.MODIFIED, path
        )

    async def mkdir(self, path: str) -> None:
        path = normalize_path(path)
        async with self._session() as session:
            if await self._get_row(session, path) is not None:
                raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), path)
            await self._require_dir(session, parent_path(path))
            session.add(self._new_row(path, is_directory=True))
        await self._notify(WatchEventType.CREATED, path)

    async def rmdir(self, path: str) -> None:
        path = normalize_path(path)
        if path == "/":
            raise PermissionError(errno.EPERM, "Cannot remove adapter root", path)
        model = self._node_model
        async with self._session() as session:
            row = await self._require_dir(session, path)
            stmt = select(func.count()).select_from(model)
            result = await session.execute(
                stmt.where(model.parent_path == path)  # type: ignore[arg-type]
            )
            if result.scalar_one() > 0:
                raise OSError(errno.ENOTEMPTY, os.strerror(errno.ENOTEMPTY), path)
            await session.delete(row)
        await self._notify(WatchEventType.DELETED, path)

    async def unlink(self, path: str) -> None:
        path = normalize_path(path)
        async with self._session() as session:
            row = await self._require_row(session, path)
            if row.is_directory:
                raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
            await session.delete(row)
        await self._notify(WatchEventType.DELETED, path)

    async def rename(self, old_path: str, new_path: str) -> None:
        old_path = normalize_path(old_path)
        new_path = normalize_path(new_path)
        if old_path == new_path:
            return
        if old_path == "/":
            raise PermissionError(errno.EPERM, "Cannot rename adapter root", old_path)
        model = self._node_model
        async with self._session() as session:
            src = await self._require_row(session, old_path)
            if src.is_directory and new_path.startswith(old_path + "/"):
                raise OSError(errno.EINVAL, "Cannot move directory into itself", new_path)

            target = await self._get_row(session, new_path)
            if target is not None:
                if target.is_directory or src.is_directory:
                    raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), new_path)
                await session.delete(target)
                await session.flush()

            await self._ensure_parents(session, new_path)

            rows = [src]
            if src.is_directory:
                result = await session.execute(
                    select(model).where(
                        model.path.startswith(  # type: ignore[union-attr]
                            old_path + "/", autoescape=True
                        )
                    )
                )
                rows.extend(result.scalars().all())

            now = datetime.now(UTC)
            for row in rows:
                dest = new_path + row.path[len(old_path):]
                row.path = dest
                row.parent_path = parent_path(dest)
                row.name = split_path(dest)[1]
                row.updated_at = now
                session.add(row)
        await self._notify(WatchEventType.RENAMED, new_path, old_path=old_path)

    async def set_permissions(self, path: str, partial: dict[str, Any]) -> VFSNode:
        path = normalize_path(path)
        async with self._session() as session:
            row = await self._require_row(session, path)
            current = self._row_to_node(row).permissions
            updated = apply_permissions(current, partial)
            row.mode = updated.mode
            row.owner = updated.owner
            row.group = updated.group
            row.updated_at = datetime.now(UTC)
            session.add(row)
            node = self._row_to_node(row)
        await self._notify(WatchEventType.MODIFIED, path)
        return node
