"""Tests for LocalDiskAdapter — direct disk operations."""

from __future__ import annotations

import os
import sys

import pytest

from deskvfs.fs.local_disk import LocalDiskAdapter
from deskvfs.fs.types import NodeType


@pytest.fixture
async def disk(tmp_path) -> LocalDiskAdapter:
    """LocalDiskAdapter rooted at a temporary directory."""
    adapter = LocalDiskAdapter(tmp_path)
    await adapter.mount()
    return adapter


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    async def test_nonexistent_dir(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            await LocalDiskAdapter(tmp_path / "nope").mount()

    async def test_file_not_dir(self, tmp_path):
        f = tmp_path / "file.txt"
        f.write_text("hi")
        with pytest.raises(NotADirectoryError):
            await LocalDiskAdapter(f).mount()

    def test_capabilities(self, tmp_path):
        caps = LocalDiskAdapter(tmp_path).capabilities
        assert caps.supports_realtime is False
        assert caps.supports_permissions is True
        assert caps.max_file_size is None


# ---------------------------------------------------------------------------
# Write / Read
# ---------------------------------------------------------------------------


class TestWriteRead:
    async def test_write_and_read(self, disk, tmp_path):
        await disk.write("/hello.py", b"print('hi')\n")
        assert (tmp_path / "hello.py").read_bytes() == b"print('hi')\n"
        assert await disk.read("/hello.py") == b"print('hi')\n"

    async def test_write_creates_parents(self, disk, tmp_path):
        await disk.write("/a/b/c.txt", b"x")
        assert (tmp_path / "a" / "b" / "c.txt").exists()

    async def test_no_temp_files_left(self, disk, tmp_path):
        await disk.write("/f.txt", b"v1")
        await disk.write("/f.txt", b"v2")
        assert [p.name for p in tmp_path.iterdir()] == ["f.txt"]

    async def test_read_missing(self, disk):
        with pytest.raises(FileNotFoundError):
            await disk.read("/nope.txt")

    async def test_write_over_directory(self, disk, tmp_path):
        (tmp_path / "d").mkdir()
        with pytest.raises(IsADirectoryError):
            await disk.write("/d", b"x")


# ---------------------------------------------------------------------------
# Stat / Readdir
# ---------------------------------------------------------------------------


class TestStat:
    async def test_stat_file(self, disk, tmp_path):
        (tmp_path / "notes.txt").write_bytes(b"12345")
        node = await disk.stat("/notes.txt")
        assert node.type is NodeType.FILE
        assert node.size == 5
        assert node.path == "/notes.txt"
        assert node.metadata["mime_type"] == "text/plain"
        assert len(node.permissions.mode) == 3

    async def test_stat_root(self, disk):
        node = await disk.stat("/")
        assert node.is_directory
        assert node.path == "/"

    async def test_readdir(self, disk, tmp_path):
        (tmp_path / "b.txt").write_text("b")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "inner.txt").write_text("i")
        nodes = await disk.readdir("/")
        assert [(n.name, n.path) for n in nodes] == [("sub", "/sub"), ("b.txt", "/b.txt")]
        inner = await disk.readdir("/sub")
        assert inner[0].path == "/sub/inner.txt"


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class TestMutations:
    async def test_mkdir_and_rmdir(self, disk, tmp_path):
        await disk.mkdir("/d")
        assert (tmp_path / "d").is_dir()
        await disk.rmdir("/d")
        assert not (tmp_path / "d").exists()

    async def test_mkdir_existing(self, disk):
        await disk.mkdir("/d")
        with pytest.raises(FileExistsError):
            await disk.mkdir("/d")

    async def test_rmdir_non_empty(self, disk):
        await disk.write("/d/f", b"")
        with pytest.raises(OSError):
            await disk.rmdir("/d")

    async def test_rmdir_root_refused(self, disk):
        with pytest.raises(PermissionError):
            await disk.rmdir("/")

    async def test_unlink(self, disk, tmp_path):
        await disk.write("/f", b"")
        await disk.unlink("/f")
        assert not (tmp_path / "f").exists()

    async def test_rename(self, disk, tmp_path):
        await disk.write("/a.txt", b"data")
        await disk.rename("/a.txt", "/moved/b.txt")
        assert (tmp_path / "moved" / "b.txt").read_bytes() == b"data"
        assert not (tmp_path / "a.txt").exists()

    async def test_rename_missing(self, disk):
        with pytest.raises(FileNotFoundError):
            await disk.rename("/nope", "/x")


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------


class TestSecurity:
    async def test_traversal_rejected(self, disk):
        with pytest.raises(PermissionError):
            await disk.read("/../outside.txt")

    async def test_exists_false_on_traversal(self, disk):
        assert await disk.exists("/../../etc/passwd") is False

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
    async def test_symlink_rejected(self, disk, tmp_path):
        target = tmp_path / "real.txt"
        target.write_text("x")
        os.symlink(target, tmp_path / "link.txt")
        with pytest.raises(PermissionError):
            await disk.read("/link.txt")

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
    async def test_symlink_followed_when_allowed(self, tmp_path):
        target = tmp_path / "real.txt"
        target.write_text("x")
        os.symlink(target, tmp_path / "link.txt")
        adapter = LocalDiskAdapter(tmp_path, follow_symlinks=True)
        await adapter.mount()
        assert await adapter.read("/link.txt") == b"x"


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX modes")
class TestPermissions:
    async def test_set_mode(self, disk, tmp_path):
        await disk.write("/f.sh", b"#!/bin/sh\n")
        node = await disk.set_permissions("/f.sh", {"mode": "700"})
        assert node.permissions.mode == "700"
        assert (tmp_path / "f.sh").stat().st_mode & 0o777 == 0o700
