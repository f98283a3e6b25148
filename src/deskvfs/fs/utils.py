"""Path utilities shared by the mount table, the cache and the adapters."""

from __future__ import annotations

import mimetypes
import posixpath
import re

_MULTI_SLASH = re.compile(r"/{2,}")

MAX_PATH_LENGTH = 4096
MAX_NAME_LENGTH = 255


# =============================================================================
# Path Utilities
# =============================================================================


def normalize_path(path: str) -> str:
    """Normalize a virtual path.

    - Converts backslashes to forward slashes
    - Collapses repeated slashes
    - Removes trailing slash (except for root)
    - Ensures a single leading /

    ``.`` and ``..`` segments are left alone; :func:`validate_path`
    rejects them before any mutation reaches an adapter.

    Examples:
        normalize_path("foo.txt") -> "/foo.txt"
        normalize_path("foo\\bar") -> "/foo/bar"
        normalize_path("/foo//bar.txt") -> "/foo/bar.txt"
        normalize_path("/foo/") -> "/foo"
        normalize_path("") -> "/"
    """
    path = path.replace("\\", "/")
    path = _MULTI_SLASH.sub("/", path)
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    if not path.startswith("/"):
        path = "/" + path
    return path


def split_path(path: str) -> tuple[str, str]:
    """Split path into (parent_dir, name).

    Examples:
        split_path("/foo/bar.txt") -> ("/foo", "bar.txt")
        split_path("/foo.txt") -> ("/", "foo.txt")
        split_path("/") -> ("/", "")
    """
    path = normalize_path(path)
    if path == "/":
        return "/", ""
    return posixpath.split(path)


def parent_path(path: str) -> str:
    return split_path(path)[0]


def join_path(base: str, name: str) -> str:
    """Join *name* onto *base* without doubling the root slash."""
    base = normalize_path(base)
    if base == "/":
        return normalize_path("/" + name)
    return normalize_path(base + "/" + name)


def is_under(path: str, prefix: str) -> bool:
    """True if *path* equals *prefix* or lies beneath it (segment-aware)."""
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


def ancestors(path: str) -> list[str]:
    """Proper ancestors of *path*, nearest first, ending with ``/``."""
    result: list[str] = []
    current = normalize_path(path)
    while current != "/":
        current = parent_path(current)
        result.append(current)
    return result


def validate_path(path: str) -> tuple[bool, str]:
    """Validate a path for security and compatibility issues.

    Returns:
        (is_valid, error_message) - error_message is empty if valid
    """
    if "\x00" in path:
        return False, "Path contains null bytes"

    for ch in path:
        code = ord(ch)
        if 0x01 <= code <= 0x1F:
            return False, f"Path contains control character: 0x{code:02x}"

    if len(path) > MAX_PATH_LENGTH:
        return False, f"Path too long (max {MAX_PATH_LENGTH} characters)"

    for segment in normalize_path(path).split("/"):
        if segment in (".", ".."):
            return False, f"Relative segment not allowed: {segment!r}"
        if len(segment) > MAX_NAME_LENGTH:
            return False, f"Filename too long (max {MAX_NAME_LENGTH} characters)"

    return True, ""


def guess_mime_type(filename: str) -> str:
    """Guess the MIME type of a file based on its name."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"
