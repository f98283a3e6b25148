"""Permission kinds and mode-string helpers."""

from __future__ import annotations

from dataclasses import replace
from enum import Enum
from typing import Any

from .types import FilePermissions

_READ, _WRITE, _EXECUTE = 4, 2, 1

PERMISSION_KEYS = frozenset({"read", "write", "execute", "owner", "group", "mode"})


class PermissionKind(str, Enum):
    """Access kind accepted by ``check_permission``."""

    READ = "read"
    WRITE = "write"
    EXECUTE = "execute"


def parse_mode(mode: str) -> int:
    """Parse an octal mode string (``"755"``, ``"0644"``) into an int."""
    try:
        value = int(mode, 8)
    except ValueError:
        raise ValueError(f"Invalid mode string: {mode!r}") from None
    if not 0 <= value <= 0o7777:
        raise ValueError(f"Mode out of range: {mode!r}")
    return value


def format_mode(value: int) -> str:
    return f"{value & 0o777:03o}"


def flags_from_mode(mode: str) -> tuple[bool, bool, bool]:
    """Owner (read, write, execute) bits of *mode*."""
    owner = (parse_mode(mode) >> 6) & 0o7
    return bool(owner & _READ), bool(owner & _WRITE), bool(owner & _EXECUTE)


def mode_with_owner_flags(mode: str, read: bool, write: bool, execute: bool) -> str:
    """Replace the owner digit of *mode* with the given flags."""
    value = parse_mode(mode) & ~0o700
    owner = (_READ if read else 0) | (_WRITE if write else 0) | (_EXECUTE if execute else 0)
    return format_mode(value | (owner << 6))


def apply_permissions(current: FilePermissions, partial: dict[str, Any]) -> FilePermissions:
    """Merge a partial permission update into *current*.

    An explicit ``mode`` wins and re-derives the owner flags; otherwise any
    flag changes are folded back into the owner digit of the mode.
    """
    unknown = set(partial) - PERMISSION_KEYS
    if unknown:
        raise ValueError(f"Unknown permission keys: {sorted(unknown)}")

    updated = replace(current, **partial)
    if "mode" in partial:
        updated.mode = format_mode(parse_mode(updated.mode))
        updated.read, updated.write, updated.execute = flags_from_mode(updated.mode)
    elif {"read", "write", "execute"} & set(partial):
        updated.mode = mode_with_owner_flags(
            updated.mode, updated.read, updated.write, updated.execute
        )
    return updated


def default_permissions(
    is_directory: bool, owner: str = "user", group: str = "users"
) -> FilePermissions:
    if is_directory:
        return FilePermissions(
            read=True, write=True, execute=True, owner=owner, group=group, mode="755"
        )
    return FilePermissions(
        read=True, write=True, execute=False, owner=owner, group=group, mode="644"
    )
