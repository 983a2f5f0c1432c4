"""Short (16-bit) UUID extraction from textual 128-bit UUIDs."""

from __future__ import annotations

from typing import Any

BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"

_UUID_LENGTH = 36
_DASH_OFFSETS = frozenset((8, 13, 18, 23))
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def short_uuid(full_uuid: Any) -> int | None:
    """Return the assigned number of ``full_uuid`` or ``None``.

    The assigned number is the second group of four hex digits, so
    ``0000885a-0000-1000-8000-00805f9b34fb`` gives ``0x885a``. Text that is
    not a ``8-4-4-4-12`` hex UUID has no short form.
    """
    if not isinstance(full_uuid, str) or len(full_uuid) != _UUID_LENGTH:
        return None
    for offset, char in enumerate(full_uuid):
        if offset in _DASH_OFFSETS:
            if char != "-":
                return None
        elif char not in _HEX_DIGITS:
            return None
    return int(full_uuid[4:8], 16)


def matches(full_uuid: Any, target: int) -> bool:
    return short_uuid(full_uuid) == target


def full_uuid(short: int) -> str:
    """Expand a 16-bit assigned number onto the Bluetooth base UUID."""
    if not 0 <= short <= 0xFFFF:
        raise ValueError(f"short UUID out of range: {short!r}")
    return f"0000{short:04x}{BASE_UUID_SUFFIX}"


def format_short(short: int | None) -> str:
    return "----" if short is None else f"{short:04x}"
