"""Bit flags stored as an unsigned 64-bit integer."""

from __future__ import annotations

_MASK = (1 << 64) - 1


class Flag(int):
    """An unsigned 64-bit set of bit flags."""

    def __new__(cls, value: int = 0) -> "Flag":
        return super().__new__(cls, int(value) & _MASK)

    def has(self, other: int) -> bool:
        """Return True if any bit of ``other`` is set."""
        return (self & other) != 0

    def set(self, other: int) -> "Flag":
        """Return a new flag with the bits of ``other`` added."""
        return Flag(self | other)

    def remove(self, other: int) -> "Flag":
        """Return a new flag with the bits of ``other`` cleared."""
        return Flag(self & ~int(other))

    def __repr__(self) -> str:
        return f"Flag({int(self):#x})"