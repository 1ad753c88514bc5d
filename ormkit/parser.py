"""A small cursor over bytes for scanning query templates."""

from __future__ import annotations


def _is_num(c: int) -> bool:
    return 0x30 <= c <= 0x39


def _is_alpha(c: int) -> bool:
    return 0x61 <= c <= 0x7A or 0x41 <= c <= 0x5A


_UNDERSCORE = ord("_")


class Parser:
    """Reads bytes from a buffer one step at a time."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    @classmethod
    def from_string(cls, s: str) -> "Parser":
        return cls(s.encode("utf-8"))

    def valid(self) -> bool:
        """Return True while unread bytes remain."""
        return self._pos < len(self._data)

    def remaining(self) -> bytes:
        """Return the unread bytes."""
        return self._data[self._pos :]

    def read(self) -> bytes:
        """Return the next byte and advance, or ``b""`` at the end."""
        c = self.peek()
        if c:
            self._pos += 1
        return c

    def peek(self) -> bytes:
        """Return the next byte without advancing, or ``b""`` at the end."""
        return self._data[self._pos : self._pos + 1]

    def advance(self) -> None:
        self._pos += 1

    def skip(self, char: bytes) -> bool:
        """Consume ``char`` if it is next."""
        if char and self.peek() == char:
            self._pos += 1
            return True
        return False

    def skip_bytes(self, prefix: bytes) -> bool:
        """Consume ``prefix`` if the unread bytes start with it."""
        if self._data.startswith(prefix, self._pos):
            self._pos += len(prefix)
            return True
        return False

    def read_sep(self, sep: bytes) -> tuple[bytes, bool]:
        """Read up to ``sep`` and consume it; the flag tells whether it was found."""
        idx = self._data.find(sep, self._pos)
        if idx == -1:
            chunk = self._data[self._pos :]
            self._pos = len(self._data)
            return chunk, False
        chunk = self._data[self._pos : idx]
        self._pos = idx + len(sep)
        return chunk, True

    def read_identifier(self) -> tuple[str, bool]:
        """Read a name or a parenthesised expression.

        The flag is True when the identifier is made only of digits.
        """
        if self.peek() == b"(":
            end = self._data.find(b")", self._pos + 1)
            if end != -1:
                ident = self._data[self._pos + 1 : end]
                self._pos = end + 1
                return ident.decode("utf-8"), False

        rest = self._data[self._pos :]
        length = len(rest)
        alpha = False
        for i, c in enumerate(rest):
            if _is_num(c):
                continue
            if _is_alpha(c) or (i > 0 and alpha and c == _UNDERSCORE):
                alpha = True
                continue
            length = i
            break
        if length == 0:
            return "", False
        self._pos += length
        return rest[:length].decode("utf-8"), not alpha

    def read_number(self) -> int:
        """Read a run of decimal digits; return 0 if there is none."""
        rest = self._data[self._pos :]
        length = len(rest)
        for i, c in enumerate(rest):
            if not _is_num(c):
                length = i
                break
        if length == 0:
            return 0
        self._pos += length
        return int(rest[:length])