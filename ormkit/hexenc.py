"""Writes bytes as a quoted hex literal for SQL."""

from __future__ import annotations

from types import TracebackType


class HexEncoder:
    """Accumulates written bytes as ``'\\x<hex>'``, or ``NULL`` if nothing was written."""

    def __init__(self, prefix: bytes = b"") -> None:
        self._buf = bytearray(prefix)
        self._written = False
        self._closed = False

    def write(self, data: bytes) -> int:
        """Append the hex encoding of ``data``; return the number of bytes consumed."""
        if self._closed:
            raise ValueError("write to closed HexEncoder")
        if not self._written:
            self._buf += b"'\\x"
            self._written = True
        self._buf += bytes(data).hex().encode("ascii")
        return len(data)

    def close(self) -> None:
        """Terminate the literal; an encoder that got no data yields NULL."""
        if self._closed:
            return
        self._closed = True
        if self._written:
            self._buf += b"'"
        else:
            self._buf += b"NULL"

    def getvalue(self) -> bytes:
        """Return everything produced so far."""
        return bytes(self._buf)

    def __enter__(self) -> "HexEncoder":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()