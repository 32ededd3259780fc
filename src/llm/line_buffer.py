# src/llm/line_buffer.py — v1
"""Reassemble newline-delimited frames from arbitrarily split byte chunks.

Transports hand over bytes on their own boundaries: one chunk may hold
several lines, half a line, or half of a multi-byte UTF-8 character.
Lines are only decoded once their terminating newline has arrived, and a
newline byte never occurs inside a UTF-8 multi-byte sequence.
"""

from __future__ import annotations

DEFAULT_MAX_LINE_BYTES = 64 * 1024


class LineTooLongError(ValueError):
    """A single frame exceeded the configured maximum length."""


class LineBuffer:
    """Buffer bytes and emit complete decoded lines."""

    def __init__(self, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES) -> None:
        self._buf = bytearray()
        self._max = max_line_bytes

    def feed(self, chunk: bytes) -> list[str]:
        """Append a chunk and return every line it completed (without newline)."""
        self._buf.extend(chunk)
        lines: list[str] = []
        while True:
            idx = self._buf.find(b"\n")
            if idx < 0:
                break
            raw = bytes(self._buf[:idx])
            del self._buf[: idx + 1]
            if len(raw) > self._max:
                raise LineTooLongError(f"line of {len(raw)} bytes exceeds {self._max}")
            lines.append(raw.decode("utf-8").rstrip("\r"))
        if len(self._buf) > self._max:
            raise LineTooLongError(
                f"unterminated line exceeds {self._max} bytes"
            )
        return lines

    def flush(self) -> list[str]:
        """Return the trailing unterminated line, if any, and reset."""
        if not self._buf:
            return []
        raw = bytes(self._buf)
        self._buf.clear()
        return [raw.decode("utf-8").rstrip("\r")]

    @property
    def pending_bytes(self) -> int:
        return len(self._buf)
