# tests/unit/llm/test_line_buffer.py — v1
"""Tests for llm/line_buffer.py — newline frame reassembly."""

from __future__ import annotations

import pytest

from hybridrag.llm.line_buffer import LineBuffer, LineTooLongError


class TestLineBuffer:
    def test_several_lines_in_one_chunk(self):
        buf = LineBuffer()
        assert buf.feed(b"a\nb\nc") == ["a", "b"]
        assert buf.pending_bytes == 1
        assert buf.flush() == ["c"]

    def test_line_split_across_chunks(self):
        buf = LineBuffer()
        assert buf.feed(b'{"resp') == []
        assert buf.feed(b'onse": 1}\n') == ['{"response": 1}']

    def test_multibyte_character_split(self):
        encoded = "연차휴가\n".encode("utf-8")
        buf = LineBuffer()
        lines: list[str] = []
        for i in range(len(encoded)):
            lines += buf.feed(encoded[i : i + 1])
        assert lines == ["연차휴가"]

    def test_crlf(self):
        assert LineBuffer().feed(b"x\r\n") == ["x"]

    def test_empty_lines_kept(self):
        assert LineBuffer().feed(b"\n\n") == ["", ""]

    def test_too_long_unterminated(self):
        buf = LineBuffer(max_line_bytes=8)
        with pytest.raises(LineTooLongError):
            buf.feed(b"x" * 9)

    def test_too_long_terminated(self):
        buf = LineBuffer(max_line_bytes=4)
        with pytest.raises(LineTooLongError):
            buf.feed(b"12345\n")

    def test_flush_empty(self):
        assert LineBuffer().flush() == []
