"""Unit tests for the reply working buffer."""

from __future__ import annotations

from kaleido_controller.protocol.exceptions import ResponseFramingError
from kaleido_controller.protocol.framer import ResponseBuffer, reply_looks_complete
from tests.helpers.expectations import assert_reason, expect_exception


class TestReplyLooksComplete:
    def test_closing_tag(self) -> None:
        assert reply_looks_complete("<kRoomList></kRoomList>")

    def test_self_closing_tag(self) -> None:
        assert reply_looks_complete("<ack/>")

    def test_no_slash_yet(self) -> None:
        assert not reply_looks_complete('<kLayoutList>"USER PRESET 1"')


class TestResponseBuffer:
    """Accumulation, clearing and the size bound."""

    def test_accumulates_fragments(self) -> None:
        buffer = ResponseBuffer()
        assert buffer.feed(b"<kCurrent") == "<kCurrent"
        assert not buffer.looks_complete
        assert buffer.feed(b"Layout>x</kCurrentLayout>") == "<kCurrentLayout>x</kCurrentLayout>"
        assert buffer.looks_complete

    def test_accepts_text(self) -> None:
        buffer = ResponseBuffer()
        buffer.feed("<ack")
        buffer.feed("/>")
        assert buffer.text == "<ack/>"
        assert buffer.size == len(b"<ack/>")

    def test_multibyte_sequence_split_across_reads(self) -> None:
        buffer = ResponseBuffer()
        encoded = "<kParameterInfo>systemName=\"Régie\"</kParameterInfo>".encode()
        split = encoded.index(b"\xc3") + 1
        buffer.feed(encoded[:split])
        buffer.feed(encoded[split:])
        assert "Régie" in buffer.text

    def test_clear(self) -> None:
        buffer = ResponseBuffer()
        buffer.feed(b"<nack/>")
        buffer.clear()
        assert buffer.text == ""
        assert len(buffer) == 0
        assert not buffer

    def test_overflow_raises_and_keeps_data(self) -> None:
        buffer = ResponseBuffer(max_bytes=8)
        buffer.feed(b"<kLayout")
        err = expect_exception(buffer.feed, ResponseFramingError, b"List>")
        assert_reason(err, "buffer_overflow")
        assert err.buffer_size == 13
        assert buffer.text == "<kLayoutList>"
