"""Working buffer for reassembling Kaleido replies from a TCP byte stream.

The protocol has no length prefix or explicit terminator. A reply is assumed
to be worth parsing once it contains a ``/`` (which every closing and
self-closing tag has). That heuristic lives in ``reply_looks_complete`` alone
so a stricter framer can replace it without touching the parsers.
"""

from __future__ import annotations

import codecs

from kaleido_controller.const import DEFAULT_MAX_BUFFER_BYTES
from kaleido_controller.logging_abstraction import get_logger
from kaleido_controller.protocol.exceptions import ResponseFramingError

logger = get_logger(__name__)

__all__ = ["ResponseBuffer", "reply_looks_complete"]


def reply_looks_complete(text: str) -> bool:
    """Heuristic end-of-reply check: any closing or self-closing tag present."""
    return "/" in text


class ResponseBuffer:
    r"""Accumulate inbound bytes until a complete reply can be parsed.

    TCP reads may split a reply anywhere, including inside a multi-byte UTF-8
    sequence, so bytes go through an incremental decoder. The buffer is only
    cleared by the session, and only once a reply has been fully resolved;
    a failed parse keeps it so the next fragment can be appended and retried.

    Example:
        buffer = ResponseBuffer()
        buffer.feed(b"<kLayoutList>Layout1.kg2")
        assert not buffer.looks_complete
        buffer.feed(b"</kLayoutList>\n")
        assert buffer.looks_complete

    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_BUFFER_BYTES) -> None:
        self.max_bytes: int = max_bytes
        self._decoder: codecs.IncrementalDecoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._text: str = ""
        self._size: int = 0

    def feed(self, data: bytes | str) -> str:
        """Append a chunk and return the whole working buffer.

        Raises:
            ResponseFramingError: The buffer exceeds ``max_bytes``. The buffer
                is left intact; the caller decides whether to discard it.

        """
        if isinstance(data, str):
            self._text += data
            self._size += len(data.encode())
        else:
            self._text += self._decoder.decode(data)
            self._size += len(data)

        if self._size > self.max_bytes:
            raise ResponseFramingError("buffer_overflow", self._size)
        return self._text

    def clear(self) -> None:
        if self._text:
            logger.debug("Working buffer cleared", extra={"discarded_bytes": self._size})
        self._decoder.reset()
        self._text = ""
        self._size = 0

    @property
    def text(self) -> str:
        return self._text

    @property
    def size(self) -> int:
        """Number of raw bytes received since the last clear."""
        return self._size

    @property
    def looks_complete(self) -> bool:
        return reply_looks_complete(self._text)

    def __len__(self) -> int:
        return self._size

    def __bool__(self) -> bool:
        return bool(self._text)

    def __repr__(self) -> str:
        return f"ResponseBuffer(size={self._size}, max_bytes={self.max_bytes})"
