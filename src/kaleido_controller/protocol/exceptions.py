"""Exception types for Kaleido reply parsing and framing.

Parsers raise instead of returning sentinels: an incomplete reply and a
malformed reply are different exceptions so the session can either keep
buffering or discard and advance the queue.
"""

from __future__ import annotations

# Offending data kept on exceptions is truncated to keep logs readable
_DATA_PREVIEW_LENGTH = 256


class KaleidoProtocolError(Exception):
    """Base exception for all Kaleido protocol errors."""


class ResponseParseError(KaleidoProtocolError):
    """A reply could not be turned into structured data.

    Attributes:
        reason: Specific failure reason (e.g., "missing_closing_tag", "empty_key")
        data_preview: Leading part of the working buffer at the time of failure

    """

    def __init__(self, reason: str, data: str = "") -> None:
        self.reason: str = reason
        self.data_preview: str = data[:_DATA_PREVIEW_LENGTH] if data else ""
        super().__init__(f"Reply parse failed: {reason}")


class IncompleteResponseError(ResponseParseError):
    """Not enough bytes yet; keep the working buffer and wait for more."""


class MalformedResponseError(ResponseParseError):
    """The reply is complete but does not have the expected shape."""


class ResponseFramingError(KaleidoProtocolError):
    """The working buffer grew past its bound without yielding a reply.

    Attributes:
        reason: Specific failure reason
        buffer_size: Size of the buffer in bytes when the error occurred

    """

    def __init__(self, reason: str, buffer_size: int = 0) -> None:
        self.reason: str = reason
        self.buffer_size: int = buffer_size
        super().__init__(f"Reply framing failed: {reason} ({buffer_size} bytes buffered)")
