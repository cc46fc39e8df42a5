"""Kaleido protocol package - commands, reply framing and reply parsers.

Public API:
- Command model (Command, CommandKind)
- Working buffer (ResponseBuffer, reply_looks_complete)
- Reply parsers and their exceptions
"""

from kaleido_controller.protocol.commands import Command, CommandKind
from kaleido_controller.protocol.exceptions import (
    IncompleteResponseError,
    KaleidoProtocolError,
    MalformedResponseError,
    ResponseFramingError,
    ResponseParseError,
)
from kaleido_controller.protocol.framer import ResponseBuffer, reply_looks_complete

__all__ = [
    "Command",
    "CommandKind",
    "IncompleteResponseError",
    "KaleidoProtocolError",
    "MalformedResponseError",
    "ResponseBuffer",
    "ResponseFramingError",
    "ResponseParseError",
    "reply_looks_complete",
]
