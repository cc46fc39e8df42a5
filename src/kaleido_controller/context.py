"""Session context: which scope (root or a room) room-scoped commands address.

Transitions, applied only on ``<ack/>``:

    ROOT    --open(room)--> IN_ROOM(room)
    any     --open(host)--> ROOT
    IN_ROOM --close-------> ROOT
    ROOT    --close-------> CLOSED   (logical end of the device session)

A disconnect resets the context to ROOT.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from kaleido_controller.logging_abstraction import get_logger

logger = get_logger(__name__)

__all__ = ["Context", "ContextState", "SessionContext"]


class ContextState(Enum):
    ROOT = "root"
    IN_ROOM = "in_room"
    CLOSED = "closed"


@dataclass(frozen=True)
class Context:
    state: ContextState
    room_id: str | None = None

    @classmethod
    def root(cls) -> Context:
        return cls(ContextState.ROOT)

    @classmethod
    def in_room(cls, room_id: str) -> Context:
        return cls(ContextState.IN_ROOM, room_id)

    @classmethod
    def closed(cls) -> Context:
        return cls(ContextState.CLOSED)

    @property
    def is_root(self) -> bool:
        return self.state is ContextState.ROOT

    def __str__(self) -> str:
        if self.state is ContextState.IN_ROOM:
            return f"room:{self.room_id}"
        return self.state.value


class SessionContext:
    """Tracks the single active context of a connection."""

    def __init__(self) -> None:
        self._current: Context = Context.root()

    @property
    def current(self) -> Context:
        return self._current

    @property
    def room_id(self) -> str | None:
        """Room addressed by room-scoped queries; None for the root scope."""
        return self._current.room_id if self._current.state is ContextState.IN_ROOM else None

    def opened(self, room_id: str | None) -> Context:
        """Apply an acknowledged open; room_id None means the host (root) session."""
        previous = self._current
        if room_id is None:
            self._current = Context.root()
        else:
            if previous.state is ContextState.IN_ROOM and previous.room_id != room_id:
                logger.warning(
                    "Opening room %s while room %s is still open",
                    room_id,
                    previous.room_id,
                    extra={"previous": str(previous), "room": room_id},
                )
            self._current = Context.in_room(room_id)
        self._log_transition(previous)
        return self._current

    def closed(self) -> Context:
        """Apply an acknowledged close."""
        previous = self._current
        if previous.state is ContextState.IN_ROOM:
            self._current = Context.root()
        else:
            self._current = Context.closed()
        self._log_transition(previous)
        return self._current

    def reset(self) -> None:
        if not self._current.is_root:
            logger.debug("Context reset to root", extra={"previous": str(self._current)})
        self._current = Context.root()

    def _log_transition(self, previous: Context) -> None:
        logger.debug(
            "Context %s -> %s",
            previous,
            self._current,
            extra={"from": str(previous), "to": str(self._current)},
        )
