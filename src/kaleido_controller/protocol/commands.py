"""Kaleido command model.

Commands are immutable request strings tagged with a ``CommandKind`` that is
decided once, when the command is built or classified, so reply dispatch is a
match over a closed set of kinds instead of string inspection.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from kaleido_controller.const import HOST_SESSION_SUFFIX

__all__ = [
    "Command",
    "CommandKind",
    "layout_label",
    "split_room_qualifier",
]

ROOM_SEPARATOR = "/"


class CommandKind(Enum):
    """Closed set of command families the session knows how to answer."""

    OPEN_SESSION = "open_session"
    CLOSE_SESSION = "close_session"
    GET_PARAMETER = "get_parameter"
    GET_LAYOUT_LIST = "get_layout_list"
    GET_ROOM_LIST = "get_room_list"
    GET_CURRENT_LAYOUT = "get_current_layout"
    SET_LAYOUT = "set_layout"
    SET_TEXT = "set_text"
    SET_STATUS = "set_status"
    UNKNOWN = "unknown"


# Order matters only for readability; the patterns are mutually exclusive.
_CLASSIFIERS: tuple[tuple[CommandKind, re.Pattern[str]], ...] = (
    (CommandKind.OPEN_SESSION, re.compile(r"^<openID>(?P<arg>.+)</openID>$")),
    (CommandKind.CLOSE_SESSION, re.compile(r"^<closeID/>$")),
    (
        CommandKind.GET_PARAMETER,
        re.compile(r'^<getParameterInfo>get key="(?P<arg>[^"]+)"</getParameterInfo>$'),
    ),
    (CommandKind.GET_LAYOUT_LIST, re.compile(r"^<getKLayoutList/>$")),
    (CommandKind.GET_ROOM_LIST, re.compile(r"^<getKRoomList/>$")),
    (CommandKind.GET_CURRENT_LAYOUT, re.compile(r"^<getKCurrentLayout/>$")),
    (CommandKind.SET_LAYOUT, re.compile(r"^<setKCurrentLayout>set (?P<arg>.+)</setKCurrentLayout>$")),
    (CommandKind.SET_TEXT, re.compile(r'^<setKDynamicText>set address="\d+" text="(?P<arg>.*)"</setKDynamicText>$')),
    (
        CommandKind.SET_STATUS,
        re.compile(r'^<setKStatusMessage>set id="\d+" status="(?P<arg>[^"]*)"</setKStatusMessage>$'),
    ),
)


def split_room_qualifier(layout_id: str) -> tuple[str | None, str]:
    """Split ``ROOM/Layout.kg2`` into ``("ROOM", "Layout.kg2")``; unqualified ids give ``(None, id)``."""
    room, sep, layout = layout_id.partition(ROOM_SEPARATOR)
    if not sep or not room:
        return None, layout_id
    return room, layout


def layout_label(layout_id: str) -> str:
    """Display label for an extension-suffixed layout id: room prefix and extension stripped."""
    _, name = split_room_qualifier(layout_id)
    stem, dot, extension = name.rpartition(".")
    if dot and stem and extension:
        return stem
    return name


@dataclass(frozen=True)
class Command:
    """An opaque request string plus its inferred kind.

    Attributes:
        text: Exact request text, without the trailing newline
        kind: Command family, used to pick the reply parser
        argument: Kind-specific argument (session target, parameter key,
            layout id, text or status); None when the kind has none

    """

    text: str
    kind: CommandKind = field(compare=False)
    argument: str | None = field(default=None, compare=False)

    @classmethod
    def from_text(cls, text: str) -> Command:
        """Classify raw request text; unrecognized text becomes ``CommandKind.UNKNOWN``."""
        stripped = text.strip()
        for kind, pattern in _CLASSIFIERS:
            match = pattern.match(stripped)
            if match:
                argument = match.groupdict().get("arg")
                return cls(text=stripped, kind=kind, argument=argument)
        return cls(text=stripped, kind=CommandKind.UNKNOWN)

    # Builders
    @classmethod
    def open_session(cls, target: str) -> Command:
        return cls(f"<openID>{target}</openID>", CommandKind.OPEN_SESSION, target)

    @classmethod
    def open_host_session(cls, host: str) -> Command:
        """Open the root session; the device expects ``<host>_0_4_0_0`` as target."""
        return cls.open_session(f"{host}{HOST_SESSION_SUFFIX}")

    @classmethod
    def close_session(cls) -> Command:
        return cls("<closeID/>", CommandKind.CLOSE_SESSION)

    @classmethod
    def get_parameter(cls, key: str) -> Command:
        return cls(
            f'<getParameterInfo>get key="{key}"</getParameterInfo>',
            CommandKind.GET_PARAMETER,
            key,
        )

    @classmethod
    def get_layout_list(cls) -> Command:
        return cls("<getKLayoutList/>", CommandKind.GET_LAYOUT_LIST)

    @classmethod
    def get_room_list(cls) -> Command:
        return cls("<getKRoomList/>", CommandKind.GET_ROOM_LIST)

    @classmethod
    def get_current_layout(cls) -> Command:
        return cls("<getKCurrentLayout/>", CommandKind.GET_CURRENT_LAYOUT)

    @classmethod
    def set_current_layout(cls, layout_id: str) -> Command:
        return cls(
            f"<setKCurrentLayout>set {layout_id}</setKCurrentLayout>",
            CommandKind.SET_LAYOUT,
            layout_id,
        )

    @classmethod
    def set_dynamic_text(cls, text: str, address: int = 0) -> Command:
        return cls(
            f'<setKDynamicText>set address="{address}" text="{text}"</setKDynamicText>',
            CommandKind.SET_TEXT,
            text,
        )

    @classmethod
    def set_status_message(cls, status_id: int, status: str) -> Command:
        return cls(
            f'<setKStatusMessage>set id="{status_id}" status="{status}"</setKStatusMessage>',
            CommandKind.SET_STATUS,
            status,
        )

    @property
    def opens_host_session(self) -> bool:
        """True for an open-session command addressing the root (host) scope."""
        return (
            self.kind is CommandKind.OPEN_SESSION
            and self.argument is not None
            and self.argument.endswith(HOST_SESSION_SUFFIX)
        )

    @property
    def room(self) -> str | None:
        """Room addressed by this command, if it names one.

        Open-session commands name their target room (None for the host
        session); set-layout commands carry it as a ``ROOM/`` prefix.
        """
        if self.kind is CommandKind.OPEN_SESSION:
            return None if self.opens_host_session else self.argument
        if self.kind is CommandKind.SET_LAYOUT and self.argument is not None:
            room, _ = split_room_qualifier(self.argument)
            return room
        return None

    @property
    def wire(self) -> bytes:
        """Encoded, newline-terminated request as written to the socket."""
        return f"{self.text}\n".encode()

    def __str__(self) -> str:
        return self.text
