"""Pure parsers for the reply shapes produced by Kaleido firmware families.

Every parser takes the working buffer text and either returns structured
data or raises:

- ``IncompleteResponseError`` when more bytes may still turn the buffer into
  a valid reply (the buffer must be kept),
- ``MalformedResponseError`` when the reply is complete but unusable (the
  buffer must be discarded).

Negative acknowledgements are not handled here; callers check ``is_nack``
before dispatching to a shape parser.

Reply shapes:

- acknowledgement: ``<ack/>`` / ``<nack/>``
- key-value: ``<kParameterInfo>systemName="Cougar-X"</kParameterInfo>``
- current layout: key-value with key ``name``, or a bare value on older
  firmware (``<kCurrentLayout>Currentlayout.xml</kCurrentLayout>``)
- layout list: extension-suffixed tokens with optional ``ROOM/`` prefix,
  quoted tokens without extension, or an empty element
- room list: ``<kRoomList><room>A</room>...</kRoomList>``
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from kaleido_controller.const import ACK_REPLY, NACK_REPLY
from kaleido_controller.protocol.commands import layout_label
from kaleido_controller.protocol.exceptions import IncompleteResponseError, MalformedResponseError
from kaleido_controller.state import DeviceRoom, LayoutPreset

__all__ = [
    "Acknowledgement",
    "KeyValue",
    "is_ack",
    "is_nack",
    "parse_acknowledgement",
    "parse_current_layout",
    "parse_key_value",
    "parse_layout_list",
    "parse_room_list",
]

CURRENT_LAYOUT_TAG = "kCurrentLayout"
CURRENT_LAYOUT_KEY = "name"
LAYOUT_LIST_TAG = "kLayoutList"
ROOM_LIST_TAG = "kRoomList"
ROOM_TAG = "room"

_NAME = r"[A-Za-z_][\w.-]*"
_KEY_VALUE_RE = re.compile(rf'^<(?P<tag>{_NAME})>(?P<key>{_NAME})="(?P<value>[^"]*)"</(?P=tag)>$')
_BARE_VALUE_RE = re.compile(rf"^<(?P<tag>{_NAME})>(?P<value>[^<>\"=]*)</(?P=tag)>$")
_OPEN_TAG_RE = re.compile(rf"^<(?P<tag>{_NAME})\s*(?P<self_closing>/)?>")
_QUOTED_TOKEN_RE = re.compile(r'"([^"]*)"')
_CHILD_TAG_RE = re.compile(rf"</?(?P<tag>{_NAME})\s*/?>")
_ROOM_ENTRY_RE = re.compile(rf"\s*<{ROOM_TAG}>(?P<room>.*?)</{ROOM_TAG}>\s*", re.DOTALL)


class Acknowledgement(Enum):
    ACK = "ack"
    NACK = "nack"


@dataclass(frozen=True)
class KeyValue:
    """Parsed ``<TAG>KEY="VALUE"</TAG>`` reply."""

    tag: str
    key: str
    value: str


def is_nack(text: str) -> bool:
    return text.strip() == NACK_REPLY


def is_ack(text: str) -> bool:
    return text.strip() == ACK_REPLY


def parse_acknowledgement(text: str) -> Acknowledgement:
    """Parse a bare ``<ack/>`` or ``<nack/>`` reply."""
    stripped = text.strip()
    if stripped == ACK_REPLY:
        return Acknowledgement.ACK
    if stripped == NACK_REPLY:
        return Acknowledgement.NACK
    if ACK_REPLY.startswith(stripped) or NACK_REPLY.startswith(stripped):
        raise IncompleteResponseError("partial_acknowledgement", text)
    raise MalformedResponseError("expected_acknowledgement", text)


def _raise_unmatched(stripped: str, expected_tag: str | None = None) -> None:
    """Decide whether markup that failed to match is still arriving or is malformed.

    A reply is only considered finished once its closing tag (or a
    self-closing opening tag) is present; anything short of that may still
    grow into a valid reply.
    """
    if not stripped:
        raise IncompleteResponseError("empty_buffer", stripped)
    if not stripped.startswith("<"):
        raise MalformedResponseError("not_markup", stripped)

    opening = _OPEN_TAG_RE.match(stripped)
    if opening is None:
        if ">" in stripped:
            raise MalformedResponseError("invalid_opening_tag", stripped)
        raise IncompleteResponseError("partial_opening_tag", stripped)

    tag = opening.group("tag")
    if expected_tag is not None and tag != expected_tag:
        raise MalformedResponseError(f"unexpected_tag:{tag}", stripped)
    if opening.group("self_closing"):
        raise MalformedResponseError("empty_element", stripped)
    if f"</{tag}>" in stripped:
        raise MalformedResponseError("unexpected_content", stripped)
    raise IncompleteResponseError("missing_closing_tag", stripped)


def parse_key_value(text: str, expected_tag: str | None = None) -> KeyValue:
    """Parse ``<TAG>KEY="VALUE"</TAG>``; the value may be empty or contain spaces.

    Raises:
        IncompleteResponseError: Closing tag not received yet
        MalformedResponseError: Missing key, unterminated quote, empty body,
            self-closed element or a tag other than ``expected_tag``

    """
    stripped = text.strip()
    match = _KEY_VALUE_RE.match(stripped)
    if match and (expected_tag is None or match.group("tag") == expected_tag):
        return KeyValue(tag=match.group("tag"), key=match.group("key"), value=match.group("value"))
    _raise_unmatched(stripped, expected_tag)
    raise AssertionError("unreachable")  # pragma: no cover


def parse_current_layout(text: str) -> str:
    """Parse a current-layout reply in either the key-value or bare-value form."""
    stripped = text.strip()

    match = _KEY_VALUE_RE.match(stripped)
    if match and match.group("tag") == CURRENT_LAYOUT_TAG:
        if match.group("key") != CURRENT_LAYOUT_KEY:
            raise MalformedResponseError(f"unexpected_key:{match.group('key')}", stripped)
        return match.group("value")

    match = _BARE_VALUE_RE.match(stripped)
    if match and match.group("tag") == CURRENT_LAYOUT_TAG:
        value = match.group("value").strip()
        if not value:
            raise MalformedResponseError("empty_layout", stripped)
        return value

    _raise_unmatched(stripped, CURRENT_LAYOUT_TAG)
    raise AssertionError("unreachable")  # pragma: no cover


def _element_body(text: str, tag: str) -> str:
    """Return the raw body of ``<tag>...</tag>``, or "" for ``<tag/>``.

    The body is taken verbatim: device names may contain a bare ``&`` or
    ``<`` and are not XML-escaped. The reply is complete once it ends with
    the closing tag.
    """
    stripped = text.strip()
    if not stripped:
        raise IncompleteResponseError("empty_buffer", stripped)
    if not stripped.startswith("<"):
        raise MalformedResponseError("not_markup", stripped)

    opening = _OPEN_TAG_RE.match(stripped)
    if opening is None:
        if ">" in stripped:
            raise MalformedResponseError("invalid_opening_tag", stripped)
        raise IncompleteResponseError("partial_opening_tag", stripped)
    if opening.group("tag") != tag:
        raise MalformedResponseError(f"unexpected_tag:{opening.group('tag')}", stripped)

    if opening.group("self_closing"):
        if opening.end() != len(stripped):
            raise MalformedResponseError("trailing_data", stripped)
        return ""

    closing = f"</{tag}>"
    if not stripped.endswith(closing):
        if closing in stripped:
            raise MalformedResponseError("trailing_data", stripped)
        raise IncompleteResponseError("missing_closing_tag", stripped)
    return stripped[opening.end() : -len(closing)]


def parse_layout_list(text: str) -> list[LayoutPreset]:
    """Parse a layout list reply into ``LayoutPreset`` entries, in device order.

    Recognised encodings:

    - ``<kLayoutList>Layout1.kg2 ROOM/Layout2.kg2</kLayoutList>``: id keeps
      room prefix and extension, label strips both
    - ``<kLayoutList>"USER PRESET 1" "USER PRESET 2"</kLayoutList>``: id and
      label are the quoted content, internal spaces kept
    - ``<kLayoutList></kLayoutList>`` and ``<kLayoutList/>``: no layouts

    Duplicate ids are dropped, keeping the first occurrence.
    """
    content = _element_body(text, LAYOUT_LIST_TAG).strip()
    if _CHILD_TAG_RE.search(content):
        raise MalformedResponseError("unexpected_child_elements", text.strip())
    if not content:
        return []

    presets: dict[str, LayoutPreset] = {}
    if '"' in content:
        if content.count('"') % 2:
            raise MalformedResponseError("unterminated_quote", text.strip())
        for name in _QUOTED_TOKEN_RE.findall(content):
            if name.strip() and name not in presets:
                presets[name] = LayoutPreset(id=name, label=name)
    else:
        for token in content.split():
            if token not in presets:
                presets[token] = LayoutPreset(id=token, label=layout_label(token))
    return list(presets.values())


def parse_room_list(text: str) -> list[DeviceRoom]:
    """Parse ``<kRoomList><room>A</room>...</kRoomList>`` into rooms, in device order."""
    body = _element_body(text, ROOM_LIST_TAG)

    rooms: dict[str, DeviceRoom] = {}
    position = 0
    while body[position:].strip():
        match = _ROOM_ENTRY_RE.match(body, position)
        if match is None:
            child = _CHILD_TAG_RE.search(body, position)
            reason = f"unexpected_child:{child.group('tag')}" if child else "unexpected_content"
            raise MalformedResponseError(reason, text.strip())
        room_id = match.group("room").strip()
        if not room_id:
            raise MalformedResponseError("empty_room_id", text.strip())
        if room_id not in rooms:
            rooms[room_id] = DeviceRoom(id=room_id, label=room_id)
        position = match.end()
    return list(rooms.values())
