"""Derived device state.

``DerivedState`` is the queryable snapshot of facts the device has reported:
software version, system name, discovered rooms and layouts, and the current
layout of the root scope and of every room. Only successful reply parses
mutate it; downstream consumers (variables, feedbacks, presets) read it and
subscribe to change notifications.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from types import MappingProxyType

from kaleido_controller.const import UNKNOWN_LAYOUT
from kaleido_controller.logging_abstraction import get_logger
from kaleido_controller.protocol.commands import split_room_qualifier

logger = get_logger(__name__)

__all__ = [
    "SOFTWARE_VERSION_KEY",
    "SYSTEM_NAME_KEY",
    "DerivedState",
    "DeviceRoom",
    "LayoutPreset",
    "StateListener",
    "StateSnapshot",
]

SOFTWARE_VERSION_KEY = "softwareVersion"
SYSTEM_NAME_KEY = "systemName"

# Field names passed to listeners
FIELD_PARAMETERS = "parameters"
FIELD_ROOMS = "rooms"
FIELD_LAYOUTS = "layouts"
FIELD_CURRENT_LAYOUT = "current_layout"

StateListener = Callable[[frozenset[str]], None]


@dataclass(frozen=True)
class DeviceRoom:
    """Independently addressable sub-unit of the device."""

    id: str
    label: str


@dataclass(frozen=True)
class LayoutPreset:
    """Recallable layout.

    Attributes:
        id: Device-native name, possibly with ``ROOM/`` prefix and extension
        label: Display name (prefix and extension stripped where present)

    """

    id: str
    label: str

    @property
    def room(self) -> str | None:
        return split_room_qualifier(self.id)[0]

    @property
    def name(self) -> str:
        """Layout name within its room, extension kept."""
        return split_room_qualifier(self.id)[1]


@dataclass(frozen=True)
class StateSnapshot:
    software_version: str | None
    system_name: str | None
    rooms: tuple[DeviceRoom, ...]
    layouts: tuple[LayoutPreset, ...]
    current_layouts: dict[str | None, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, object]:
        return {
            "software_version": self.software_version,
            "system_name": self.system_name,
            "rooms": [{"id": r.id, "label": r.label} for r in self.rooms],
            "layouts": [{"id": p.id, "label": p.label} for p in self.layouts],
            "current_layouts": {(k if k is not None else ""): v for k, v in self.current_layouts.items()},
        }


def _scope_key(room_id: str | None) -> str | None:
    # "" and None both address the root scope
    return room_id or None


class DerivedState:
    """Authoritative store of device-reported facts for one controller.

    Survives disconnects: stale values are kept until a later session
    overwrites them. The room and layout lists are the only fields that are
    ever cleared, on a negative acknowledgement of their query.
    """

    def __init__(self) -> None:
        self._parameters: dict[str, str] = {}
        self._rooms: list[DeviceRoom] = []
        self._layouts: list[LayoutPreset] = []
        self._current_layouts: dict[str | None, str] = {}
        self._listeners: list[StateListener] = []

    # Queries
    @property
    def software_version(self) -> str | None:
        return self._parameters.get(SOFTWARE_VERSION_KEY)

    @property
    def system_name(self) -> str | None:
        return self._parameters.get(SYSTEM_NAME_KEY)

    @property
    def parameters(self) -> MappingProxyType[str, str]:
        return MappingProxyType(dict(self._parameters))

    @property
    def rooms(self) -> tuple[DeviceRoom, ...]:
        return tuple(self._rooms)

    @property
    def layouts(self) -> tuple[LayoutPreset, ...]:
        return tuple(self._layouts)

    @property
    def current_layouts(self) -> MappingProxyType[str | None, str]:
        """Current layout per scope; key None is the root scope."""
        return MappingProxyType(dict(self._current_layouts))

    def current_layout(self, room_id: str | None = None) -> str:
        """Current layout of a room, or of the root scope when room_id is None/empty."""
        return self._current_layouts.get(_scope_key(room_id), UNKNOWN_LAYOUT)

    def has_scope(self, room_id: str | None) -> bool:
        """True when a current layout is tracked (possibly still unknown) for the scope."""
        return _scope_key(room_id) in self._current_layouts

    def variables(self) -> dict[str, str]:
        """Flat variable values for display layers."""
        values = {
            "software_version": self.software_version or "",
            "system_name": self.system_name or "",
            "current_layout": self.current_layout(None),
        }
        for room in self._rooms:
            values[f"current_layout_{room.id}"] = self.current_layout(room.id)
        return values

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            software_version=self.software_version,
            system_name=self.system_name,
            rooms=self.rooms,
            layouts=self.layouts,
            current_layouts=dict(self._current_layouts),
        )

    # Mutations, driven by reply parsing
    def set_parameter(self, key: str, value: str) -> None:
        if self._parameters.get(key) == value:
            return
        self._parameters[key] = value
        logger.info("Parameter updated", extra={"key": key, "value": value})
        self._notify(FIELD_PARAMETERS)

    def set_rooms(self, rooms: Iterable[DeviceRoom]) -> None:
        """Replace the room list; newly seen rooms start with an unknown layout.

        Current layouts of rooms that are no longer listed are kept until a
        later reply overwrites them.
        """
        self._rooms = list(rooms)
        for room in self._rooms:
            self._current_layouts.setdefault(room.id, UNKNOWN_LAYOUT)
        logger.info(
            "Rooms discovered: %s",
            ", ".join(room.id for room in self._rooms) or "<none>",
            extra={"room_count": len(self._rooms)},
        )
        self._notify(FIELD_ROOMS, FIELD_CURRENT_LAYOUT)

    def clear_rooms(self) -> None:
        self.set_rooms([])

    def set_layouts(self, layouts: Iterable[LayoutPreset]) -> None:
        self._layouts = list(layouts)
        logger.info(
            "Layouts discovered: %s",
            ", ".join(p.id for p in self._layouts) or "<none>",
            extra={"layout_count": len(self._layouts)},
        )
        self._notify(FIELD_LAYOUTS)

    def clear_layouts(self) -> None:
        self.set_layouts([])

    def set_current_layout(self, room_id: str | None, layout: str) -> None:
        scope = _scope_key(room_id)
        if self._current_layouts.get(scope) == layout:
            return
        self._current_layouts[scope] = layout
        logger.info(
            "Current layout for %s is now %s",
            scope or "root",
            layout,
            extra={"room": scope or "", "layout": layout},
        )
        self._notify(FIELD_CURRENT_LAYOUT)

    # Listeners
    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self, *fields: str) -> None:
        changed = frozenset(fields)
        for listener in list(self._listeners):
            try:
                listener(changed)
            except Exception:
                logger.exception("State listener failed", extra={"fields": sorted(changed)})
