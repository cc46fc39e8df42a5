"""User-facing actions and the commands they translate to."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from kaleido_controller.protocol.commands import Command
from kaleido_controller.state import LayoutPreset

__all__ = [
    "ACTION_ALARM",
    "ACTION_PRESET",
    "ACTION_TALLY",
    "ACTION_UMD",
    "ActionDefinition",
    "ActionOption",
    "AlarmState",
    "TallyColor",
    "alarm_command",
    "build_command",
    "get_action_definitions",
    "tally_command",
    "umd_text_command",
]

ACTION_TALLY = "tally"
ACTION_ALARM = "alarm"
ACTION_UMD = "umd"
ACTION_PRESET = "preset"

ALARM_STATUS_ID = 0
UMD_TEXT_ADDRESS = 0
DEFAULT_PRESET_NAME = "USER PRESET 1"


class TallyColor(Enum):
    """Tally lamp colours; the value is the device status message id."""

    RED = 1
    GREEN = 2

    @property
    def label(self) -> str:
        return self.name.capitalize()


class AlarmState(Enum):
    NORMAL = "normal"
    MINOR = "minor"
    ERROR = "error"

    @property
    def label(self) -> str:
        return _ALARM_LABELS[self]


_ALARM_LABELS = {
    AlarmState.NORMAL: "Normal",
    AlarmState.MINOR: "Minor (yellow)",
    AlarmState.ERROR: "Critical (red)",
}


@dataclass(frozen=True)
class ActionOption:
    """One input of an action (dropdown, checkbox or text input)."""

    id: str
    label: str
    type: str
    default: object = None
    choices: tuple[tuple[str, str], ...] = ()
    tooltip: str | None = None


@dataclass(frozen=True)
class ActionDefinition:
    id: str
    name: str
    description: str
    options: tuple[ActionOption, ...] = field(default_factory=tuple)


def tally_command(color: TallyColor, active: bool) -> Command:
    return Command.set_status_message(color.value, "MINOR" if active else "NORMAL")


def alarm_command(state: AlarmState) -> Command:
    return Command.set_status_message(ALARM_STATUS_ID, state.value.upper())


def umd_text_command(text: str) -> Command:
    return Command.set_dynamic_text(text, address=UMD_TEXT_ADDRESS)


def get_action_definitions(layouts: Sequence[LayoutPreset] = ()) -> dict[str, ActionDefinition]:
    """Action definitions; the preset dropdown offers the discovered layouts."""
    return {
        ACTION_TALLY: ActionDefinition(
            id=ACTION_TALLY,
            name="Set tally",
            description="Light a tally colour on the multiviewer",
            options=(
                ActionOption(
                    id="color",
                    label="Color",
                    type="dropdown",
                    default="green",
                    choices=tuple((c.name.lower(), c.label) for c in (TallyColor.GREEN, TallyColor.RED)),
                ),
                ActionOption(id="active", label="Active", type="checkbox", default=False),
            ),
        ),
        ACTION_ALARM: ActionDefinition(
            id=ACTION_ALARM,
            name="Set alarm state",
            description="Set the global alarm status",
            options=(
                ActionOption(
                    id="state",
                    label="State",
                    type="dropdown",
                    default=AlarmState.NORMAL.value,
                    choices=tuple((s.value, s.label) for s in AlarmState),
                ),
            ),
        ),
        ACTION_UMD: ActionDefinition(
            id=ACTION_UMD,
            name="Set UMD text",
            description="Change the dynamic under-monitor-display text",
            options=(
                ActionOption(id="text", label="UMD text", type="textinput", default="", tooltip="Supports variables"),
            ),
        ),
        ACTION_PRESET: ActionDefinition(
            id=ACTION_PRESET,
            name="Recall preset",
            description="Recall a layout, in its room when the layout is room qualified",
            options=(
                ActionOption(
                    id="name",
                    label="Preset name",
                    type="dropdown",
                    default=DEFAULT_PRESET_NAME,
                    choices=tuple((preset.id, preset.label) for preset in layouts),
                ),
            ),
        ),
    }


def build_command(action_id: str, options: Mapping[str, object]) -> Command:
    """Translate a non-preset action invocation into its device command.

    Preset recall is not a single command (room-qualified layouts expand into
    open/set/close), so it goes through ``KaleidoSession.enqueue_layout_change``.

    Raises:
        ValueError: Unknown action or option value

    """
    if action_id == ACTION_TALLY:
        color_name = str(options.get("color", "green")).upper()
        if color_name not in TallyColor.__members__:
            msg = f"Unknown tally color: {color_name.lower()}"
            raise ValueError(msg)
        return tally_command(TallyColor[color_name], bool(options.get("active", False)))
    if action_id == ACTION_ALARM:
        return alarm_command(AlarmState(str(options.get("state", AlarmState.NORMAL.value)).lower()))
    if action_id == ACTION_UMD:
        return umd_text_command(str(options.get("text", "")))
    msg = f"Action {action_id!r} does not map to a single command"
    raise ValueError(msg)
