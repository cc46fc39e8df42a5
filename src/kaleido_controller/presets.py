"""One recall button per discovered layout."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from kaleido_controller.actions import ACTION_PRESET
from kaleido_controller.feedbacks import FEEDBACK_CURRENT_LAYOUT
from kaleido_controller.state import LayoutPreset

__all__ = ["PRESET_CATEGORY", "PresetButton", "build_presets"]

PRESET_CATEGORY = "Layouts"


@dataclass(frozen=True)
class PresetButton:
    """Button that recalls a layout and lights up while that layout is shown.

    ``feedback_room`` is "" for layouts without a room prefix.
    """

    id: str
    category: str
    name: str
    text: str
    action_id: str
    action_options: dict[str, str]
    feedback_id: str
    feedback_room: str
    feedback_layout: str


def build_presets(layouts: Iterable[LayoutPreset]) -> dict[str, PresetButton]:
    presets: dict[str, PresetButton] = {}
    for layout in layouts:
        preset_id = f"layout_{layout.id}"
        presets[preset_id] = PresetButton(
            id=preset_id,
            category=PRESET_CATEGORY,
            name=f"Layout {layout.label}",
            text=layout.label,
            action_id=ACTION_PRESET,
            action_options={"name": layout.id},
            feedback_id=FEEDBACK_CURRENT_LAYOUT,
            feedback_room=layout.room or "",
            feedback_layout=layout.name,
        )
    return presets
