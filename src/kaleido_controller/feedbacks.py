"""Boolean feedbacks evaluated against the derived state."""

from __future__ import annotations

from dataclasses import dataclass

from kaleido_controller.state import DerivedState

__all__ = ["FEEDBACK_CURRENT_LAYOUT", "FeedbackDefinition", "current_layout_matches", "get_feedback_definitions"]

FEEDBACK_CURRENT_LAYOUT = "current_layout"


@dataclass(frozen=True)
class FeedbackDefinition:
    id: str
    name: str
    description: str
    room_choices: tuple[tuple[str, str], ...]
    default_room: str


def current_layout_matches(state: DerivedState, room_id: str | None, layout: str) -> bool:
    """True when the room (None/empty for root) is tracked and shows ``layout``.

    ``layout`` is compared verbatim, extension included.
    """
    return state.has_scope(room_id) and state.current_layout(room_id) == layout


def get_feedback_definitions(state: DerivedState) -> dict[str, FeedbackDefinition]:
    choices = tuple((room.id, room.label) for room in state.rooms)
    return {
        FEEDBACK_CURRENT_LAYOUT: FeedbackDefinition(
            id=FEEDBACK_CURRENT_LAYOUT,
            name="Room Layout Matches Selected Layout",
            description="Show feedback for room layout",
            room_choices=choices,
            default_room=choices[0][0] if choices else "",
        ),
    }
