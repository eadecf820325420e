"""Draft order state — derived from which draft fields are populated.

Nothing stores the state; ``derive_state`` recomputes it on every read so
that a draft left half-finished (for example while waiting for an address)
resumes correctly after a restart.
"""

from __future__ import annotations

import enum
from typing import Protocol, Sequence


class DraftState(str, enum.Enum):
    EMPTY = "empty"
    ITEMS_SELECTED = "items_selected"
    PICKUP_CHOSEN = "pickup_chosen"
    AWAITING_ADDRESS = "awaiting_address"
    READY_TO_CONFIRM = "ready_to_confirm"


class DraftLike(Protocol):
    items: Sequence[object]
    delivery_method: str | None
    address_text: str | None
    location_lat: float | None
    location_lng: float | None


CONFIRMABLE_STATES = frozenset({DraftState.PICKUP_CHOSEN, DraftState.READY_TO_CONFIRM})


def has_address(draft: DraftLike) -> bool:
    has_text = bool(draft.address_text and draft.address_text.strip())
    has_point = draft.location_lat is not None and draft.location_lng is not None
    return has_text or has_point


def derive_state(draft: DraftLike | None) -> DraftState:
    """Compute the conversational state of *draft*.

    ``None`` and an item-less draft are both ``EMPTY``.
    """
    if draft is None or not draft.items:
        return DraftState.EMPTY
    if draft.delivery_method == "pickup":
        return DraftState.PICKUP_CHOSEN
    if draft.delivery_method == "delivery":
        return DraftState.READY_TO_CONFIRM if has_address(draft) else DraftState.AWAITING_ADDRESS
    return DraftState.ITEMS_SELECTED


def is_confirmable(state: DraftState) -> bool:
    return state in CONFIRMABLE_STATES
