"""Transition guard for the order and payment status axes."""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Tuple

from modules.orders.constants import (
    ORDER_STATUS_TRANSITIONS,
    PAYMENT_STATUS_TRANSITIONS,
)
from modules.orders.exceptions import TransitionError


class StatusAxis(str, Enum):
    ORDER = "order"
    PAYMENT = "payment"


_TABLES: Dict[StatusAxis, Dict[str, Tuple[str, ...]]] = {
    StatusAxis.ORDER: ORDER_STATUS_TRANSITIONS,
    StatusAxis.PAYMENT: PAYMENT_STATUS_TRANSITIONS,
}


def allowed_next(axis: StatusAxis, current: str) -> FrozenSet[str]:
    """Return the states directly reachable from *current* on *axis*.

    Unknown states have no successors.
    """
    return frozenset(str(s) for s in _TABLES[axis].get(current, ()))


def is_allowed(axis: StatusAxis, current: str, requested: str) -> bool:
    if current == requested:
        return True
    return requested in allowed_next(axis, current)


def ensure_transition(axis: StatusAxis, current: str, requested: str) -> None:
    """Raise ``TransitionError`` unless *current* -> *requested* is allowed."""
    if not is_allowed(axis, current, requested):
        raise TransitionError(
            axis=axis.value,
            current=str(current),
            requested=str(requested),
            allowed=allowed_next(axis, current),
        )
