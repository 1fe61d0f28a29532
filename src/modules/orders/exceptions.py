"""Order domain exceptions.

Raised by the validator and the service layer when business rules are
violated or a persistence step fails.  Callers map
``OrderValidationError`` (and ``TransitionError``) to client errors and
``PersistenceError`` to server errors.
"""

from __future__ import annotations

from typing import Iterable


class OrderError(Exception):
    """Base class for every order engine error."""


class OrderNotFound(OrderError):
    """The requested order does not exist."""


class OrderValidationError(OrderError):
    """Input rejected before any write took place."""


class TransitionError(OrderValidationError):
    """A status change is not in the allowed-next set of its axis."""

    def __init__(
        self,
        axis: str,
        current: str,
        requested: str,
        allowed: Iterable[str],
    ) -> None:
        self.axis = axis
        self.current = current
        self.requested = requested
        self.allowed = tuple(sorted(allowed))
        label = "payment status" if axis == "payment" else "status"
        super().__init__(
            f"Invalid {label} transition: Cannot change from {current} to "
            f"{requested}. Allowed transitions: {', '.join(self.allowed)}"
        )


class UndoExpiredError(OrderError):
    """The undo window has elapsed or the change was already undone."""


class PersistenceError(OrderError):
    """A persistence collaborator call failed during a named step."""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        super().__init__(f"{step} failed: {message}")
