"""Order domain constants.

Defines the two status axes (order status, payment status), their allowed
transition tables, and the numeric limits used by the lifecycle engine.

Both tables list the state itself among its successors so that re-applying
the current status is idempotent rather than an error.
"""

from decimal import Decimal
from typing import Dict, Tuple

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PAID = "paid", "Paid"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    CANCELLED = "cancelled", "Cancelled"


ORDER_STATUS_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    OrderStatus.PENDING: (
        OrderStatus.PENDING,
        OrderStatus.PROCESSING,
        OrderStatus.PAID,
        OrderStatus.CANCELLED,
        OrderStatus.FAILED,
    ),
    OrderStatus.PROCESSING: (
        OrderStatus.PROCESSING,
        OrderStatus.PAID,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.FAILED,
        OrderStatus.PENDING,
    ),
    OrderStatus.PAID: (
        OrderStatus.PAID,
        OrderStatus.PROCESSING,
        OrderStatus.COMPLETED,
        OrderStatus.REFUNDED,
    ),
    # Back to processing is allowed for corrections.
    OrderStatus.COMPLETED: (
        OrderStatus.COMPLETED,
        OrderStatus.REFUNDED,
        OrderStatus.PROCESSING,
    ),
    OrderStatus.CANCELLED: (OrderStatus.CANCELLED, OrderStatus.PENDING),
    OrderStatus.FAILED: (
        OrderStatus.FAILED,
        OrderStatus.PENDING,
        OrderStatus.PROCESSING,
    ),
    OrderStatus.REFUNDED: (OrderStatus.REFUNDED,),
}

PAYMENT_STATUS_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    PaymentStatus.PENDING: (
        PaymentStatus.PENDING,
        PaymentStatus.PROCESSING,
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    ),
    PaymentStatus.PROCESSING: (
        PaymentStatus.PROCESSING,
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    ),
    PaymentStatus.PAID: (PaymentStatus.PAID, PaymentStatus.REFUNDED),
    PaymentStatus.FAILED: (
        PaymentStatus.FAILED,
        PaymentStatus.PENDING,
        PaymentStatus.PROCESSING,
    ),
    PaymentStatus.REFUNDED: (PaymentStatus.REFUNDED,),
    PaymentStatus.CANCELLED: (PaymentStatus.CANCELLED, PaymentStatus.PENDING),
}

SOFT_TERMINAL_STATES = frozenset({OrderStatus.CANCELLED, OrderStatus.FAILED})
HARD_TERMINAL_STATES = frozenset({OrderStatus.REFUNDED})
SOFT_TERMINAL_RECOVERY = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})

# External payment outcome -> (order status, payment status).
PAYMENT_OUTCOME_STATUSES: Dict[str, Tuple[str, str]] = {
    "paid": (OrderStatus.PAID, PaymentStatus.PAID),
    "completed": (OrderStatus.PAID, PaymentStatus.PAID),
    "failed": (OrderStatus.FAILED, PaymentStatus.FAILED),
    "pending": (OrderStatus.PROCESSING, PaymentStatus.PENDING),
    "refunded": (OrderStatus.REFUNDED, PaymentStatus.REFUNDED),
    "cancelled": (OrderStatus.CANCELLED, PaymentStatus.FAILED),
    "canceled": (OrderStatus.CANCELLED, PaymentStatus.FAILED),
}

SMS_NOTIFICATION_STATUSES = frozenset(
    {
        OrderStatus.PROCESSING,
        OrderStatus.PAID,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    }
)

MONEY_TOLERANCE = Decimal("0.01")
CENT = Decimal("0.01")

ORDER_NUMBER_PREFIX = "NO"
ORDER_NUMBER_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
ORDER_NUMBER_SUFFIX_LENGTH = 4
ORDER_NUMBER_MAX_RETRIES = 5

STATUS_HISTORY_LIMIT = 10
DEFAULT_UNDO_WINDOW_MINUTES = 5

ORDER_CREATED_NOTE = "Order created"
UNDO_NOTE = "Status reverted via undo operation"


def _ensure_exhaustive(table: Dict[str, Tuple[str, ...]], choices) -> None:
    missing = set(choices.values) - set(table)
    unknown = {s for targets in table.values() for s in targets} - set(choices.values)
    if missing or unknown:
        raise RuntimeError(
            f"{choices.__name__} transition table is inconsistent: "
            f"missing={sorted(missing)} unknown={sorted(unknown)}"
        )


def _ensure_terminal_states(table: Dict[str, Tuple[str, ...]]) -> None:
    """Hard terminals only loop; soft terminals only recover to pending/processing."""
    for status in HARD_TERMINAL_STATES:
        if set(table[status]) - {status}:
            raise RuntimeError(f"{status} is hard terminal but has exits")
    for status in SOFT_TERMINAL_STATES:
        if set(table[status]) - {status, *SOFT_TERMINAL_RECOVERY}:
            raise RuntimeError(f"{status} is soft terminal but has non-recovery exits")


_ensure_exhaustive(ORDER_STATUS_TRANSITIONS, OrderStatus)
_ensure_exhaustive(PAYMENT_STATUS_TRANSITIONS, PaymentStatus)
_ensure_terminal_states(ORDER_STATUS_TRANSITIONS)
