"""Order validator.

Pure, stateless pre-write checks.  The first failing check determines the
reported reason.  Never touches storage.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal

import structlog
from pydantic import ValidationError

from modules.orders.constants import MONEY_TOLERANCE
from modules.orders.dtos import (
    INTERNAL_METADATA_KEYS,
    CreateOrderDTO,
    OrderMetadata,
    UpdateOrderDTO,
)
from modules.orders.exceptions import OrderValidationError
from modules.orders.transitions import StatusAxis, ensure_transition

logger = structlog.get_logger(__name__)


def validate_create(dto: CreateOrderDTO) -> None:
    """Reject an order creation request that breaks a business rule.

    Raises:
        OrderValidationError: the first violated rule.
    """
    if not dto.email or not dto.email.strip():
        raise OrderValidationError("Email is required")

    if not dto.items:
        raise OrderValidationError("Order must contain at least one item")

    for index, item in enumerate(dto.items):
        if not item.product_id:
            raise OrderValidationError(f"Item {index}: product ID is required")
        if item.quantity <= 0:
            raise OrderValidationError(
                f"Item {index}: quantity must be greater than 0"
            )
        if item.price < 0:
            raise OrderValidationError(f"Item {index}: price cannot be negative")

    _ensure_non_negative(dto.shipping_cost, dto.tax_amount)

    expected = dto.subtotal_amount + dto.shipping_cost + dto.tax_amount
    if abs(expected - dto.total_amount) > MONEY_TOLERANCE:
        logger.info(
            "order.validation.total_mismatch",
            expected=str(expected),
            total=str(dto.total_amount),
        )
        raise OrderValidationError(
            "Total amount does not match subtotal + shipping + tax "
            f"(expected {expected}, got {dto.total_amount})"
        )


def validate_update(
    dto: UpdateOrderDTO,
    current_status: str,
    current_payment_status: str,
) -> None:
    """Reject a partial update against the order's current state.

    Raises:
        OrderValidationError: both status axes set, bad metadata or money.
        TransitionError: a status change outside the allowed-next set.
    """
    if dto.status is not None and dto.payment_status is not None:
        raise OrderValidationError(
            "Cannot update order status and payment status at the same time"
        )

    if dto.status is not None:
        ensure_transition(StatusAxis.ORDER, current_status, dto.status)

    if dto.payment_status is not None:
        ensure_transition(
            StatusAxis.PAYMENT, current_payment_status, dto.payment_status
        )

    if dto.metadata is not None:
        ensure_caller_metadata(dto.metadata)

    _ensure_non_negative(dto.shipping_cost, dto.tax_amount)


def _ensure_non_negative(shipping: Decimal | None, tax: Decimal | None) -> None:
    if shipping is not None and shipping < 0:
        raise OrderValidationError("Shipping cost cannot be negative")
    if tax is not None and tax < 0:
        raise OrderValidationError("Tax amount cannot be negative")


def ensure_caller_metadata(metadata: object) -> None:
    """Reject caller-supplied metadata the order engine cannot store.

    Undo history and payment results are owned by the service; a caller
    may not overwrite them.  Known keys must match their typed shape.
    """
    if not isinstance(metadata, Mapping):
        raise OrderValidationError("Metadata must be an object")

    internal = sorted(INTERNAL_METADATA_KEYS.intersection(metadata))
    if internal:
        raise OrderValidationError(
            f"Metadata keys are managed by the order engine: {', '.join(internal)}"
        )

    try:
        OrderMetadata.from_raw(metadata)
    except ValidationError as exc:
        raise OrderValidationError(f"Invalid metadata: {_first_error(exc)}") from exc


def _first_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error["loc"])
    return f"{location}: {error['msg']}" if location else error["msg"]
