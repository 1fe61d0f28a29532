"""Order service layer (Use Cases).

Sequences guarded order mutations against the repository, then records
undo bookkeeping, then notifies.  Multi-write operations are sagas, not
transactions:

- ``create_order``: order row insert, then item insert (compensated by
  deleting the order), then a best-effort cart completion.
- ``update_order_from_payment``: payment-status write, then order-status
  write, each bypassing the transition guard.

Notification and cart side effects never abort the primary mutation.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple, TypeVar
from uuid import UUID

import structlog
from django.utils import timezone
from pydantic import ValidationError

from modules.orders.constants import (
    CENT,
    DEFAULT_UNDO_WINDOW_MINUTES,
    PAYMENT_OUTCOME_STATUSES,
    STATUS_HISTORY_LIMIT,
    UNDO_NOTE,
    OrderStatus,
)
from modules.orders.dtos import (
    CreateOrderDTO,
    CreateOrderItemDTO,
    OrderDTO,
    OrderMetadata,
    PaymentResultDTO,
    PaymentResultRecord,
    StatusChangeEntry,
    TrackingInfo,
    UndoStatusDTO,
    UpdateOrderDTO,
)
from modules.orders.exceptions import (
    OrderError,
    OrderNotFound,
    OrderValidationError,
    PersistenceError,
    UndoExpiredError,
)
from modules.orders.identifiers import generate_order_number, new_order_id
from modules.orders.validators import validate_create, validate_update
from shared.domain.saga import BestEffortResult, Saga, SagaStepError, best_effort

if TYPE_CHECKING:
    from modules.carts.repositories.interfaces import ICartRepository
    from modules.orders.notifications import IStatusNotifier
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

R = TypeVar("R")

_PLAIN_UPDATE_FIELDS = (
    "status",
    "payment_status",
    "payment_intent_id",
    "payment_method_id",
    "shipping_method",
    "notes",
    "shipping_cost",
    "tax_amount",
)


@dataclass(frozen=True)
class StatusChangeResult:
    """Updated order plus a handle that reverts the change while allowed."""

    order: OrderDTO
    undo: Callable[[], OrderDTO]


class OrderService:
    """Application service for Order use-cases.

    Receives repositories and the status notifier via constructor
    injection (DIP).  ``build_order_service`` wires the Django defaults.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        cart_repository: Optional[ICartRepository] = None,
        notifier: Optional[IStatusNotifier] = None,
        undo_window_minutes: int = DEFAULT_UNDO_WINDOW_MINUTES,
        history_limit: int = STATUS_HISTORY_LIMIT,
    ) -> None:
        self._order_repo = order_repository
        self._cart_repo = cart_repository
        self._notifier = notifier
        self._undo_window_minutes = undo_window_minutes
        self._history_limit = history_limit

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, dto: CreateOrderDTO) -> OrderDTO:
        """Create a new order from a validated cart snapshot.

        Raises:
            OrderValidationError: the input breaks a business rule.
            PersistenceError: the order or item insert failed.  When the item
                insert fails the order row has already been removed.
        """
        log = logger.bind(email=dto.email, item_count=len(dto.items))
        log.info("order.creation_started")

        try:
            validate_create(dto)
        except OrderValidationError as exc:
            log.warning("order.creation_rejected", reason=str(exc))
            raise

        order_id = new_order_id()
        order_row = self._build_order_row(order_id, dto)
        item_rows = [self._build_item_row(item) for item in dto.items]

        saga = (
            Saga("create_order")
            .add_step(
                "order insert",
                lambda: self._order_repo.insert_order(order_row),
                compensation=lambda: self._order_repo.delete(str(order_id)),
            )
            .add_step(
                "item insert",
                lambda: self._order_repo.insert_items(order_id, item_rows),
            )
        )
        try:
            saga.run()
        except SagaStepError as exc:
            log.error("order.creation_failed", step=exc.step, error=str(exc.cause))
            raise PersistenceError(exc.step, str(exc.cause)) from exc

        if dto.cart_id:
            self.complete_cart(dto.cart_id)

        order = self.get_order(str(order_id))
        log.info(
            "order.created", order_id=str(order.id), order_number=order.order_number
        )
        self._notify(order, OrderStatus.PENDING, None)
        return order

    def complete_cart(self, cart_id: str) -> BestEffortResult:
        """Mark the cart an order was created from as completed, best-effort."""
        if self._cart_repo is None:
            return BestEffortResult.failed(
                "cart completion", "no cart repository configured"
            )
        cart_repo = self._cart_repo
        return best_effort("cart completion", lambda: cart_repo.mark_completed(cart_id))

    def update_order(
        self,
        order_id: str,
        dto: UpdateOrderDTO,
        *,
        skip_validation: bool = False,
        history_note: Optional[str] = None,
    ) -> OrderDTO:
        """Apply a partial update and return the reloaded order.

        ``skip_validation`` is reserved for trusted internal paths: undo
        restoration and payment-provider driven writes.

        Raises:
            OrderNotFound: order does not exist.
            OrderValidationError: the update breaks a business rule.
            TransitionError: the status change is not allowed.
            PersistenceError: the field update failed.
        """
        current = self.get_order(order_id)
        log = logger.bind(
            order_id=str(current.id),
            current_status=current.status,
            skip_validation=skip_validation,
        )

        if not skip_validation:
            try:
                validate_update(dto, current.status, current.payment_status)
            except OrderValidationError as exc:
                log.warning("order.update_rejected", reason=str(exc))
                raise

        data = self._build_update_payload(current, dto)
        order = self._persist(
            "field update",
            lambda: self._order_repo.update_fields(current.id, data, history_note),
        )

        if dto.status is not None and dto.status != current.status:
            log.info("order.status_updated", new_status=dto.status)
            self._notify(order, dto.status, current.status)
        else:
            log.info("order.updated", fields=sorted(data))
        return order

    def update_order_status(
        self, order_id: str, status: str, notes: Optional[str] = None
    ) -> OrderDTO:
        return self.update_order(
            order_id, UpdateOrderDTO(status=status, notes=notes), history_note=notes
        )

    def update_payment_status(
        self,
        order_id: str,
        payment_status: str,
        payment_intent_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OrderDTO:
        return self.update_order(
            order_id,
            UpdateOrderDTO(
                payment_status=payment_status,
                payment_intent_id=payment_intent_id,
                notes=notes,
            ),
        )

    def update_order_from_payment(
        self, order_id: str, result: PaymentResultDTO
    ) -> OrderDTO:
        """Apply a payment provider outcome to the order.

        The payment status and the order status are written by two
        sequential guard-bypassing updates, payment first.
        """
        order_status, payment_status = map_payment_outcome(result)
        notes = payment_notes(result)
        now = timezone.now()

        metadata = OrderMetadata(
            payment_result=PaymentResultRecord.model_validate(
                {**result.model_dump(), "processed_at": now}
            ),
            tracking=TrackingInfo(
                carrier="payment",
                tracking_number=result.payment_id or "unknown",
                payment_id=result.payment_id,
                payment_status=result.status,
                updated_at=now,
            ),
        ).to_raw()

        logger.info(
            "order.payment_result_received",
            order_id=str(order_id),
            success=result.success,
            outcome=result.status,
            order_status=order_status,
            payment_status=payment_status,
        )

        self.update_order(
            order_id,
            UpdateOrderDTO(
                payment_status=payment_status,
                payment_intent_id=result.payment_intent_id,
                notes=notes,
                metadata=metadata,
            ),
            skip_validation=True,
        )
        return self.update_order(
            order_id,
            UpdateOrderDTO(status=order_status),
            skip_validation=True,
            history_note=notes,
        )

    # ------------------------------------------------------------------
    # Undo
    # ------------------------------------------------------------------

    def update_order_status_with_undo(
        self,
        order_id: str,
        new_status: str,
        undo_window_minutes: Optional[int] = None,
    ) -> StatusChangeResult:
        """Change the order status and return an undo handle.

        Re-applying the current status is a no-op whose undo also returns
        the unchanged order.
        """
        current = self.get_order(order_id)
        if new_status == current.status:
            logger.info(
                "order.status_unchanged", order_id=str(current.id), status=new_status
            )
            return StatusChangeResult(order=current, undo=lambda: current)

        window = (
            self._undo_window_minutes
            if undo_window_minutes is None
            else undo_window_minutes
        )
        updated = self.update_order(order_id, UpdateOrderDTO(status=new_status))

        now = timezone.now()
        entry = StatusChangeEntry(
            previous_status=current.status,
            new_status=new_status,
            change_time=now,
            can_undo_until=now + timedelta(minutes=window),
        )
        order = self._write_metadata(
            updated.id, updated.metadata.with_status_change(entry, self._history_limit)
        )
        logger.info(
            "order.undo_window_opened",
            order_id=str(order.id),
            previous_status=entry.previous_status,
            new_status=entry.new_status,
            can_undo_until=entry.can_undo_until.isoformat(),
        )
        return StatusChangeResult(
            order=order,
            undo=partial(self.undo_status_change, str(order.id), entry.change_time),
        )

    def undo_status_change(self, order_id: str, change_time: datetime) -> OrderDTO:
        """Revert the status change recorded at *change_time*.

        Only the newest history entry can be undone, once, inside its window,
        and only while the order still holds the status it moved to.

        Raises:
            UndoExpiredError: any of the above does not hold.
        """
        current = self.get_order(order_id)
        entry = current.metadata.latest_status_change
        now = timezone.now()
        log = logger.bind(order_id=str(current.id))

        if entry is None or entry.change_time != change_time:
            log.warning("order.undo_rejected", reason="superseded")
            raise UndoExpiredError("Status change is no longer the latest change")
        if entry.undone:
            log.warning("order.undo_rejected", reason="already_undone")
            raise UndoExpiredError("Status change has already been undone")
        if now > entry.can_undo_until:
            log.warning("order.undo_rejected", reason="expired")
            raise UndoExpiredError("Undo time window has expired")
        if current.status != entry.new_status:
            log.warning("order.undo_rejected", reason="status_moved")
            raise UndoExpiredError(
                f"Order status is {current.status}, expected {entry.new_status}"
            )

        reverted = self.update_order(
            order_id,
            UpdateOrderDTO(status=entry.previous_status),
            skip_validation=True,
            history_note=UNDO_NOTE,
        )
        consumed = entry.model_copy(update={"undone": True, "undone_at": now})
        order = self._write_metadata(
            reverted.id, reverted.metadata.replace_latest(consumed)
        )
        log.info(
            "order.undo_applied",
            restored_status=entry.previous_status,
            undone_status=entry.new_status,
        )
        return order

    def can_undo_status_change(self, order_id: str) -> UndoStatusDTO:
        """Report whether the latest status change can still be undone."""
        current = self.get_order(order_id)
        entry = current.metadata.latest_status_change
        if entry is None:
            return UndoStatusDTO(can_undo=False, current_status=current.status)

        now = timezone.now()
        can_undo = (
            not entry.undone
            and now <= entry.can_undo_until
            and current.status == entry.new_status
        )
        remaining = max(0, int((entry.can_undo_until - now).total_seconds()))
        return UndoStatusDTO(
            can_undo=can_undo,
            previous_status=entry.previous_status,
            current_status=current.status,
            time_remaining_seconds=remaining if can_undo else 0,
            expires_at=entry.can_undo_until,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> OrderDTO:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._persist("order read", lambda: self._order_repo.get_by_id(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def get_order_by_number(self, order_number: str) -> OrderDTO:
        order = self._order_repo.get_by_order_number(order_number)
        if not order:
            raise OrderNotFound(f"Order {order_number} not found.")
        return order

    def get_order_by_payment_intent(self, payment_intent_id: str) -> OrderDTO:
        order = self._order_repo.get_by_payment_intent_id(payment_intent_id)
        if not order:
            raise OrderNotFound(
                f"Order for payment intent {payment_intent_id} not found."
            )
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> List[OrderDTO]:
        """Return a list of orders, optionally filtered."""
        return self._order_repo.list(filters)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _persist(self, step: str, action: Callable[[], R]) -> R:
        try:
            return action()
        except OrderError:
            raise
        except Exception as exc:
            logger.error("order.persistence_failed", step=step, error=str(exc))
            raise PersistenceError(step, str(exc)) from exc

    def _write_metadata(self, order_id: UUID, metadata: OrderMetadata) -> OrderDTO:
        return self._persist(
            "metadata update",
            lambda: self._order_repo.update_fields(
                order_id, {"metadata": metadata.to_raw()}
            ),
        )

    def _notify(
        self, order: OrderDTO, new_status: str, old_status: Optional[str]
    ) -> Optional[BestEffortResult]:
        if self._notifier is None:
            return None
        notifier = self._notifier
        return best_effort(
            "status notification",
            lambda: notifier.notify_status_change(order, new_status, old_status),
        )

    @staticmethod
    def _build_order_row(order_id: UUID, dto: CreateOrderDTO) -> Dict[str, Any]:
        return {
            "id": order_id,
            "order_number": generate_order_number(),
            "user_id": dto.user_id,
            "email": dto.email,
            "status": OrderStatus.PENDING,
            "payment_intent_id": dto.payment_intent_id,
            "payment_method_id": dto.payment_method_id,
            "payment_provider": dto.payment_provider,
            "shipping_address": (
                dto.shipping_address.to_raw() if dto.shipping_address else None
            ),
            "billing_address": (
                dto.billing_address.to_raw() if dto.billing_address else None
            ),
            "shipping_method": dto.shipping_method,
            "subtotal_amount": dto.subtotal_amount,
            "shipping_cost": dto.shipping_cost,
            "tax_amount": dto.tax_amount,
            "total_amount": dto.total_amount,
            "notes": dto.notes,
            "metadata": OrderMetadata.from_raw(dto.metadata).to_raw(),
            "checkout_session_id": dto.checkout_session_id,
            "cart_id": dto.cart_id,
        }

    @staticmethod
    def _build_item_row(item: CreateOrderItemDTO) -> Dict[str, Any]:
        product_id = str(item.product_id)
        return {
            "product_id": product_id,
            "variant_id": item.variant_id,
            "name": item.name or f"Product {product_id}",
            "sku": item.sku or f"SKU-{product_id[:8]}",
            "quantity": item.quantity,
            "unit_price": item.price,
            "total_price": (item.price * item.quantity).quantize(CENT),
            "image_url": item.image_url,
            "options": item.options,
        }

    @staticmethod
    def _build_update_payload(
        current: OrderDTO, dto: UpdateOrderDTO
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for field in _PLAIN_UPDATE_FIELDS:
            value = getattr(dto, field)
            if value is not None:
                data[field] = value

        if dto.metadata is not None:
            if not isinstance(dto.metadata, Mapping):
                raise OrderValidationError("Metadata must be an object")
            merged = {**current.metadata.to_raw(), **dto.metadata}
            try:
                data["metadata"] = OrderMetadata.from_raw(merged).to_raw()
            except ValidationError as exc:
                raise OrderValidationError(f"Invalid metadata: {exc}") from exc
        return data


# ---------------------------------------------------------------------------
# Payment outcome helpers
# ---------------------------------------------------------------------------


def map_payment_outcome(result: PaymentResultDTO) -> Tuple[str, str]:
    """Return ``(order status, payment status)`` for a payment outcome.

    Unknown or missing outcomes fall back on the ``success`` flag.
    """
    default = PAYMENT_OUTCOME_STATUSES["paid" if result.success else "failed"]
    if not result.status:
        return default
    return PAYMENT_OUTCOME_STATUSES.get(result.status.lower(), default)


def payment_notes(result: PaymentResultDTO) -> str:
    notes = (
        f"Payment error: {result.error}"
        if result.error
        else "Payment processed successfully."
    )
    if result.refund_amount:
        reason = result.refund_reason or "Not specified"
        notes += f" Refunded amount: {result.refund_amount}. Reason: {reason}."
    return notes


def build_order_service() -> OrderService:
    """Composition root: Django repositories, Celery notifier, settings."""
    from django.conf import settings

    from modules.carts.repositories import CartDjangoRepository
    from modules.orders.notifications import CeleryStatusNotifier
    from modules.orders.repositories import OrderDjangoRepository

    return OrderService(
        order_repository=OrderDjangoRepository(),
        cart_repository=CartDjangoRepository(),
        notifier=CeleryStatusNotifier(),
        undo_window_minutes=settings.ORDER_UNDO_WINDOW_MINUTES,
        history_limit=settings.ORDER_STATUS_HISTORY_LIMIT,
    )
