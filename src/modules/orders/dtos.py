"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.  DTOs are
immutable (``frozen=True``).  Business-rule checks live in
``modules.orders.validators``; the DTOs only enforce shape and types.

- ``AddressDTO``: shipping/billing address value.
- ``CreateOrderItemDTO`` / ``CreateOrderDTO``: input for order creation.
- ``UpdateOrderDTO``: partial update input.
- ``PaymentResultDTO``: outcome reported by a payment provider.
- ``OrderMetadata``: typed view over the persisted metadata bag.
- ``OrderItemDTO`` / ``StatusHistoryDTO`` / ``OrderDTO``: snapshots.
- ``UndoStatusDTO``: read-only undo availability report.

Persisted JSON (addresses, metadata) uses camelCase keys.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from modules.orders.constants import OrderStatus, PaymentStatus

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderItem, OrderStatusHistory


_CAMEL = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


class AddressDTO(BaseModel):
    model_config = _CAMEL

    first_name: str = ""
    last_name: str = ""
    address1: str = ""
    address2: Optional[str] = None
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""
    phone: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_raw(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class StatusChangeEntry(BaseModel):
    """One undoable status change, newest first in ``OrderMetadata``."""

    model_config = _CAMEL

    previous_status: OrderStatus
    new_status: OrderStatus
    change_time: datetime
    can_undo_until: datetime
    undone: bool = False
    undone_at: Optional[datetime] = None


class TrackingInfo(BaseModel):
    """Shipment and payment tracking details; unknown keys are preserved."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    payment_status: Optional[str] = None
    payment_id: Optional[str] = None
    updated_at: Optional[datetime] = None


class PaymentResultDTO(BaseModel):
    """Outcome reported by a payment provider webhook or callback."""

    model_config = _CAMEL

    success: bool
    status: Optional[str] = None
    payment_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    error: Optional[str] = None
    amount: Optional[Decimal] = None
    refund_amount: Optional[Decimal] = None
    refund_reason: Optional[str] = None


class PaymentResultRecord(PaymentResultDTO):
    """``PaymentResultDTO`` as stored on the order, stamped when processed."""

    processed_at: datetime


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

STATUS_HISTORY_KEY = "statusChangeHistory"
TRACKING_KEY = "tracking"
PAYMENT_RESULT_KEY = "paymentResultData"
RESERVED_METADATA_KEYS = frozenset(
    {STATUS_HISTORY_KEY, TRACKING_KEY, PAYMENT_RESULT_KEY}
)
# Written only by the service itself (undo history, payment outcomes).
INTERNAL_METADATA_KEYS = frozenset({STATUS_HISTORY_KEY, PAYMENT_RESULT_KEY})


class OrderMetadata(BaseModel):
    """Typed metadata: known purposes as fields, anything else in ``extra``."""

    model_config = _CAMEL

    status_change_history: List[StatusChangeEntry] = Field(
        default_factory=list, alias=STATUS_HISTORY_KEY
    )
    tracking: Optional[TrackingInfo] = Field(default=None, alias=TRACKING_KEY)
    payment_result: Optional[PaymentResultRecord] = Field(
        default=None, alias=PAYMENT_RESULT_KEY
    )
    extra: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Optional[Mapping[str, Any]]) -> OrderMetadata:
        raw = dict(raw or {})
        known = {k: raw.pop(k) for k in list(raw) if k in RESERVED_METADATA_KEYS}
        return cls.model_validate({**known, "extra": raw})

    def to_raw(self) -> Dict[str, Any]:
        raw: Dict[str, Any] = dict(self.extra)
        if self.status_change_history:
            raw[STATUS_HISTORY_KEY] = [
                e.model_dump(mode="json", by_alias=True)
                for e in self.status_change_history
            ]
        if self.tracking is not None:
            raw[TRACKING_KEY] = self.tracking.model_dump(
                mode="json", by_alias=True, exclude_none=True
            )
        if self.payment_result is not None:
            raw[PAYMENT_RESULT_KEY] = self.payment_result.model_dump(
                mode="json", by_alias=True, exclude_none=True
            )
        return raw

    @property
    def latest_status_change(self) -> Optional[StatusChangeEntry]:
        return self.status_change_history[0] if self.status_change_history else None

    def with_status_change(self, entry: StatusChangeEntry, limit: int) -> OrderMetadata:
        """Prepend *entry*, dropping the oldest entries beyond *limit*."""
        history = [entry, *self.status_change_history][:limit]
        return self.model_copy(update={"status_change_history": history})

    def replace_latest(self, entry: StatusChangeEntry) -> OrderMetadata:
        history = [entry, *self.status_change_history[1:]]
        return self.model_copy(update={"status_change_history": history})


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateOrderItemDTO(BaseModel):
    """A cart line to be turned into an order item.

    ``name`` and ``sku`` are optional; the service fills them from the
    product identifier when absent.
    """

    model_config = ConfigDict(frozen=True)

    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    name: Optional[str] = None
    sku: Optional[str] = None
    quantity: int
    price: Decimal
    image_url: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)


class CreateOrderDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: Optional[str] = None
    user_id: Optional[str] = None
    items: List[CreateOrderItemDTO] = Field(default_factory=list)
    subtotal_amount: Decimal
    shipping_cost: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total_amount: Decimal
    shipping_address: Optional[AddressDTO] = None
    billing_address: Optional[AddressDTO] = None
    shipping_method: Optional[str] = None
    payment_intent_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    payment_provider: Optional[str] = None
    checkout_session_id: Optional[str] = None
    cart_id: Optional[str] = None
    notes: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UpdateOrderDTO(BaseModel):
    """Partial update; ``None`` means "leave unchanged".

    ``metadata`` is typed ``Any`` so the validator can report a
    non-object payload as a business error.
    """

    model_config = ConfigDict(frozen=True)

    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    payment_intent_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    shipping_method: Optional[str] = None
    notes: Optional[str] = None
    metadata: Any = None
    shipping_cost: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class OrderItemDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = None
    product_id: str
    variant_id: Optional[str] = None
    name: str
    sku: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    image_url: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_entity(cls, item: OrderItem) -> OrderItemDTO:
        return cls(
            id=item.id,
            product_id=item.product_id,
            variant_id=item.variant_id,
            name=item.name,
            sku=item.sku,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            image_url=item.image_url,
            options=item.options or {},
        )


class StatusHistoryDTO(BaseModel):
    """Immutable DTO for order status history records."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    old_status: Optional[str]
    new_status: str
    notes: str
    created_by: str
    created_at: datetime

    @classmethod
    def from_entity(cls, history: OrderStatusHistory) -> StatusHistoryDTO:
        return cls(
            id=history.id,
            old_status=history.old_status,
            new_status=history.new_status,
            notes=history.notes,
            created_by=history.created_by,
            created_at=history.created_at,
        )


class OrderDTO(BaseModel):
    """Immutable order snapshot consumed by search, reports and exports."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    order_number: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_intent_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    payment_provider: Optional[str] = None
    shipping_address: Optional[AddressDTO] = None
    billing_address: Optional[AddressDTO] = None
    shipping_method: Optional[str] = None
    subtotal_amount: Decimal = Decimal("0.00")
    shipping_cost: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    notes: str = ""
    metadata: OrderMetadata = Field(default_factory=OrderMetadata)
    checkout_session_id: Optional[str] = None
    cart_id: Optional[str] = None
    items: List[OrderItemDTO] = Field(default_factory=list)
    history: List[StatusHistoryDTO] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, order: Order) -> OrderDTO:
        """Build a snapshot from an Order model instance.

        Assumes ``items`` and ``status_history`` are prefetched.
        """
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            email=order.email,
            status=order.status,
            payment_status=order.payment_status,
            payment_intent_id=order.payment_intent_id,
            payment_method_id=order.payment_method_id,
            payment_provider=order.payment_provider,
            shipping_address=_address_or_none(order.shipping_address),
            billing_address=_address_or_none(order.billing_address),
            shipping_method=order.shipping_method,
            subtotal_amount=order.subtotal_amount,
            shipping_cost=order.shipping_cost,
            tax_amount=order.tax_amount,
            total_amount=order.total_amount,
            notes=order.notes,
            metadata=OrderMetadata.from_raw(order.metadata),
            checkout_session_id=order.checkout_session_id,
            cart_id=order.cart_id,
            items=[OrderItemDTO.from_entity(i) for i in order.items.all()],
            history=[
                StatusHistoryDTO.from_entity(h) for h in order.status_history.all()
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


def _address_or_none(raw: Optional[Mapping[str, Any]]) -> Optional[AddressDTO]:
    if not raw:
        return None
    return AddressDTO.model_validate(raw)


class UndoStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_undo: bool
    previous_status: Optional[str] = None
    current_status: Optional[str] = None
    time_remaining_seconds: int = 0
    expires_at: Optional[datetime] = None
