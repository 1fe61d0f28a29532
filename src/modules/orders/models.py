"""Order, OrderItem, and OrderStatusHistory models.

- ``order_number`` is a human-readable identifier generated once on first
  save (``NO-YYYYMMDD-XXXX``) and regenerated on collision.
- ``status`` and ``payment_status`` are independent axes; transitions are
  guarded at the service layer, not here.
- ``metadata`` is a free JSON object; the service layer reads and writes it
  through ``OrderMetadata``.
- OrderItem ``total_price`` is always ``quantity * unit_price`` (set on save).
- Every change of ``status`` appends an ``OrderStatusHistory`` row
  (see ``modules.orders.signals``).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel
from modules.orders.constants import (
    CENT,
    ORDER_NUMBER_MAX_RETRIES,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.identifiers import generate_order_number

logger = structlog.get_logger(__name__)


def _money_field(**kwargs: Any) -> models.DecimalField:
    kwargs.setdefault("default", Decimal("0.00"))
    return models.DecimalField(max_digits=12, decimal_places=2, **kwargs)


class Order(BaseModel):
    """Order aggregate root."""

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    user_id: models.CharField = models.CharField(
        max_length=64, null=True, blank=True, db_index=True
    )
    email: models.EmailField = models.EmailField()
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    payment_intent_id: models.CharField = models.CharField(
        max_length=255, null=True, blank=True, db_index=True
    )
    payment_method_id: models.CharField = models.CharField(
        max_length=255, null=True, blank=True
    )
    payment_provider: models.CharField = models.CharField(
        max_length=50, null=True, blank=True
    )
    shipping_address: models.JSONField = models.JSONField(null=True, blank=True)
    billing_address: models.JSONField = models.JSONField(null=True, blank=True)
    shipping_method: models.CharField = models.CharField(
        max_length=100, null=True, blank=True
    )
    subtotal_amount: models.DecimalField = _money_field()
    shipping_cost: models.DecimalField = _money_field()
    tax_amount: models.DecimalField = _money_field()
    total_amount: models.DecimalField = _money_field()
    notes: models.TextField = models.TextField(blank=True, default="")
    metadata: models.JSONField = models.JSONField(default=dict, blank=True)
    checkout_session_id: models.CharField = models.CharField(
        max_length=255, null=True, blank=True
    )
    cart_id: models.CharField = models.CharField(max_length=64, null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(status__in=OrderStatus.values),
                name="orders_status_valid",
            ),
            models.CheckConstraint(
                condition=models.Q(payment_status__in=PaymentStatus.values),
                name="orders_payment_status_valid",
            ),
        ]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self._state.adding and (
            not self.order_number
            or Order.objects.filter(order_number=self.order_number).exists()
        ):
            self.order_number = self._unique_order_number()
        super().save(*args, **kwargs)

    @staticmethod
    def _unique_order_number() -> str:
        for attempt in range(ORDER_NUMBER_MAX_RETRIES):
            candidate = generate_order_number()
            if not Order.objects.filter(order_number=candidate).exists():
                return candidate
            logger.warning("order.number_collision", attempt=attempt + 1)
        raise RuntimeError(
            f"Failed to generate unique order_number after "
            f"{ORDER_NUMBER_MAX_RETRIES} attempts"
        )

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Line item of an Order.

    ``unit_price``, ``name`` and ``sku`` are snapshots taken from the cart
    at checkout; they never follow later catalog changes.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_id: models.CharField = models.CharField(max_length=64)
    variant_id: models.CharField = models.CharField(
        max_length=64, null=True, blank=True
    )
    name: models.CharField = models.CharField(max_length=255)
    sku: models.CharField = models.CharField(max_length=100)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = _money_field()
    total_price: models.DecimalField = _money_field(editable=False)
    image_url: models.URLField = models.URLField(
        max_length=500, null=True, blank=True
    )
    options: models.JSONField = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(unit_price__gte=0),
                name="order_items_unit_price_non_negative",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.total_price = (Decimal(self.unit_price) * self.quantity).quantize(CENT)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} x{self.quantity} (${self.total_price})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    Rows are immutable once written.  ``created_by`` is ``"system"`` unless
    the caller attributes the change.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    notes: models.TextField = models.TextField(blank=True, default="")
    created_by: models.CharField = models.CharField(max_length=64, default="system")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.new_status}"
