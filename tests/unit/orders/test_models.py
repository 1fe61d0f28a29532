"""Unit tests for order identity and model-level rules.

Covers:
- Order number format and collision retry.
- UUIDv7 order ids.
- Check constraints on status axes and item quantity.
- OrderItem automatic total calculation.
- __str__ representation.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import IntegrityError

from modules.orders.identifiers import generate_order_number, new_order_id
from modules.orders.models import Order, OrderItem

pytestmark = pytest.mark.unit

ORDER_NUMBER_RE = re.compile(r"^NO-\d{8}-[A-Z0-9]{4}$")


def _order(**kwargs):
    data = {
        "email": "model@example.com",
        "subtotal_amount": Decimal("10.00"),
        "total_amount": Decimal("10.00"),
    }
    data.update(kwargs)
    return Order.objects.create(**data)


class TestIdentifiers:
    def test_order_number_format(self):
        number = generate_order_number(datetime(2026, 2, 3, tzinfo=timezone.utc))
        assert ORDER_NUMBER_RE.match(number)
        assert number.startswith("NO-20260203-")

    def test_order_ids_are_uuid7(self):
        first, second = new_order_id(), new_order_id()
        assert first.version == 7
        assert first != second


class TestOrderModel:
    def test_defaults(self):
        order = _order()
        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert ORDER_NUMBER_RE.match(order.order_number)
        assert str(order) == f"{order.order_number} (pending)"

    def test_order_number_retries_on_collision(self):
        existing = _order()
        with patch(
            "modules.orders.models.generate_order_number",
            side_effect=[existing.order_number, "NO-20260101-ZZZZ"],
        ):
            order = _order()
        assert order.order_number == "NO-20260101-ZZZZ"

    def test_order_number_gives_up_after_retries(self):
        existing = _order()
        with patch(
            "modules.orders.models.generate_order_number",
            return_value=existing.order_number,
        ):
            with pytest.raises(RuntimeError, match="after 5 attempts"):
                _order()

    def test_invalid_status_rejected_by_database(self):
        with pytest.raises(IntegrityError):
            _order(status="shipped")


class TestOrderItemModel:
    def test_total_price_computed(self):
        item = OrderItem.objects.create(
            order=_order(),
            product_id="p1",
            name="Widget",
            sku="W-1",
            quantity=3,
            unit_price=Decimal("3.333"),
        )
        assert item.total_price == Decimal("10.00")
        assert str(item) == "Widget x3 ($10.00)"

    def test_zero_quantity_rejected_by_database(self):
        with pytest.raises(IntegrityError):
            OrderItem.objects.create(
                order=_order(),
                product_id="p1",
                name="Widget",
                sku="W-1",
                quantity=0,
                unit_price=Decimal("1.00"),
            )
