from __future__ import annotations

import itertools
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

import pytest

from modules.orders.dtos import (
    AddressDTO,
    OrderDTO,
    OrderItemDTO,
    OrderMetadata,
)
from modules.orders.exceptions import OrderNotFound
from modules.orders.repositories.interfaces import IOrderRepository


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


# ---------------------------------------------------------------------------
# Snapshot builders
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_address():
    def _make(**overrides: Any) -> AddressDTO:
        data = {
            "first_name": "John",
            "last_name": "Smith",
            "address1": "1 Main St",
            "city": "Springfield",
            "state": "IL",
            "postal_code": "62701",
            "country": "US",
        }
        data.update(overrides)
        return AddressDTO(**data)

    return _make


@pytest.fixture()
def make_item():
    def _make(
        name: str = "Wireless Mouse",
        sku: str = "WM-001",
        quantity: int = 1,
        unit_price: str = "25.00",
        product_id: Optional[str] = None,
    ) -> OrderItemDTO:
        price = Decimal(unit_price)
        return OrderItemDTO(
            product_id=product_id or f"prod-{sku.lower()}",
            name=name,
            sku=sku,
            quantity=quantity,
            unit_price=price,
            total_price=price * quantity,
        )

    return _make


@pytest.fixture()
def make_order():
    counter = itertools.count(1)

    def _make(**overrides: Any) -> OrderDTO:
        n = next(counter)
        created_at = overrides.pop(
            "created_at", datetime(2026, 1, n, 12, 0, tzinfo=timezone.utc)
        )
        data: Dict[str, Any] = {
            "id": uuid4(),
            "order_number": f"NO-202601{n:02d}-T{n:03d}",
            "email": f"customer{n}@example.com",
            "total_amount": Decimal("10.00"),
            "created_at": created_at,
            "updated_at": created_at,
        }
        data.update(overrides)
        return OrderDTO(**data)

    return _make


# ---------------------------------------------------------------------------
# In-memory repository
# ---------------------------------------------------------------------------


class InMemoryOrderRepository(IOrderRepository):
    """Dict-backed repository that mirrors the Django one's contract."""

    def __init__(self, *orders: OrderDTO) -> None:
        self.orders: Dict[UUID, OrderDTO] = {o.id: o for o in orders}
        self.update_calls: List[Dict[str, Any]] = []

    def insert_order(self, data: Dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        row = dict(data)
        row["metadata"] = OrderMetadata.from_raw(row.get("metadata"))
        self.orders[row["id"]] = OrderDTO(created_at=now, updated_at=now, **row)

    def insert_items(self, order_id: UUID, items: List[Dict[str, Any]]) -> None:
        order = self.orders[order_id]
        self.orders[order_id] = order.model_copy(
            update={"items": [OrderItemDTO(**item) for item in items]}
        )

    def get_by_id(self, id: str) -> Optional[OrderDTO]:
        return self.orders.get(UUID(str(id)))

    def get_by_order_number(self, order_number: str) -> Optional[OrderDTO]:
        return next(
            (o for o in self.orders.values() if o.order_number == order_number), None
        )

    def get_by_payment_intent_id(self, payment_intent_id: str) -> Optional[OrderDTO]:
        return next(
            (
                o
                for o in self.orders.values()
                if o.payment_intent_id == payment_intent_id
            ),
            None,
        )

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[OrderDTO]:
        return list(self.orders.values())

    def update_fields(
        self,
        id: UUID,
        data: Dict[str, Any],
        history_note: Optional[str] = None,
    ) -> OrderDTO:
        order = self.get_by_id(str(id))
        if order is None:
            raise OrderNotFound(f"Order {id} not found.")
        self.update_calls.append({"data": dict(data), "history_note": history_note})
        changes = dict(data)
        if "metadata" in changes:
            changes["metadata"] = OrderMetadata.from_raw(changes["metadata"])
        changes["updated_at"] = datetime.now(timezone.utc)
        # Round-trip through validation so enum fields are coerced.
        updated = OrderDTO.model_validate({**order.model_dump(), **changes})
        self.orders[order.id] = updated
        return updated

    def delete(self, id: str) -> bool:
        return self.orders.pop(UUID(str(id)), None) is not None


@pytest.fixture()
def memory_repo():
    return InMemoryOrderRepository()
