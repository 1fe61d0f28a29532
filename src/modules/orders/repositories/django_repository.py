"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API and hands back
``OrderDTO`` snapshots.  Item insertion is wrapped in
``transaction.atomic()``; the order row insert is deliberately a separate
unit so the orchestrator can compensate it.

Concurrency control on updates uses ``select_for_update()``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.orders.dtos import OrderDTO
from modules.orders.exceptions import OrderNotFound
from modules.orders.models import Order, OrderItem
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

_PREFETCH = ("items", "status_history")


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def insert_order(self, data: Dict[str, Any]) -> None:
        order = Order(**data)
        order.save()
        logger.info(
            "order.row_inserted",
            order_id=str(order.id),
            order_number=order.order_number,
        )

    @transaction.atomic
    def insert_items(self, order_id: UUID, items: List[Dict[str, Any]]) -> None:
        for item_data in items:
            OrderItem(order_id=order_id, **item_data).save()
        logger.info("order.items_inserted", order_id=str(order_id), count=len(items))

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_fields(
        self,
        id: UUID,
        data: Dict[str, Any],
        history_note: Optional[str] = None,
    ) -> OrderDTO:
        """Update order fields using ``select_for_update`` for safety."""
        with transaction.atomic():
            order = Order.objects.select_for_update().filter(id=id).first()
            if not order:
                raise OrderNotFound(f"Order {id} not found.")

            for field, value in data.items():
                setattr(order, field, value)
            if history_note is not None:
                order._status_change_notes = history_note

            order.save(update_fields=list(data))

        logger.info("order.updated", order_id=str(id), fields=sorted(data))
        return self._reload(id)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[OrderDTO]:
        """Returns ``None`` for non-existent or invalid IDs."""
        try:
            return self._first(id=id)
        except (ValueError, ValidationError):
            return None

    def get_by_order_number(self, order_number: str) -> Optional[OrderDTO]:
        return self._first(order_number=order_number)

    def get_by_payment_intent_id(self, payment_intent_id: str) -> Optional[OrderDTO]:
        return self._first(payment_intent_id=payment_intent_id)

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[OrderDTO]:
        """List orders, newest first, with optional ORM lookups.

        Examples of filter keys: ``status``, ``user_id``, ``email``,
        ``created_at__range``.
        """
        queryset = Order.objects.prefetch_related(*_PREFETCH)
        if filters:
            queryset = queryset.filter(**filters)
        return [OrderDTO.from_entity(order) for order in queryset]

    # ------------------------------------------------------------------
    # Delete (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def delete(self, id: str) -> bool:
        """Hard-delete an order; items and history cascade."""
        deleted, _ = Order.objects.filter(id=id).delete()
        if deleted:
            logger.info("order.deleted", order_id=str(id))
        return bool(deleted)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _first(self, **lookup: Any) -> Optional[OrderDTO]:
        order = Order.objects.prefetch_related(*_PREFETCH).filter(**lookup).first()
        return OrderDTO.from_entity(order) if order else None

    def _reload(self, id: UUID) -> OrderDTO:
        snapshot = self._first(id=id)
        if snapshot is None:
            raise OrderNotFound(f"Order {id} not found.")
        return snapshot
