"""Order repository interface.

Extends ``IRepository[OrderDTO]`` with the writes the lifecycle
orchestrator sequences itself: order row insert, item insert, field
updates.  Reads return immutable ``OrderDTO`` snapshots.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.dtos import OrderDTO


class IOrderRepository(IRepository["OrderDTO"]):
    """Repository contract for the Order aggregate root.

    Order and items are inserted by separate calls; the caller owns
    compensation when the second one fails.
    """

    @abstractmethod
    def insert_order(self, data: Dict[str, Any]) -> None:
        """Insert the order row.  ``data`` must include ``id``."""

    @abstractmethod
    def insert_items(self, order_id: UUID, items: List[Dict[str, Any]]) -> None:
        """Insert every item of an existing order, all or nothing."""

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[OrderDTO]:
        """Retrieve an order with items and status history."""

    @abstractmethod
    def get_by_order_number(self, order_number: str) -> Optional[OrderDTO]:
        """Retrieve an order by its human-readable number."""

    @abstractmethod
    def get_by_payment_intent_id(self, payment_intent_id: str) -> Optional[OrderDTO]:
        """Retrieve the order bound to a payment provider intent."""

    @abstractmethod
    def update_fields(
        self,
        id: UUID,
        data: Dict[str, Any],
        history_note: Optional[str] = None,
    ) -> OrderDTO:
        """Write *data* onto the order and return the reloaded snapshot.

        ``history_note`` is attached to the status history row written when
        ``data`` changes ``status``.

        Raises:
            OrderNotFound: the order does not exist.
        """
