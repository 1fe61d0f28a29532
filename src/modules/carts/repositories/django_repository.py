"""Django ORM implementation of the Cart repository."""

from __future__ import annotations

import structlog
from django.core.exceptions import ValidationError

from modules.carts.models import Cart, CartStatus
from modules.carts.repositories.interfaces import ICartRepository

logger = structlog.get_logger(__name__)


class CartDjangoRepository(ICartRepository):
    def mark_completed(self, cart_id: str) -> bool:
        try:
            updated = Cart.objects.filter(id=cart_id).update(
                status=CartStatus.COMPLETED
            )
        except (ValueError, ValidationError):
            updated = 0

        if not updated:
            logger.warning("cart.mark_completed_missed", cart_id=str(cart_id))
            return False
        logger.info("cart.completed", cart_id=str(cart_id))
        return True
