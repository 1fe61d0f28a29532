"""Cart repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class ICartRepository(ABC):
    """Write-side contract the order engine needs from carts."""

    @abstractmethod
    def mark_completed(self, cart_id: str) -> bool:
        """Move the cart to ``completed``; return ``False`` if nothing matched."""
