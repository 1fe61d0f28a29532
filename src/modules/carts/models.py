"""Cart model.

Only the part of the cart the order engine touches: its lifecycle status,
which moves to ``completed`` once an order has been created from it.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel


class CartStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    CHECKOUT = "checkout", "Checkout"
    COMPLETED = "completed", "Completed"
    ABANDONED = "abandoned", "Abandoned"


class Cart(BaseModel):
    user_id: models.CharField = models.CharField(
        max_length=64, null=True, blank=True, db_index=True
    )
    session_id: models.CharField = models.CharField(
        max_length=255, null=True, blank=True
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=CartStatus.choices,
        default=CartStatus.ACTIVE,
    )

    class Meta:
        db_table = "carts"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Cart {self.id} ({self.status})"
