"""Order identity generation."""

from __future__ import annotations

import secrets
from datetime import datetime
from typing import Optional
from uuid import UUID

import uuid6
from django.utils import timezone

from modules.orders.constants import (
    ORDER_NUMBER_ALPHABET,
    ORDER_NUMBER_PREFIX,
    ORDER_NUMBER_SUFFIX_LENGTH,
)


def new_order_id() -> UUID:
    """Time-ordered UUIDv7, same scheme as model primary keys."""
    return uuid6.uuid7()


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Human-readable order number: ``NO-YYYYMMDD-XXXX``."""
    now = now or timezone.now()
    suffix = "".join(
        secrets.choice(ORDER_NUMBER_ALPHABET)
        for _ in range(ORDER_NUMBER_SUFFIX_LENGTH)
    )
    return f"{ORDER_NUMBER_PREFIX}-{now:%Y%m%d}-{suffix}"
