"""Signals for automatic Order status history tracking.

Callers may set two transient attributes on the instance before saving:
``_status_change_notes`` (history note) and ``_status_changed_by``
(``created_by`` attribution).  Both are cleared after the save.
"""

from __future__ import annotations

from typing import Optional, Protocol, cast

from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from modules.orders.constants import ORDER_CREATED_NOTE
from modules.orders.models import Order, OrderStatusHistory

_TRANSIENT_ATTRS = ("_previous_status", "_status_change_notes", "_status_changed_by")


class _OrderStatusAware(Protocol):
    _previous_status: str | None
    _status_change_notes: str | None
    _status_changed_by: str | None


@receiver(pre_save, sender=Order)
def _capture_previous_status(sender, instance: Order, **kwargs) -> None:
    status_instance = cast(_OrderStatusAware, instance)
    if instance._state.adding:
        status_instance._previous_status = None
        return
    previous_status = (
        sender.objects.filter(pk=instance.pk).values_list("status", flat=True).first()
    )
    status_instance._previous_status = previous_status


@receiver(post_save, sender=Order)
def _create_status_history(sender, instance: Order, created: bool, **kwargs) -> None:
    status_instance = cast(_OrderStatusAware, instance)
    previous_status: Optional[str] = getattr(status_instance, "_previous_status", None)
    notes = getattr(status_instance, "_status_change_notes", None)
    created_by = getattr(status_instance, "_status_changed_by", None) or "system"

    should_create = created or previous_status != instance.status
    if not should_create:
        _clear_transient_status_attrs(instance)
        return

    if created and notes is None:
        notes = ORDER_CREATED_NOTE

    OrderStatusHistory.objects.create(
        order=instance,
        old_status=previous_status,
        new_status=instance.status,
        notes=notes or "",
        created_by=created_by,
    )

    _clear_transient_status_attrs(instance)


def _clear_transient_status_attrs(instance: Order) -> None:
    for attr in _TRANSIENT_ATTRS:
        if hasattr(instance, attr):
            delattr(instance, attr)
