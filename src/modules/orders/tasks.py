"""Async tasks for the orders module."""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from celery import shared_task
from django.conf import settings
from django.utils.module_loading import import_string

from modules.orders.dtos import OrderDTO
from modules.orders.notifications import OrderNotificationDispatcher

logger = structlog.get_logger(__name__)


def get_notification_gateway():
    """Instantiate the gateway class named by ``ORDER_NOTIFICATION_GATEWAY``."""
    return import_string(settings.ORDER_NOTIFICATION_GATEWAY)()


@shared_task(name="orders.send_status_notifications")
def send_status_notifications(
    order_payload: Dict[str, Any],
    new_status: str,
    old_status: Optional[str] = None,
) -> Dict[str, Any]:
    order = OrderDTO.model_validate(order_payload)
    dispatcher = OrderNotificationDispatcher(get_notification_gateway())
    results = dispatcher.notify_status_change(order, new_status, old_status)
    logger.info(
        "notification.task_executed",
        order_id=str(order.id),
        results=[r.as_dict() for r in results],
    )
    return {
        "order_id": str(order.id),
        "results": [r.as_dict() for r in results],
    }
