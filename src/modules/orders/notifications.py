"""Order status notifications.

Maps an (old status, new status) transition to at most one e-mail and at
most one SMS and hands them to a notification gateway.  Every send is
best-effort: a failing gateway is reported in the returned results and
never raised to the caller of the status change.

Two notifiers plug into ``OrderService``:

- ``OrderNotificationDispatcher``: sends synchronously through a gateway.
- ``CeleryStatusNotifier``: defers the dispatch to a Celery task.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

import structlog
from django.utils import timezone

from modules.orders.constants import SMS_NOTIFICATION_STATUSES, OrderStatus
from modules.orders.dtos import OrderDTO
from shared.domain.saga import BestEffortResult, best_effort

logger = structlog.get_logger(__name__)


class NotificationTemplate(str, Enum):
    ORDER_CREATED = "order_created"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELED = "order_canceled"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REFUNDED = "payment_refunded"
    SHIPPING_UPDATE = "shipping_update"


@dataclass(frozen=True)
class EmailNotification:
    order_id: str
    order_number: str
    recipient: str
    subject: str
    template: NotificationTemplate
    customer_name: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SmsNotification:
    phone_number: str
    message: str
    template: NotificationTemplate
    data: Dict[str, Any] = field(default_factory=dict)


class INotificationGateway(Protocol):
    """Transport for e-mail and SMS; returns ``True`` when accepted."""

    def send_email(self, notification: EmailNotification) -> bool: ...

    def send_sms(self, notification: SmsNotification) -> bool: ...


class IStatusNotifier(Protocol):
    def notify_status_change(
        self,
        order: OrderDTO,
        new_status: str,
        old_status: Optional[str] = None,
    ) -> Any: ...


class LoggingNotificationGateway:
    """Default gateway: records the notification in the log and accepts it."""

    def send_email(self, notification: EmailNotification) -> bool:
        logger.info(
            "notification.email_sent",
            template=notification.template.value,
            recipient=notification.recipient,
            order_number=notification.order_number,
            subject=notification.subject,
        )
        return True

    def send_sms(self, notification: SmsNotification) -> bool:
        logger.info(
            "notification.sms_sent",
            template=notification.template.value,
            phone_number=notification.phone_number,
        )
        return True


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_EMAIL_TEMPLATES: Dict[str, tuple[NotificationTemplate, str]] = {
    OrderStatus.PENDING: (
        NotificationTemplate.ORDER_CREATED,
        "Order Confirmation: #{number}",
    ),
    OrderStatus.PROCESSING: (
        NotificationTemplate.ORDER_CONFIRMED,
        "Order {number} has been confirmed",
    ),
    OrderStatus.PAID: (
        NotificationTemplate.PAYMENT_RECEIVED,
        "Payment Received for Order {number}",
    ),
    OrderStatus.COMPLETED: (
        NotificationTemplate.ORDER_DELIVERED,
        "Order {number} has been completed",
    ),
    OrderStatus.CANCELLED: (
        NotificationTemplate.ORDER_CANCELED,
        "Order {number} has been canceled",
    ),
    OrderStatus.REFUNDED: (
        NotificationTemplate.PAYMENT_REFUNDED,
        "Refund Processed for Order {number}",
    ),
    OrderStatus.FAILED: (
        NotificationTemplate.PAYMENT_FAILED,
        "Important: Issue with Order {number}",
    ),
}

_SMS_TEMPLATES: Dict[str, tuple[NotificationTemplate, str]] = {
    OrderStatus.PROCESSING: (
        NotificationTemplate.ORDER_CONFIRMED,
        "Your order #{number} has been confirmed and is being processed. "
        "We'll notify you when it ships.",
    ),
    OrderStatus.PAID: (
        NotificationTemplate.PAYMENT_RECEIVED,
        "Payment received for your order #{number}. Thank you for your purchase!",
    ),
    OrderStatus.COMPLETED: (
        NotificationTemplate.ORDER_DELIVERED,
        "Your order #{number} has been marked as completed. "
        "Thank you for shopping with us!",
    ),
    OrderStatus.CANCELLED: (
        NotificationTemplate.ORDER_CANCELED,
        "Your order #{number} has been canceled. "
        "Contact customer service for more information.",
    ),
}


def build_status_email(
    order: OrderDTO,
    new_status: str,
    old_status: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[EmailNotification]:
    """Return the e-mail for *new_status*, or ``None`` without a recipient."""
    if not order.email:
        return None
    now = now or timezone.now()
    template, subject = _EMAIL_TEMPLATES.get(
        new_status,
        (NotificationTemplate.ORDER_CREATED, "Order Update: #{number}"),
    )
    address = order.shipping_address
    return EmailNotification(
        order_id=str(order.id),
        order_number=order.order_number,
        recipient=order.email,
        subject=subject.format(number=order.order_number),
        template=template,
        customer_name=address.full_name if address else None,
        data={
            "old_status": old_status,
            "new_status": str(new_status),
            "status_change_date": now.isoformat(),
            "item_count": sum(item.quantity for item in order.items),
            "total": str(order.total_amount),
        },
    )


def build_status_sms(
    order: OrderDTO,
    new_status: str,
    now: Optional[datetime] = None,
) -> Optional[SmsNotification]:
    """Return the SMS for *new_status*, or ``None`` when none applies."""
    address = order.shipping_address
    if address is None or not address.phone:
        return None
    if new_status not in SMS_NOTIFICATION_STATUSES:
        return None
    now = now or timezone.now()
    template, message = _SMS_TEMPLATES[new_status]
    return SmsNotification(
        phone_number=address.phone,
        message=message.format(number=order.order_number),
        template=template,
        data={
            "order_id": str(order.id),
            "order_number": order.order_number,
            "status": str(new_status),
            "timestamp": now.isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Notifiers
# ---------------------------------------------------------------------------


class OrderNotificationDispatcher:
    """Sends status-change notifications synchronously through a gateway."""

    def __init__(self, gateway: INotificationGateway) -> None:
        self._gateway = gateway

    def notify_status_change(
        self,
        order: OrderDTO,
        new_status: str,
        old_status: Optional[str] = None,
    ) -> List[BestEffortResult]:
        log = logger.bind(
            order_id=str(order.id), old_status=old_status, new_status=new_status
        )
        results: List[BestEffortResult] = []

        email = build_status_email(order, new_status, old_status)
        if email is not None:
            results.append(
                best_effort("status email", lambda: self._gateway.send_email(email))
            )

        sms = build_status_sms(order, new_status)
        if sms is not None:
            results.append(
                best_effort("status sms", lambda: self._gateway.send_sms(sms))
            )

        log.info(
            "notification.dispatched",
            sent=[r.step for r in results if r.ok],
            failed=[r.step for r in results if not r.ok],
        )
        return results


class CeleryStatusNotifier:
    """Defers notification dispatch to the ``orders.send_status_notifications`` task."""

    def notify_status_change(
        self,
        order: OrderDTO,
        new_status: str,
        old_status: Optional[str] = None,
    ) -> None:
        from modules.orders.tasks import send_status_notifications

        send_status_notifications.delay(
            order.model_dump(mode="json"),
            str(new_status),
            str(old_status) if old_status is not None else None,
        )
        logger.info(
            "notification.enqueued", order_id=str(order.id), new_status=new_status
        )
