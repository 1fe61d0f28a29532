"""Unit tests for status-change notification building and dispatch."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from modules.orders.notifications import (
    LoggingNotificationGateway,
    NotificationTemplate,
    OrderNotificationDispatcher,
    build_status_email,
    build_status_sms,
)

pytestmark = pytest.mark.unit

NOW = datetime(2026, 5, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture()
def order(make_order, make_address, make_item):
    return make_order(
        order_number="NO-20260501-AB12",
        shipping_address=make_address(phone="+1 555 010 0199"),
        items=[make_item(quantity=2)],
    )


@pytest.fixture()
def gateway():
    gw = MagicMock()
    gw.send_email.return_value = True
    gw.send_sms.return_value = True
    return gw


# ===========================================================================
# Builders
# ===========================================================================


class TestBuildStatusEmail:
    @pytest.mark.parametrize(
        ("status", "template", "subject"),
        [
            ("pending", NotificationTemplate.ORDER_CREATED, "Order Confirmation: #NO-20260501-AB12"),
            ("processing", NotificationTemplate.ORDER_CONFIRMED, "Order NO-20260501-AB12 has been confirmed"),
            ("paid", NotificationTemplate.PAYMENT_RECEIVED, "Payment Received for Order NO-20260501-AB12"),
            ("cancelled", NotificationTemplate.ORDER_CANCELED, "Order NO-20260501-AB12 has been canceled"),
            ("refunded", NotificationTemplate.PAYMENT_REFUNDED, "Refund Processed for Order NO-20260501-AB12"),
            ("failed", NotificationTemplate.PAYMENT_FAILED, "Important: Issue with Order NO-20260501-AB12"),
        ],
    )
    def test_template_per_status(self, order, status, template, subject):
        email = build_status_email(order, status, "pending", now=NOW)
        assert email.template == template
        assert email.subject == subject
        assert email.recipient == order.email

    def test_payload(self, order):
        email = build_status_email(order, "completed", "paid", now=NOW)
        assert email.customer_name == "John Smith"
        assert email.data["old_status"] == "paid"
        assert email.data["item_count"] == 2
        assert email.data["status_change_date"] == NOW.isoformat()

    def test_no_email_without_recipient(self, make_order):
        assert build_status_email(make_order(email=None), "paid") is None


class TestBuildStatusSms:
    @pytest.mark.parametrize("status", ["processing", "paid", "completed", "cancelled"])
    def test_sms_for_eligible_statuses(self, order, status):
        sms = build_status_sms(order, status, now=NOW)
        assert sms.phone_number == "+1 555 010 0199"
        assert "#NO-20260501-AB12" in sms.message

    @pytest.mark.parametrize("status", ["pending", "failed", "refunded"])
    def test_no_sms_for_other_statuses(self, order, status):
        assert build_status_sms(order, status) is None

    def test_no_sms_without_phone(self, make_order, make_address):
        order = make_order(shipping_address=make_address())
        assert build_status_sms(order, "paid") is None


# ===========================================================================
# Dispatcher
# ===========================================================================


class TestOrderNotificationDispatcher:
    def test_sends_email_and_sms(self, order, gateway):
        results = OrderNotificationDispatcher(gateway).notify_status_change(
            order, "paid", "pending"
        )
        assert [r.step for r in results] == ["status email", "status sms"]
        assert all(r.ok for r in results)
        gateway.send_email.assert_called_once()
        gateway.send_sms.assert_called_once()

    def test_email_failure_does_not_block_sms(self, order, gateway):
        gateway.send_email.side_effect = ConnectionError("smtp down")
        results = OrderNotificationDispatcher(gateway).notify_status_change(
            order, "paid", "pending"
        )
        assert [(r.step, r.ok) for r in results] == [
            ("status email", False),
            ("status sms", True),
        ]
        assert results[0].error == "smtp down"

    def test_rejected_send_reported(self, order, gateway):
        gateway.send_sms.return_value = False
        results = OrderNotificationDispatcher(gateway).notify_status_change(
            order, "paid"
        )
        assert not results[1].ok

    def test_nothing_to_send(self, make_order, gateway):
        results = OrderNotificationDispatcher(gateway).notify_status_change(
            make_order(email=None), "paid"
        )
        assert results == []
        gateway.send_email.assert_not_called()

    def test_logging_gateway_accepts(self, order):
        results = OrderNotificationDispatcher(
            LoggingNotificationGateway()
        ).notify_status_change(order, "completed", "paid")
        assert all(r.ok for r in results)
