"""Integration tests for the Celery wiring and the notification task."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from modules.orders.dtos import OrderDTO

pytestmark = pytest.mark.integration


@pytest.fixture()
def order_payload():
    order = OrderDTO(
        id="0190f3c2-7b1e-7cc0-9a2b-3c4d5e6f7a8b",
        order_number="NO-20260101-AB12",
        email="buyer@example.com",
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        updated_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    return order.model_dump(mode="json")


class TestCeleryConfig:
    """Celery loads through Django settings."""

    def test_celery_app_is_importable(self):
        from config.celery import app

        assert app.main == "orders"

    def test_celery_app_exported_from_init(self):
        from config import celery_app

        assert celery_app.main == "orders"

    def test_celery_serializer_is_json(self, settings):
        assert settings.CELERY_TASK_SERIALIZER == "json"
        assert settings.CELERY_RESULT_SERIALIZER == "json"
        assert settings.CELERY_ACCEPT_CONTENT == ["json"]

    def test_celery_timezone_matches_django(self, settings):
        assert settings.CELERY_TIMEZONE == settings.TIME_ZONE

    def test_notification_task_registered(self):
        from config.celery import app
        from modules.orders.tasks import send_status_notifications

        assert send_status_notifications.name == "orders.send_status_notifications"
        assert "orders.send_status_notifications" in app.tasks


class TestSendStatusNotificationsTask:
    """Runs the task in-process with ``apply``."""

    def test_sends_email_through_configured_gateway(self, order_payload):
        from modules.orders.tasks import send_status_notifications

        result = send_status_notifications.apply(
            args=(order_payload, "paid", "pending")
        )

        assert result.successful()
        assert result.result["order_id"] == order_payload["id"]
        assert result.result["results"] == [
            {"step": "status email", "ok": True, "error": None}
        ]

    def test_gateway_setting_is_honoured(self, order_payload, settings):
        from modules.orders.tasks import send_status_notifications

        settings.ORDER_NOTIFICATION_GATEWAY = "unittest.mock.MagicMock"
        result = send_status_notifications.apply(args=(order_payload, "paid"))

        assert result.result["results"][0]["ok"] is True


class TestCeleryStatusNotifier:
    def test_enqueues_json_payload(self, order_payload):
        from modules.orders.notifications import CeleryStatusNotifier

        order = OrderDTO.model_validate(order_payload)
        with patch("modules.orders.tasks.send_status_notifications.delay") as delay:
            CeleryStatusNotifier().notify_status_change(order, "paid", "pending")

        delay.assert_called_once_with(order_payload, "paid", "pending")
