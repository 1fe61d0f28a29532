"""End-to-end order lifecycle through OrderService and the Django stack."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from freezegun import freeze_time

from modules.carts.models import Cart, CartStatus
from modules.carts.repositories import CartDjangoRepository
from modules.orders.constants import UNDO_NOTE, OrderStatus, PaymentStatus
from modules.orders.dtos import (
    AddressDTO,
    CreateOrderDTO,
    CreateOrderItemDTO,
    PaymentResultDTO,
)
from modules.orders.exceptions import PersistenceError, TransitionError, UndoExpiredError
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.services import OrderService, build_order_service

pytestmark = pytest.mark.integration


@pytest.fixture()
def notifier():
    return MagicMock()


@pytest.fixture()
def service(notifier):
    return OrderService(
        order_repository=OrderDjangoRepository(),
        cart_repository=CartDjangoRepository(),
        notifier=notifier,
    )


@pytest.fixture()
def cart():
    return Cart.objects.create(user_id="user-1", status=CartStatus.CHECKOUT)


@pytest.fixture()
def create_dto(cart):
    return CreateOrderDTO(
        email="lifecycle@example.com",
        user_id="user-1",
        cart_id=str(cart.id),
        items=[
            CreateOrderItemDTO(
                product_id="prod-kb",
                name="Keyboard",
                sku="KB-1",
                quantity=2,
                price=Decimal("49.95"),
            )
        ],
        subtotal_amount=Decimal("99.90"),
        shipping_cost=Decimal("5.00"),
        tax_amount=Decimal("0.10"),
        total_amount=Decimal("105.00"),
        shipping_address=AddressDTO(
            first_name="Grace", last_name="Hopper", country="US", phone="+1 555 0100 200"
        ),
    )


def _history_notes(order_id):
    return set(
        OrderStatusHistory.objects.filter(order_id=order_id).values_list(
            "old_status", "new_status", "notes"
        )
    )


class TestCreate:
    def test_create_persists_aggregate_and_completes_cart(self, service, create_dto, cart):
        order = service.create_order(create_dto)

        row = Order.objects.get(id=order.id)
        assert row.total_amount == Decimal("105.00")
        assert row.shipping_address["firstName"] == "Grace"
        assert OrderItem.objects.get(order=row).total_price == Decimal("99.90")
        cart.refresh_from_db()
        assert cart.status == CartStatus.COMPLETED

    def test_unknown_cart_does_not_abort(self, service, create_dto):
        dto = create_dto.model_copy(update={"cart_id": "not-a-cart"})
        assert service.create_order(dto).status == OrderStatus.PENDING

    def test_failed_item_insert_removes_order(self, service, create_dto):
        with patch.object(OrderItem, "save", side_effect=RuntimeError("disk full")):
            with pytest.raises(PersistenceError) as exc_info:
                service.create_order(create_dto)

        assert exc_info.value.step == "item insert"
        assert not Order.objects.exists()
        assert not OrderStatusHistory.objects.exists()


class TestStatusFlow:
    def test_guarded_transitions(self, service, create_dto):
        order = service.create_order(create_dto)
        order = service.update_order_status(str(order.id), "processing", "Packed")
        order = service.update_order_status(str(order.id), "completed")

        with pytest.raises(TransitionError):
            service.update_order_status(str(order.id), "cancelled")

        assert _history_notes(order.id) == {
            (None, "pending", "Order created"),
            ("pending", "processing", "Packed"),
            ("processing", "completed", ""),
        }

    def test_payment_result_drives_both_axes(self, service, create_dto):
        order = service.create_order(create_dto)
        result = PaymentResultDTO(
            success=True, status="paid", payment_id="ch_1", payment_intent_id="pi_1"
        )

        order = service.update_order_from_payment(str(order.id), result)

        assert order.status == OrderStatus.PAID
        assert order.payment_status == PaymentStatus.PAID
        raw = Order.objects.get(id=order.id).metadata
        assert raw["paymentResultData"]["paymentId"] == "ch_1"
        assert raw["tracking"]["carrier"] == "payment"
        assert ("pending", "paid", "Payment processed successfully.") in _history_notes(
            order.id
        )
        assert service.get_order_by_payment_intent("pi_1").id == order.id


class TestUndo:
    def test_undo_round_trip(self, service, create_dto):
        order = service.create_order(create_dto)

        change = service.update_order_status_with_undo(str(order.id), "processing")
        assert service.can_undo_status_change(str(order.id)).can_undo

        restored = change.undo()

        assert restored.status == OrderStatus.PENDING
        assert not service.can_undo_status_change(str(order.id)).can_undo
        assert ("processing", "pending", UNDO_NOTE) in _history_notes(order.id)
        raw = Order.objects.get(id=order.id).metadata["statusChangeHistory"]
        assert raw[0]["undone"] is True

        with pytest.raises(UndoExpiredError):
            change.undo()

    def test_undo_expires(self, service, create_dto):
        order = service.create_order(create_dto)
        with freeze_time("2026-06-01 12:00:00") as frozen:
            change = service.update_order_status_with_undo(str(order.id), "processing")
            frozen.move_to("2026-06-01 12:05:01")
            with pytest.raises(UndoExpiredError):
                change.undo()

        assert Order.objects.get(id=order.id).status == OrderStatus.PROCESSING


class TestNotifications:
    def test_creation_and_status_changes_notify(self, service, create_dto, notifier):
        order = service.create_order(create_dto)
        service.update_order_status(str(order.id), "processing")

        calls = [c.args[1:] for c in notifier.notify_status_change.call_args_list]
        assert calls == [("pending", None), ("processing", "pending")]


def test_composition_root_wires_django_defaults(settings):
    settings.ORDER_UNDO_WINDOW_MINUTES = 9
    service = build_order_service()
    assert isinstance(service._order_repo, OrderDjangoRepository)
    assert service._undo_window_minutes == 9
