"""Integration tests for CartDjangoRepository."""

from __future__ import annotations

import pytest

from modules.carts.models import Cart, CartStatus
from modules.carts.repositories import CartDjangoRepository

pytestmark = pytest.mark.integration


@pytest.fixture()
def repo():
    return CartDjangoRepository()


def test_mark_completed(repo):
    cart = Cart.objects.create(session_id="sess-1")

    assert repo.mark_completed(str(cart.id)) is True
    cart.refresh_from_db()
    assert cart.status == CartStatus.COMPLETED


def test_mark_completed_missing_cart(repo):
    assert repo.mark_completed("00000000-0000-0000-0000-000000000000") is False


def test_mark_completed_invalid_id(repo):
    assert repo.mark_completed("not-a-uuid") is False
