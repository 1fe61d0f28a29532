"""Unit tests for CSV and JSON order export."""

from __future__ import annotations

import csv
import io
import json
from decimal import Decimal

import pytest

from modules.orders.exporters import ExportOptions, export_order, export_orders

pytestmark = pytest.mark.unit


@pytest.fixture()
def order(make_order, make_address, make_item):
    return make_order(
        shipping_address=make_address(address2="Apt 4"),
        payment_provider="stripe",
        payment_intent_id="pi_42",
        items=[make_item(quantity=2), make_item(name="Pad, large", sku="PD-2")],
        subtotal_amount=Decimal("75.00"),
        total_amount=Decimal("75.00"),
    )


class TestExportOrder:
    def test_csv_sections(self, order):
        text = export_order(order)
        assert text.startswith("Order ID,Order Number,Customer Email")
        assert "SHIPPING ADDRESS" in text
        assert "Address 2,Apt 4" in text
        assert "No billing address provided" in text
        assert "Payment Intent,pi_42" in text
        assert "ORDER ITEMS" in text
        assert "STATUS HISTORY" not in text

    def test_csv_quotes_commas(self, order):
        rows = list(csv.reader(io.StringIO(export_order(order))))
        item_rows = [r for r in rows if r and r[0] == "prod-pd-2"]
        assert item_rows[0][1] == "Pad, large"

    def test_sections_can_be_excluded(self, order):
        options = ExportOptions(
            include_items=False, include_addresses=False, include_payment_info=False
        )
        rows = list(csv.reader(io.StringIO(export_order(order, options))))
        assert len(rows) == 2

    def test_json(self, order):
        payload = json.loads(export_order(order, ExportOptions(format="json")))
        assert payload["order_number"] == order.order_number
        assert payload["total_amount"] == "75.00"
        assert len(payload["items"]) == 2
        assert "metadata" not in payload
        assert "status_history" not in payload

    def test_json_without_payment_info(self, order):
        payload = json.loads(
            export_order(
                order, ExportOptions(format="json", include_payment_info=False)
            )
        )
        assert "payment_intent_id" not in payload
        assert "payment_provider" not in payload

    def test_unsupported_format(self, order):
        with pytest.raises(ValueError, match="Unsupported export format: xml"):
            export_order(order, ExportOptions(format="xml"))


class TestExportOrders:
    def test_csv_one_row_per_order(self, order, make_order):
        text = export_orders([order, make_order()])
        rows = list(csv.reader(io.StringIO(text)))
        assert len(rows) == 3
        assert rows[0][-2:] == ["Item Count", "Items"]
        assert rows[1][-2] == "3"
        assert rows[1][-1] == "Wireless Mouse x2; Pad, large x1"

    def test_json_list(self, order, make_order):
        payload = json.loads(
            export_orders([order, make_order()], ExportOptions(format="json"))
        )
        assert [p["id"] for p in payload][0] == str(order.id)
        assert len(payload) == 2

    def test_empty(self):
        assert export_orders([]).count("\n") == 1
