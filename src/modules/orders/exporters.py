"""Order export to CSV and JSON text."""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, Iterable, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from modules.orders.dtos import AddressDTO, OrderDTO

logger = structlog.get_logger(__name__)

SUPPORTED_FORMATS = ("csv", "json")

_ORDER_HEADER = [
    "Order ID",
    "Order Number",
    "Customer Email",
    "Status",
    "Payment Status",
    "Subtotal",
    "Shipping",
    "Tax",
    "Total",
    "Created Date",
]


class ExportOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    format: str = "csv"
    include_items: bool = True
    include_addresses: bool = True
    include_payment_info: bool = True
    include_status_history: bool = False
    date_format: str = "%Y-%m-%d %H:%M:%S"


def export_order(order: OrderDTO, options: Optional[ExportOptions] = None) -> str:
    options = _checked(options)
    if options.format == "json":
        return json.dumps(_order_payload(order, options), indent=2)
    return _order_to_csv(order, options)


def export_orders(
    orders: Iterable[OrderDTO], options: Optional[ExportOptions] = None
) -> str:
    options = _checked(options)
    orders = list(orders)
    logger.info("order.export", format=options.format, count=len(orders))
    if options.format == "json":
        return json.dumps([_order_payload(o, options) for o in orders], indent=2)
    return _orders_to_csv(orders, options)


def _checked(options: Optional[ExportOptions]) -> ExportOptions:
    options = options or ExportOptions()
    if options.format not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported export format: {options.format}")
    return options


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def _order_payload(order: OrderDTO, options: ExportOptions) -> Dict[str, Any]:
    exclude = {"metadata", "history"}
    if not options.include_items:
        exclude.add("items")
    if not options.include_addresses:
        exclude |= {"shipping_address", "billing_address"}
    if not options.include_payment_info:
        exclude |= {"payment_intent_id", "payment_method_id", "payment_provider"}

    payload = order.model_dump(mode="json", exclude=exclude, exclude_none=True)
    if options.include_status_history:
        payload["status_history"] = [
            h.model_dump(mode="json") for h in order.history
        ]
    return payload


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def _summary_row(order: OrderDTO, options: ExportOptions) -> List[Any]:
    return [
        str(order.id),
        order.order_number,
        order.email or "",
        str(order.status),
        str(order.payment_status),
        order.subtotal_amount,
        order.shipping_cost,
        order.tax_amount,
        order.total_amount,
        order.created_at.strftime(options.date_format),
    ]


def _address_rows(title: str, address: Optional[AddressDTO]) -> List[List[Any]]:
    if address is None:
        return [[title], [f"No {title.lower()} provided"]]
    rows = [[title], ["Name", address.full_name], ["Address", address.address1]]
    if address.address2:
        rows.append(["Address 2", address.address2])
    rows += [
        ["City", address.city],
        ["State", address.state],
        ["Postal Code", address.postal_code],
        ["Country", address.country],
    ]
    if address.phone:
        rows.append(["Phone", address.phone])
    return rows


def _order_to_csv(order: OrderDTO, options: ExportOptions) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(_ORDER_HEADER)
    writer.writerow(_summary_row(order, options))

    if options.include_addresses:
        writer.writerow([])
        writer.writerows(_address_rows("SHIPPING ADDRESS", order.shipping_address))
        writer.writerow([])
        writer.writerows(_address_rows("BILLING ADDRESS", order.billing_address))

    if options.include_payment_info:
        writer.writerow([])
        writer.writerow(["PAYMENT INFORMATION"])
        writer.writerow(["Payment Provider", order.payment_provider or ""])
        writer.writerow(["Payment Intent", order.payment_intent_id or ""])
        writer.writerow(["Payment Method", order.payment_method_id or ""])

    if options.include_items:
        writer.writerow([])
        writer.writerow(["ORDER ITEMS"])
        writer.writerow(["Product ID", "Name", "SKU", "Quantity", "Unit Price", "Total"])
        for item in order.items:
            writer.writerow(
                [
                    item.product_id,
                    item.name,
                    item.sku,
                    item.quantity,
                    item.unit_price,
                    item.total_price,
                ]
            )

    if options.include_status_history:
        writer.writerow([])
        writer.writerow(["STATUS HISTORY"])
        writer.writerow(["Date", "From", "To", "Notes"])
        for entry in order.history:
            writer.writerow(
                [
                    entry.created_at.strftime(options.date_format),
                    entry.old_status or "",
                    entry.new_status,
                    entry.notes,
                ]
            )
    return buffer.getvalue()


def _orders_to_csv(orders: List[OrderDTO], options: ExportOptions) -> str:
    header = list(_ORDER_HEADER)
    if options.include_addresses:
        header += ["Shipping Name", "Shipping Country"]
    if options.include_payment_info:
        header += ["Payment Provider", "Payment Intent"]
    if options.include_items:
        header += ["Item Count", "Items"]

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    for order in orders:
        row = _summary_row(order, options)
        if options.include_addresses:
            address = order.shipping_address
            row += [
                address.full_name if address else "",
                address.country if address else "",
            ]
        if options.include_payment_info:
            row += [order.payment_provider or "", order.payment_intent_id or ""]
        if options.include_items:
            row += [
                sum(item.quantity for item in order.items),
                "; ".join(f"{item.name} x{item.quantity}" for item in order.items),
            ]
        writer.writerow(row)
    return buffer.getvalue()
