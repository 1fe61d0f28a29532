"""Order reporting: summaries, distributions and time series.

Pure aggregation over ``OrderDTO`` snapshots.  Money stays ``Decimal``;
percentages are ``float``.  Interval keys are computed in UTC.
"""

from __future__ import annotations

import calendar
import math
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional

from django.utils import timezone
from pydantic import BaseModel, ConfigDict, model_validator

from modules.orders.constants import CENT
from modules.orders.dtos import OrderDTO, OrderItemDTO
from shared.domain.clock import as_utc

ZERO = Decimal("0.00")


class ReportPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class TimeInterval(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class DateRange(BaseModel):
    """Inclusive ``[start, end]`` range."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def start_not_after_end(self) -> DateRange:
        if as_utc(self.start) > as_utc(self.end):
            raise ValueError("Date range start must not be after its end.")
        return self

    def contains(self, moment: datetime) -> bool:
        return as_utc(self.start) <= as_utc(moment) <= as_utc(self.end)


class SalesSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_orders: int = 0
    total_revenue: Decimal = ZERO
    average_order_value: Decimal = ZERO
    total_items: int = 0
    total_shipping: Decimal = ZERO
    total_tax: Decimal = ZERO


class StatusShare(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    count: int
    percentage: float


class ProductSales(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str
    name: str
    sku: str
    quantity: int
    revenue: Decimal
    average_unit_price: Decimal


class TimeSeriesPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str
    orders: int
    revenue: Decimal


class OrderReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    period: ReportPeriod
    date_range: DateRange
    interval: TimeInterval
    summary: SalesSummary
    status_distribution: List[StatusShare]
    top_products: List[ProductSales]
    time_series: List[TimeSeriesPoint]


class PerformanceChanges(BaseModel):
    model_config = ConfigDict(frozen=True)

    orders_change: int
    orders_change_percent: float
    revenue_change: Decimal
    revenue_change_percent: float
    aov_change: Decimal
    aov_change_percent: float


class PerformanceComparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    current: SalesSummary
    previous: SalesSummary
    changes: PerformanceChanges


# ---------------------------------------------------------------------------
# Date ranges
# ---------------------------------------------------------------------------


def date_range_for_period(
    period: ReportPeriod, reference: Optional[datetime] = None
) -> DateRange:
    """Preset range ending at the end of *reference*'s day.

    ``CUSTOM`` yields the reference day alone; callers supply their own.
    """
    reference = as_utc(reference or timezone.now())
    day = reference.date()
    end = datetime.combine(day, time.max, tzinfo=dt_timezone.utc)

    if period == ReportPeriod.WEEKLY:
        start_day = day - timedelta(days=6)
    elif period == ReportPeriod.MONTHLY:
        start_day = _shift_months(day, -1)
    elif period == ReportPeriod.QUARTERLY:
        start_day = _shift_months(day, -3)
    elif period == ReportPeriod.YEARLY:
        start_day = _shift_months(day, -12)
    else:
        start_day = day

    start = datetime.combine(start_day, time.min, tzinfo=dt_timezone.utc)
    return DateRange(start=start, end=end)


def filter_orders_by_date_range(
    orders: Iterable[OrderDTO], date_range: DateRange
) -> List[OrderDTO]:
    return [order for order in orders if date_range.contains(order.created_at)]


# ---------------------------------------------------------------------------
# Aggregations
# ---------------------------------------------------------------------------


def sales_summary(orders: Iterable[OrderDTO]) -> SalesSummary:
    orders = list(orders)
    if not orders:
        return SalesSummary()

    revenue = sum((o.total_amount for o in orders), ZERO)
    return SalesSummary(
        total_orders=len(orders),
        total_revenue=revenue,
        average_order_value=(revenue / len(orders)).quantize(CENT),
        total_items=sum(item.quantity for o in orders for item in o.items),
        total_shipping=sum((o.shipping_cost for o in orders), ZERO),
        total_tax=sum((o.tax_amount for o in orders), ZERO),
    )


def status_distribution(orders: Iterable[OrderDTO]) -> List[StatusShare]:
    """Count and share of every status that occurs at least once."""
    counts = Counter(str(order.status) for order in orders)
    total = sum(counts.values())
    return [
        StatusShare(status=status, count=count, percentage=count / total * 100)
        for status, count in counts.items()
    ]


def product_sales(orders: Iterable[OrderDTO]) -> List[ProductSales]:
    """Per-product quantity and revenue, highest revenue first."""
    first_seen: Dict[str, OrderItemDTO] = {}
    quantities: Counter = Counter()
    revenues: Dict[str, Decimal] = {}
    for order in orders:
        for item in order.items:
            first_seen.setdefault(item.product_id, item)
            quantities[item.product_id] += item.quantity
            revenues[item.product_id] = (
                revenues.get(item.product_id, ZERO) + item.total_price
            )

    rows = [
        ProductSales(
            product_id=product_id,
            name=item.name,
            sku=item.sku or "SKU-UNKNOWN",
            quantity=quantities[product_id],
            revenue=revenues[product_id],
            average_unit_price=(revenues[product_id] / quantities[product_id]).quantize(
                CENT
            ),
        )
        for product_id, item in first_seen.items()
    ]
    return sorted(rows, key=lambda row: row.revenue, reverse=True)


def time_series(
    orders: Iterable[OrderDTO],
    date_range: DateRange,
    interval: TimeInterval = TimeInterval.DAY,
) -> List[TimeSeriesPoint]:
    """Dense series: one point per interval in the range, zero-filled.

    Week buckets start on Monday; month buckets are ``YYYY-MM``.
    """
    buckets: Dict[date, List[OrderDTO]] = {}
    for order in orders:
        key = _bucket_start(as_utc(order.created_at).date(), interval)
        buckets.setdefault(key, []).append(order)

    points: List[TimeSeriesPoint] = []
    cursor = _bucket_start(as_utc(date_range.start).date(), interval)
    last = _bucket_start(as_utc(date_range.end).date(), interval)
    while cursor <= last:
        bucket = buckets.get(cursor, [])
        points.append(
            TimeSeriesPoint(
                date=_bucket_label(cursor, interval),
                orders=len(bucket),
                revenue=sum((o.total_amount for o in bucket), ZERO),
            )
        )
        cursor = _next_bucket(cursor, interval)
    return points


def interval_for_period(period: ReportPeriod, date_range: DateRange) -> TimeInterval:
    if period in (ReportPeriod.DAILY, ReportPeriod.WEEKLY):
        return TimeInterval.DAY
    if period in (ReportPeriod.MONTHLY, ReportPeriod.QUARTERLY):
        return TimeInterval.WEEK
    if period == ReportPeriod.YEARLY:
        return TimeInterval.MONTH

    span = as_utc(date_range.end) - as_utc(date_range.start)
    days = math.ceil(span.total_seconds() / 86400)
    if days <= 31:
        return TimeInterval.DAY
    if days <= 120:
        return TimeInterval.WEEK
    return TimeInterval.MONTH


def generate_report(
    orders: Iterable[OrderDTO],
    period: ReportPeriod = ReportPeriod.MONTHLY,
    custom_range: Optional[DateRange] = None,
    reference: Optional[datetime] = None,
) -> OrderReport:
    date_range = custom_range or date_range_for_period(period, reference)
    selected = filter_orders_by_date_range(orders, date_range)
    interval = interval_for_period(period, date_range)
    return OrderReport(
        period=period,
        date_range=date_range,
        interval=interval,
        summary=sales_summary(selected),
        status_distribution=status_distribution(selected),
        top_products=product_sales(selected),
        time_series=time_series(selected, date_range, interval),
    )


def compare_performance(
    orders: Iterable[OrderDTO],
    current_range: DateRange,
    previous_range: DateRange,
) -> PerformanceComparison:
    """Summaries for two ranges and their deltas.

    Percentage deltas are 0 when the previous value is 0.
    """
    orders = list(orders)
    current = sales_summary(filter_orders_by_date_range(orders, current_range))
    previous = sales_summary(filter_orders_by_date_range(orders, previous_range))

    orders_change = current.total_orders - previous.total_orders
    revenue_change = current.total_revenue - previous.total_revenue
    aov_change = current.average_order_value - previous.average_order_value

    return PerformanceComparison(
        current=current,
        previous=previous,
        changes=PerformanceChanges(
            orders_change=orders_change,
            orders_change_percent=_percent(orders_change, previous.total_orders),
            revenue_change=revenue_change,
            revenue_change_percent=_percent(revenue_change, previous.total_revenue),
            aov_change=aov_change,
            aov_change_percent=_percent(aov_change, previous.average_order_value),
        ),
    )


def format_sales_summary(summary: SalesSummary) -> str:
    return (
        "Sales Summary:\n"
        "--------------\n"
        f"Total Orders: {summary.total_orders}\n"
        f"Total Revenue: {format_currency(summary.total_revenue)}\n"
        f"Average Order Value: {format_currency(summary.average_order_value)}\n"
        f"Total Items Sold: {summary.total_items}\n"
        f"Total Shipping: {format_currency(summary.total_shipping)}\n"
        f"Total Tax: {format_currency(summary.total_tax)}\n"
    )


def format_currency(amount: Decimal) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount).quantize(CENT):,}"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _percent(change, previous) -> float:
    if not previous:
        return 0.0
    return float(change) / float(previous) * 100


def _shift_months(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _bucket_start(day: date, interval: TimeInterval) -> date:
    if interval == TimeInterval.WEEK:
        return day - timedelta(days=day.weekday())
    if interval == TimeInterval.MONTH:
        return day.replace(day=1)
    return day


def _next_bucket(day: date, interval: TimeInterval) -> date:
    if interval == TimeInterval.WEEK:
        return day + timedelta(days=7)
    if interval == TimeInterval.MONTH:
        return _shift_months(day, 1)
    return day + timedelta(days=1)


def _bucket_label(day: date, interval: TimeInterval) -> str:
    if interval == TimeInterval.MONTH:
        return f"{day:%Y-%m}"
    return day.isoformat()
