"""Order search over an in-memory collection of ``OrderDTO`` snapshots.

Three independent modes:

- ``search_orders``: field filters, optional text query, sort, paginate.
- ``quick_search_orders``: case-insensitive substring match on common fields.
- ``fuzzy_search_orders``: weighted per-field scoring that tolerates typos.

None of them mutates the input collection.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from difflib import SequenceMatcher
from typing import Callable, Iterable, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.dtos import OrderDTO
from shared.domain.clock import as_utc

# Field weights for fuzzy scoring.
ORDER_NUMBER_WEIGHT = 10
EMAIL_WEIGHT = 5
SHIPPING_NAME_WEIGHT = 5
ITEM_NAME_WEIGHT = 3
ITEM_SKU_WEIGHT = 4
NOTES_WEIGHT = 2

# Typo tolerance: a window must be this similar to the term to score at all.
FUZZY_MIN_SIMILARITY = 0.75
FUZZY_MAX_TYPO_SCORE = 0.3

_WORD_SPLIT = re.compile(r"\s+")


class OrderSearchOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    query: Optional[str] = None
    order_ids: List[UUID] = Field(default_factory=list)
    order_numbers: List[str] = Field(default_factory=list)
    customer_ids: List[str] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)
    statuses: List[OrderStatus] = Field(default_factory=list)
    payment_statuses: List[PaymentStatus] = Field(default_factory=list)
    min_date: Optional[datetime] = None
    max_date: Optional[datetime] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    product_ids: List[str] = Field(default_factory=list)
    shipping_countries: List[str] = Field(default_factory=list)
    exact_match: bool = False
    include_notes_in_search: bool = False
    limit: Optional[int] = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)
    sort_by: Literal["date", "total", "status"] = "date"
    sort_direction: Literal["asc", "desc"] = "desc"


class OrderSearchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    orders: List[OrderDTO]
    total: int
    limit: int
    offset: int


# ---------------------------------------------------------------------------
# Structured search
# ---------------------------------------------------------------------------


def search_orders(
    orders: Iterable[OrderDTO], options: Optional[OrderSearchOptions] = None
) -> OrderSearchResult:
    """Filter, text-match, sort and paginate *orders*.

    ``total`` is the number of matches before pagination.  A missing or zero
    ``limit`` returns every match.
    """
    options = options or OrderSearchOptions()
    matches = [
        order
        for order in orders
        if all(predicate(order) for predicate in _filters(options))
    ]

    if options.query:
        matches = [o for o in matches if _matches_query(o, options)]

    matches = _sort(matches, options)
    total = len(matches)
    limit = options.limit or total
    page = matches[options.offset : options.offset + limit]
    return OrderSearchResult(
        orders=page, total=total, limit=limit, offset=options.offset
    )


def _filters(options: OrderSearchOptions) -> List[Callable[[OrderDTO], bool]]:
    predicates: List[Callable[[OrderDTO], bool]] = []

    if options.order_ids:
        ids = set(options.order_ids)
        predicates.append(lambda o: o.id in ids)
    if options.order_numbers:
        numbers = set(options.order_numbers)
        predicates.append(lambda o: o.order_number in numbers)
    if options.customer_ids:
        customers = set(options.customer_ids)
        predicates.append(lambda o: o.user_id is not None and o.user_id in customers)
    if options.emails:
        emails = set(options.emails)
        predicates.append(lambda o: o.email in emails)
    if options.statuses:
        statuses = set(options.statuses)
        predicates.append(lambda o: o.status in statuses)
    if options.payment_statuses:
        payment_statuses = set(options.payment_statuses)
        predicates.append(lambda o: o.payment_status in payment_statuses)
    if options.min_date is not None:
        min_date = as_utc(options.min_date)
        predicates.append(lambda o: as_utc(o.created_at) >= min_date)
    if options.max_date is not None:
        max_date = as_utc(options.max_date)
        predicates.append(lambda o: as_utc(o.created_at) <= max_date)
    if options.min_amount is not None:
        min_amount = options.min_amount
        predicates.append(lambda o: o.total_amount >= min_amount)
    if options.max_amount is not None:
        max_amount = options.max_amount
        predicates.append(lambda o: o.total_amount <= max_amount)
    if options.product_ids:
        products = set(options.product_ids)
        predicates.append(lambda o: any(i.product_id in products for i in o.items))
    if options.shipping_countries:
        countries = set(options.shipping_countries)
        predicates.append(
            lambda o: o.shipping_address is not None
            and o.shipping_address.country in countries
        )
    return predicates


def _matches_query(order: OrderDTO, options: OrderSearchOptions) -> bool:
    fold: Callable[[str], str] = (
        (lambda s: s) if options.exact_match else (lambda s: s.casefold())
    )
    query = fold(options.query or "")

    fields = [order.order_number, order.email or ""]
    if order.shipping_address:
        fields.append(order.shipping_address.full_name)
    if order.billing_address:
        fields.append(order.billing_address.full_name)
    for item in order.items:
        fields.append(item.name)
        if item.sku:
            fields.append(item.sku)
    if options.include_notes_in_search and order.notes:
        fields.append(order.notes)

    return any(query in fold(value) for value in fields)


def _sort(orders: List[OrderDTO], options: OrderSearchOptions) -> List[OrderDTO]:
    if options.sort_by == "total":
        key: Callable[[OrderDTO], object] = lambda o: o.total_amount
    elif options.sort_by == "status":
        key = lambda o: str(o.status)
    else:
        key = lambda o: as_utc(o.created_at)
    return sorted(orders, key=key, reverse=options.sort_direction == "desc")


# ---------------------------------------------------------------------------
# Quick search
# ---------------------------------------------------------------------------


def quick_search_orders(orders: Iterable[OrderDTO], text: str) -> List[OrderDTO]:
    """Substring match on number, email, shipping name, item names and SKUs.

    Blank text matches nothing.  Input order is preserved.
    """
    query = (text or "").strip().lower()
    if not query:
        return []

    def matches(order: OrderDTO) -> bool:
        candidates = [order.order_number, order.email or ""]
        if order.shipping_address:
            candidates.append(order.shipping_address.full_name)
        for item in order.items:
            candidates.append(item.name)
            if item.sku:
                candidates.append(item.sku)
        return any(query in value.lower() for value in candidates)

    return [order for order in orders if matches(order)]


# ---------------------------------------------------------------------------
# Fuzzy search
# ---------------------------------------------------------------------------


def score_field(text: Optional[str], term: str) -> float:
    """Similarity of *term* to *text* in ``[0, 1]``.

    1.0 exact, 0.8 substring, then word-level tiers (0.7 equal word,
    0.6 word prefix, 0.4 word infix), then a typo-tolerant window match
    worth at most 0.3.
    """
    if not text or not term:
        return 0.0
    value = text.lower()
    term = term.lower()

    if value == term:
        return 1.0
    if term in value:
        return 0.8

    for word in _WORD_SPLIT.split(value):
        if word == term:
            return 0.7
        if word.startswith(term):
            return 0.6
        if term in word:
            return 0.4

    return _typo_score(value, term)


def _typo_score(value: str, term: str) -> float:
    size = len(term)
    if len(value) < size:
        return 0.0
    windows = [value[i : i + size] for i in range(len(value) - size + 1)]
    best = max(SequenceMatcher(None, w, term).ratio() for w in windows)
    if best < FUZZY_MIN_SIMILARITY:
        return 0.0
    return best * FUZZY_MAX_TYPO_SCORE


def score_order(order: OrderDTO, terms: Iterable[str]) -> float:
    total = 0.0
    for term in terms:
        total += score_field(order.order_number, term) * ORDER_NUMBER_WEIGHT
        total += score_field(order.email, term) * EMAIL_WEIGHT
        if order.shipping_address:
            total += (
                score_field(order.shipping_address.full_name, term)
                * SHIPPING_NAME_WEIGHT
            )
        total += max(
            (
                score_field(item.name, term) * ITEM_NAME_WEIGHT
                + score_field(item.sku, term) * ITEM_SKU_WEIGHT
                for item in order.items
            ),
            default=0.0,
        )
        if order.notes:
            total += score_field(order.notes, term) * NOTES_WEIGHT
    return total


def fuzzy_search_orders(orders: Iterable[OrderDTO], text: str) -> List[OrderDTO]:
    """Orders with a positive score, best first (ties keep input order)."""
    terms = (text or "").lower().split()
    if not terms:
        return []

    scored = [(score_order(order, terms), order) for order in orders]
    ranked = sorted(
        (pair for pair in scored if pair[0] > 0),
        key=lambda pair: pair[0],
        reverse=True,
    )
    return [order for _, order in ranked]
