"""Timezone normalisation shared by the order search and reporting code."""

from datetime import datetime, timezone as dt_timezone

from django.utils import timezone


def as_utc(moment: datetime) -> datetime:
    """Return *moment* in UTC, reading a naive value as UTC wall time."""
    if timezone.is_naive(moment):
        return moment.replace(tzinfo=dt_timezone.utc)
    return moment.astimezone(dt_timezone.utc)
