"""Half-open [start, end) interval helpers shared by every overlap decision."""

from datetime import UTC, datetime


def as_utc(dt: datetime) -> datetime:
    """Aware UTC datetime. Naive values are taken to already be UTC (DB convention)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    # Touching endpoints (a_end == b_start) do not overlap
    return a_start < b_end and a_end > b_start


def contains(outer_start: datetime, outer_end: datetime, start: datetime, end: datetime) -> bool:
    return outer_start <= start and end <= outer_end
