from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta, tzinfo

from app.core.exceptions import InvalidScheduleBlock
from app.models.availability import CandidateSlot
from app.models.schedule import ScheduleBlock
from app.services.interval import as_utc, overlaps

Interval = tuple[datetime, datetime]


def day_of_week(d: date) -> int:
    """0 = Sunday .. 6 = Saturday, matching ScheduleBlock.day_of_week."""
    return (d.weekday() + 1) % 7


def block_bounds(block: ScheduleBlock, d: date, tz: tzinfo) -> Interval:
    """Start/end of the block on date d, as aware UTC instants."""
    start = datetime.combine(d, block.start_time, tzinfo=tz).astimezone(UTC)
    end = datetime.combine(d, block.end_time, tzinfo=tz).astimezone(UTC)
    return start, end


def day_bounds(d: date, tz: tzinfo) -> Interval:
    """Midnight-to-midnight of date d in tz, as aware UTC instants."""
    start = datetime.combine(d, datetime.min.time(), tzinfo=tz)
    end = datetime.combine(d + timedelta(days=1), datetime.min.time(), tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)


def _slot_times_for_block(block_start: datetime, block_end: datetime, duration: timedelta) -> list[Interval]:
    """Fixed-length slots from block_start; a trailing remainder shorter than duration is dropped."""
    slots: list[Interval] = []
    current = block_start
    while current + duration <= block_end:
        slots.append((current, current + duration))
        current += duration
    return slots


def generate_slots(
    block: ScheduleBlock,
    target_date: date,
    now: datetime,
    busy: Iterable[Interval],
    tz: tzinfo = UTC,
) -> list[CandidateSlot]:
    """Free slots of one schedule block on one date, ascending by start.

    A block whose end is already at or before `now` contributes nothing for the
    date, even if only part of it has passed. Pure function: no store access.
    """
    if block.slot_duration_minutes <= 0:
        raise InvalidScheduleBlock(f"Schedule {block.schedule_id} has a non-positive slot duration")
    block_start, block_end = block_bounds(block, target_date, tz)
    if block_end <= as_utc(now):
        return []

    busy_utc = [(as_utc(s), as_utc(e)) for s, e in busy]
    duration = timedelta(minutes=block.slot_duration_minutes)
    out: list[CandidateSlot] = []
    for start, end in _slot_times_for_block(block_start, block_end, duration):
        if any(overlaps(start, end, b_start, b_end) for b_start, b_end in busy_utc):
            continue
        out.append(CandidateSlot(start=start, end=end))
    return out
