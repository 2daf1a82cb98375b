import logging
from collections import defaultdict
from datetime import UTC, date, datetime, timedelta, tzinfo

from app.core.config import settings
from app.core.exceptions import InvalidRange
from app.models.appointment import Appointment
from app.models.availability import CandidateSlot, DayAvailability
from app.models.schedule import ScheduleBlock
from app.services.interval import as_utc, overlaps
from app.services.slot_service import Interval, day_bounds, day_of_week, generate_slots
from app.stores.base import AppointmentStore, ScheduleStore, call_store

logger = logging.getLogger(__name__)


def _group_by_weekday(blocks: list[ScheduleBlock]) -> dict[int, list[ScheduleBlock]]:
    by_day: dict[int, list[ScheduleBlock]] = defaultdict(list)
    for block in blocks:
        by_day[block.day_of_week].append(block)
    return by_day


def _busy_intervals(appointments: list[Appointment]) -> list[Interval]:
    return [(as_utc(a.start_utc), as_utc(a.end_utc)) for a in appointments if a.is_active]


def build_availability(
    blocks: list[ScheduleBlock],
    appointments: list[Appointment],
    range_start: date,
    range_end: date,
    now: datetime,
    tz: tzinfo = UTC,
) -> list[DayAvailability]:
    """Free slots per date over [range_start, range_end), from already-loaded data.

    Dates without any free slot are left out. Identical slots coming from
    overlapping blocks are emitted once.
    """
    if range_start >= range_end:
        raise InvalidRange("End date must be after start date")

    blocks_by_day = _group_by_weekday(blocks)
    busy = _busy_intervals(appointments)
    result: list[DayAvailability] = []

    current = range_start
    while current < range_end:
        day_blocks = blocks_by_day.get(day_of_week(current))
        if day_blocks:
            day_start, day_end = day_bounds(current, tz)
            day_busy = [(s, e) for s, e in busy if overlaps(s, e, day_start, day_end)]
            seen: dict[tuple[datetime, datetime], CandidateSlot] = {}
            for block in day_blocks:
                for slot in generate_slots(block, current, now, day_busy, tz):
                    seen.setdefault(slot.key, slot)
            if seen:
                slots = sorted(seen.values(), key=lambda s: s.start)
                result.append(DayAvailability(date=current, slots=slots))
        current += timedelta(days=1)
    return result


async def get_doctor_availability(
    doctor_id: str,
    range_start: date,
    range_end: date,
    *,
    schedules: ScheduleStore,
    appointments: AppointmentStore,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> list[DayAvailability]:
    """Bookable slots for a doctor over the half-open date range [range_start, range_end).

    Read-only: takes a snapshot of the doctor's schedule blocks and of the
    non-cancelled appointments intersecting the range. Needs no locking.
    """
    if range_start >= range_end:
        raise InvalidRange("End date must be after start date")
    if (range_end - range_start).days > settings.max_availability_days:
        raise InvalidRange(f"Date range may span at most {settings.max_availability_days} days")

    tz = tz or settings.reference_tz
    now = now or datetime.now(UTC)
    window_start, _ = day_bounds(range_start, tz)
    window_end, _ = day_bounds(range_end, tz)

    blocks = await call_store(schedules.list_blocks(doctor_id))
    if not blocks:
        logger.debug("Doctor %s has no schedule blocks; availability is empty", doctor_id)
        return []
    booked = await call_store(appointments.list_by_doctor(doctor_id, window_start, window_end))

    result = build_availability(blocks, booked, range_start, range_end, now, tz)
    logger.debug(
        "Availability for doctor %s %s..%s: %d day(s), %d slot(s)",
        doctor_id,
        range_start,
        range_end,
        len(result),
        sum(len(d.slots) for d in result),
    )
    return result
