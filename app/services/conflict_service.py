"""
Conflict detection for proposed appointments.

Checks, in this order:
- exact duplicate of an existing booking (an idempotent retry, not an error)
- overlap with an existing non-cancelled booking of the same doctor
- containment in the doctor's working hours, when the doctor has any

Pure functions over already-loaded data; the admission controller decides
what to do with the outcome.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo
from enum import Enum

from app.core.exceptions import InvalidInterval
from app.models.appointment import Appointment
from app.models.schedule import ScheduleBlock
from app.services.interval import as_utc, contains, overlaps
from app.services.slot_service import block_bounds, day_of_week


class ConflictKind(str, Enum):
    NO_CONFLICT = "no_conflict"
    EXACT_DUPLICATE = "exact_duplicate"
    OVERLAP = "overlap"
    OUTSIDE_WORKING_HOURS = "outside_working_hours"


@dataclass(frozen=True)
class ConflictOutcome:
    kind: ConflictKind
    existing: Appointment | None = None

    @property
    def ok(self) -> bool:
        return self.kind is ConflictKind.NO_CONFLICT


NO_CONFLICT = ConflictOutcome(ConflictKind.NO_CONFLICT)


def validate_interval(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start, end = as_utc(start), as_utc(end)
    if start >= end:
        raise InvalidInterval("End time must be after start time")
    return start, end


def _is_exact_duplicate(appt: Appointment, start: datetime, end: datetime, patient_id: str | None) -> bool:
    if as_utc(appt.start_utc) != start or as_utc(appt.end_utc) != end:
        return False
    return patient_id is None or appt.patient_id == patient_id


def find_booking_conflict(
    doctor_id: str,
    start: datetime,
    end: datetime,
    existing: Iterable[Appointment],
    patient_id: str | None = None,
) -> ConflictOutcome:
    """Duplicate/overlap part of the check. start and end must be aware UTC."""
    candidates = [a for a in existing if a.doctor_id == doctor_id and a.is_active]
    for appt in candidates:
        if _is_exact_duplicate(appt, start, end, patient_id):
            return ConflictOutcome(ConflictKind.EXACT_DUPLICATE, appt)
    for appt in candidates:
        if overlaps(start, end, as_utc(appt.start_utc), as_utc(appt.end_utc)):
            return ConflictOutcome(ConflictKind.OVERLAP, appt)
    return NO_CONFLICT


def is_within_schedule(
    start: datetime,
    end: datetime,
    schedule_blocks: list[ScheduleBlock],
    tz: tzinfo = UTC,
) -> bool:
    """True when [start, end) fits inside one block on start's weekday.

    A doctor without any block at all has no working-hours constraint.
    """
    if not schedule_blocks:
        return True
    local_date = start.astimezone(tz).date()
    weekday = day_of_week(local_date)
    for block in schedule_blocks:
        if block.day_of_week != weekday:
            continue
        block_start, block_end = block_bounds(block, local_date, tz)
        if contains(block_start, block_end, start, end):
            return True
    return False


def check_conflict(
    doctor_id: str,
    proposed_start: datetime,
    proposed_end: datetime,
    existing_appointments: Iterable[Appointment],
    *,
    patient_id: str | None = None,
    schedule_blocks: list[ScheduleBlock] | None = None,
    tz: tzinfo = UTC,
) -> ConflictOutcome:
    """
    Decide whether a proposed appointment may be booked.

    Args:
        doctor_id: the doctor being booked
        proposed_start: start instant (naive values are taken as UTC)
        proposed_end: end instant
        existing_appointments: the doctor's bookings; cancelled ones are ignored
        patient_id: when given, an identical booking only counts as a duplicate
            if it belongs to the same patient
        schedule_blocks: all of the doctor's blocks, or None to skip the
            working-hours check
        tz: reference timezone for the blocks' wall-clock times

    Returns:
        ConflictOutcome. Only the first conflicting appointment is reported.

    Raises:
        InvalidInterval: proposed_start >= proposed_end
    """
    start, end = validate_interval(proposed_start, proposed_end)
    outcome = find_booking_conflict(doctor_id, start, end, existing_appointments, patient_id)
    if not outcome.ok:
        return outcome
    if schedule_blocks is not None and not is_within_schedule(start, end, schedule_blocks, tz):
        return ConflictOutcome(ConflictKind.OUTSIDE_WORKING_HOURS)
    return NO_CONFLICT
