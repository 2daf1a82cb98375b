from datetime import UTC, date, datetime, time, timedelta

import pytest

from app.core.locks import DoctorLockRegistry
from app.models.appointment import Appointment, AppointmentStatus
from app.models.schedule import ScheduleBlock
from app.stores.memory import InMemoryAppointmentStore, InMemoryScheduleStore

DOCTOR = "doc-1"
PATIENT = "pat-1"

# 2030-01-07 is a Monday (day_of_week == 1)
MONDAY = date(2030, 1, 7)
NOW = datetime(2029, 12, 1, 8, 0, tzinfo=UTC)


def at(d: date, hhmm: str) -> datetime:
    hour, minute = (int(p) for p in hhmm.split(":"))
    return datetime.combine(d, time(hour, minute), tzinfo=UTC)


def make_block(
    day_of_week: int = 1,
    start: str = "09:00",
    end: str = "10:00",
    slot_duration_minutes: int = 30,
    doctor_id: str = DOCTOR,
) -> ScheduleBlock:
    sh, sm = (int(p) for p in start.split(":"))
    eh, em = (int(p) for p in end.split(":"))
    return ScheduleBlock(
        doctor_id=doctor_id,
        day_of_week=day_of_week,
        start_time=time(sh, sm),
        end_time=time(eh, em),
        slot_duration_minutes=slot_duration_minutes,
    )


def make_appointment(
    start: datetime,
    end: datetime,
    doctor_id: str = DOCTOR,
    patient_id: str = PATIENT,
    status: AppointmentStatus = AppointmentStatus.SCHEDULED,
) -> Appointment:
    return Appointment(
        doctor_id=doctor_id,
        patient_id=patient_id,
        start_utc=start.astimezone(UTC).replace(tzinfo=None),
        end_utc=end.astimezone(UTC).replace(tzinfo=None),
        status=status.value,
    )


def future_monday(weeks_ahead: int = 2) -> date:
    """A Monday safely in the future relative to the real clock."""
    d = date.today() + timedelta(weeks=weeks_ahead)
    return d + timedelta(days=(7 - d.weekday()) % 7)


@pytest.fixture
def schedule_store() -> InMemoryScheduleStore:
    return InMemoryScheduleStore()


@pytest.fixture
def appointment_store() -> InMemoryAppointmentStore:
    return InMemoryAppointmentStore()


@pytest.fixture
def locks() -> DoctorLockRegistry:
    return DoctorLockRegistry(timeout_s=2.0)
