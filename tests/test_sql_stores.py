import asyncio
from datetime import timedelta
from itertools import combinations

import pytest
import pytest_asyncio
from sqlalchemy import DateTime, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app import models  # noqa: F401 - register tables
from app.core.exceptions import AlreadyExists
from app.core.locks import DoctorLockRegistry
from app.models.appointment import Appointment, AppointmentStatus
from app.models.schedule import ScheduleBlock
from app.services.appointment_service import BookingAdmissionController, BookingRequest, RescheduleRequest
from app.services.availability_service import get_doctor_availability
from app.services.conflict_service import ConflictKind
from app.services.interval import as_utc, overlaps
from app.stores.sql import SqlAppointmentStore, SqlScheduleStore

from conftest import DOCTOR, MONDAY, NOW, at, make_appointment, make_block


@pytest_asyncio.fixture
async def session():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    maker = async_sessionmaker(engine, expire_on_commit=False)
    async with maker() as s:
        yield s
    await engine.dispose()


@pytest.mark.asyncio
async def test_schedule_store_crud(session):
    store = SqlScheduleStore(session)
    late = await store.add_block(make_block(start="14:00", end="15:00"))
    early = await store.add_block(make_block(start="09:00", end="10:00"))
    await store.add_block(make_block(doctor_id="doc-2"))

    blocks = await store.list_blocks(DOCTOR)
    assert [b.schedule_id for b in blocks] == [early.schedule_id, late.schedule_id]
    assert (await store.get_block(late.schedule_id)).start_time.hour == 14

    assert await store.delete_block(late.schedule_id) is True
    assert await store.delete_block(late.schedule_id) is False
    assert [b.schedule_id for b in await store.list_blocks(DOCTOR)] == [early.schedule_id]


@pytest.mark.asyncio
async def test_insert_rejects_overlap(session):
    store = SqlAppointmentStore(session)
    first = await store.insert(make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30")))

    with pytest.raises(AlreadyExists) as info:
        await store.insert(make_appointment(at(MONDAY, "09:15"), at(MONDAY, "09:45"), patient_id="pat-2"))
    assert info.value.existing.appointment_id == first.appointment_id

    touching = await store.insert(make_appointment(at(MONDAY, "09:30"), at(MONDAY, "10:00"), patient_id="pat-2"))
    other_doctor = await store.insert(
        make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30"), doctor_id="doc-2")
    )
    assert touching.appointment_id and other_doctor.appointment_id


@pytest.mark.asyncio
async def test_insert_stores_naive_utc(session):
    store = SqlAppointmentStore(session)
    appt = make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30"))
    appt.start_utc = at(MONDAY, "09:00")
    appt.end_utc = at(MONDAY, "09:30")
    saved = await store.insert(appt)
    assert saved.start_utc.tzinfo is None
    assert saved.start_utc.hour == 9


@pytest.mark.asyncio
async def test_range_filter_and_cancelled_rows(session):
    store = SqlAppointmentStore(session)
    a = await store.insert(make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30")))
    b = await store.insert(make_appointment(at(MONDAY, "11:00"), at(MONDAY, "11:30")))

    in_range = await store.list_by_doctor(DOCTOR, at(MONDAY, "10:00"), at(MONDAY, "12:00"))
    assert [r.appointment_id for r in in_range] == [b.appointment_id]

    await store.update_status(a.appointment_id, AppointmentStatus.CANCELLED.value)
    assert [r.appointment_id for r in await store.list_by_doctor(DOCTOR)] == [b.appointment_id]
    assert {r.appointment_id for r in await store.list_by_patient(a.patient_id)} == {
        a.appointment_id,
        b.appointment_id,
    }

    # The cancelled interval is free again
    again = await store.insert(make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30"), patient_id="pat-2"))
    assert again.appointment_id != a.appointment_id


@pytest.mark.asyncio
async def test_update_missing_returns_none(session):
    store = SqlAppointmentStore(session)
    assert await store.update_status("missing", "confirmed") is None
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_engine_end_to_end_on_sql(session):
    schedules = SqlScheduleStore(session)
    appointments = SqlAppointmentStore(session)
    await schedules.add_block(make_block(start="09:00", end="10:00"))
    controller = BookingAdmissionController(schedules, appointments)

    booked = await controller.admit(
        BookingRequest(doctor_id=DOCTOR, patient_id="pat-1", start=at(MONDAY, "09:00"), end=at(MONDAY, "09:30"))
    )
    assert booked.committed

    clash = await controller.admit(
        BookingRequest(doctor_id=DOCTOR, patient_id="pat-2", start=at(MONDAY, "09:00"), end=at(MONDAY, "09:30"))
    )
    assert clash.outcome is ConflictKind.OVERLAP

    days = await get_doctor_availability(
        DOCTOR,
        MONDAY,
        MONDAY + timedelta(days=1),
        schedules=schedules,
        appointments=appointments,
        now=NOW,
    )
    assert [(s.start, s.end) for s in days[0].slots] == [(at(MONDAY, "09:30"), at(MONDAY, "10:00"))]


@pytest.mark.parametrize(
    "column",
    [
        Appointment.__table__.c.start_utc,
        Appointment.__table__.c.end_utc,
        Appointment.__table__.c.created_at,
        ScheduleBlock.__table__.c.updated_at,
    ],
)
def test_instant_columns_are_naive_datetime(column):
    assert type(column.type) is DateTime
    assert column.type.timezone is False


@pytest.mark.asyncio
async def test_update_block(session):
    store = SqlScheduleStore(session)
    block = await store.add_block(make_block(start="09:00", end="10:00"))
    block.end_time = block.end_time.replace(hour=11)
    saved = await store.update_block(block)
    assert (await store.get_block(saved.schedule_id)).end_time.hour == 11


@pytest.mark.asyncio
async def test_reschedule_checks_other_rows_only(session):
    store = SqlAppointmentStore(session)
    first = await store.insert(make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30")))
    other = await store.insert(make_appointment(at(MONDAY, "10:00"), at(MONDAY, "10:30"), patient_id="pat-2"))

    moved = await store.reschedule(first.appointment_id, at(MONDAY, "09:15"), at(MONDAY, "09:45"), notes="later")
    assert moved.start_utc == at(MONDAY, "09:15").replace(tzinfo=None)
    assert moved.notes == "later"

    with pytest.raises(AlreadyExists) as info:
        await store.reschedule(first.appointment_id, at(MONDAY, "09:45"), at(MONDAY, "10:15"))
    assert info.value.existing.appointment_id == other.appointment_id
    assert await store.reschedule("missing", at(MONDAY, "12:00"), at(MONDAY, "12:30")) is None


@pytest.mark.asyncio
async def test_reschedule_through_controller_on_sql(session):
    schedules = SqlScheduleStore(session)
    appointments = SqlAppointmentStore(session)
    await schedules.add_block(make_block(start="09:00", end="12:00"))
    controller = BookingAdmissionController(schedules, appointments, locks=DoctorLockRegistry(timeout_s=2.0))
    booked = await controller.admit(
        BookingRequest(doctor_id=DOCTOR, patient_id="pat-1", start=at(MONDAY, "09:00"), end=at(MONDAY, "09:30"))
    )

    result = await controller.reschedule(
        RescheduleRequest(booked.appointment.appointment_id, start=at(MONDAY, "11:00"), end=at(MONDAY, "11:30"))
    )

    assert result.committed
    fetched = await appointments.get(booked.appointment.appointment_id)
    assert as_utc(fetched.start_utc) == at(MONDAY, "11:00")


class TestSeparateSessions:
    """One session per request, as the API runs it, sharing one lock registry."""

    @pytest_asyncio.fixture
    async def maker(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        yield async_sessionmaker(engine, expire_on_commit=False)
        await engine.dispose()

    @staticmethod
    async def _book(maker, locks, patient_id, start, end, teardown_delay=0.0):
        async with maker() as s:
            controller = BookingAdmissionController(SqlScheduleStore(s), SqlAppointmentStore(s), locks=locks)
            result = await controller.admit(
                BookingRequest(doctor_id=DOCTOR, patient_id=patient_id, start=start, end=end)
            )
            # Request teardown commits only after the handler has returned
            await asyncio.sleep(teardown_delay)
            await s.commit()
            return result

    @staticmethod
    async def _stored(maker):
        async with maker() as s:
            result = await s.execute(select(Appointment).where(Appointment.doctor_id == DOCTOR))
            return list(result.scalars().all())

    @pytest.mark.asyncio
    async def test_slow_teardown_does_not_let_second_booking_in(self, maker):
        locks = DoctorLockRegistry(timeout_s=5.0)
        start, end = at(MONDAY, "09:00"), at(MONDAY, "09:30")

        results = await asyncio.gather(
            self._book(maker, locks, "pat-a", start, end, teardown_delay=0.3),
            self._book(maker, locks, "pat-b", start, end),
        )

        assert sum(r.committed for r in results) == 1
        assert [r.outcome for r in results if not r.committed] == [ConflictKind.OVERLAP]
        assert len(await self._stored(maker)) == 1

    @pytest.mark.asyncio
    async def test_many_sessions_staggered_intervals(self, maker):
        locks = DoctorLockRegistry(timeout_s=5.0)
        base = at(MONDAY, "09:00")

        await asyncio.gather(
            *(
                self._book(
                    maker,
                    locks,
                    f"pat-{i}",
                    base + timedelta(minutes=10 * i),
                    base + timedelta(minutes=10 * i + 30),
                    teardown_delay=0.05,
                )
                for i in range(6)
            )
        )

        rows = await self._stored(maker)
        assert rows
        for a, b in combinations(rows, 2):
            assert not overlaps(as_utc(a.start_utc), as_utc(a.end_utc), as_utc(b.start_utc), as_utc(b.end_utc))
