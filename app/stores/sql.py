import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AlreadyExists, StoreUnavailable
from app.models.appointment import Appointment, AppointmentStatus
from app.models.schedule import ScheduleBlock
from app.services.interval import to_naive_utc

logger = logging.getLogger(__name__)


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        raise AlreadyExists(f"{operation} conflicts with an existing row") from exc
    except (OperationalError, DBAPIError) as exc:
        logger.exception("Store operation %s failed: %s", operation, exc)
        raise StoreUnavailable(f"{operation} failed: {type(exc).__name__}") from exc


class SqlScheduleStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_blocks(self, doctor_id: str) -> list[ScheduleBlock]:
        with _store_errors("list_blocks"):
            result = await self.session.execute(
                select(ScheduleBlock)
                .where(ScheduleBlock.doctor_id == doctor_id)
                .order_by(ScheduleBlock.day_of_week, ScheduleBlock.start_time)
            )
            return list(result.scalars().all())

    async def get_block(self, schedule_id: str) -> ScheduleBlock | None:
        with _store_errors("get_block"):
            return await self.session.get(ScheduleBlock, schedule_id)

    async def add_block(self, block: ScheduleBlock) -> ScheduleBlock:
        with _store_errors("add_block"):
            self.session.add(block)
            await self.session.flush()
            await self.session.refresh(block)
            return block

    async def update_block(self, block: ScheduleBlock) -> ScheduleBlock:
        block.updated_at = _utc_naive_now()
        with _store_errors("update_block"):
            self.session.add(block)
            await self.session.flush()
            await self.session.refresh(block)
            return block

    async def delete_block(self, schedule_id: str) -> bool:
        with _store_errors("delete_block"):
            result = await self.session.execute(
                delete(ScheduleBlock).where(ScheduleBlock.schedule_id == schedule_id)
            )
            await self.session.flush()
            return bool(result.rowcount)


class SqlAppointmentStore:
    """Appointment rows in SQL.

    insert() and reschedule() run the overlap check and the write in one
    transaction and commit it before returning, so the row is visible to the
    next admission for the doctor as soon as the doctor's in-process lock is
    released. On PostgreSQL the doctor's rows are additionally guarded by a
    transaction-scoped advisory lock, which serialises writers across
    processes. Other dialects get no cross-process guard: run a single
    process against them.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _is_postgres(self) -> bool:
        bind = self.session.bind
        return bind is not None and bind.dialect.name == "postgresql"

    async def _lock_doctor(self, doctor_id: str) -> None:
        if self._is_postgres():
            await self.session.execute(select(func.pg_advisory_xact_lock(func.hashtext(doctor_id))))

    async def _first_overlap(
        self,
        doctor_id: str,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> Appointment | None:
        q = select(Appointment).where(
            Appointment.doctor_id == doctor_id,
            Appointment.status != AppointmentStatus.CANCELLED.value,
            Appointment.start_utc < end,
            Appointment.end_utc > start,
        )
        if exclude_id is not None:
            q = q.where(Appointment.appointment_id != exclude_id)
        result = await self.session.execute(q.order_by(Appointment.start_utc).limit(1))
        return result.scalar_one_or_none()

    async def list_by_doctor(
        self,
        doctor_id: str,
        range_start: datetime | None = None,
        range_end: datetime | None = None,
    ) -> list[Appointment]:
        q = select(Appointment).where(
            Appointment.doctor_id == doctor_id,
            Appointment.status != AppointmentStatus.CANCELLED.value,
        )
        if range_start is not None:
            q = q.where(Appointment.end_utc > to_naive_utc(range_start))
        if range_end is not None:
            q = q.where(Appointment.start_utc < to_naive_utc(range_end))
        with _store_errors("list_by_doctor"):
            result = await self.session.execute(q.order_by(Appointment.start_utc))
            return list(result.scalars().all())

    async def list_by_patient(self, patient_id: str) -> list[Appointment]:
        with _store_errors("list_by_patient"):
            result = await self.session.execute(
                select(Appointment).where(Appointment.patient_id == patient_id).order_by(Appointment.start_utc)
            )
            return list(result.scalars().all())

    async def get(self, appointment_id: str) -> Appointment | None:
        with _store_errors("get"):
            return await self.session.get(Appointment, appointment_id)

    async def insert(self, appointment: Appointment) -> Appointment:
        appointment.start_utc = to_naive_utc(appointment.start_utc)
        appointment.end_utc = to_naive_utc(appointment.end_utc)
        with _store_errors("insert"):
            await self._lock_doctor(appointment.doctor_id)
            existing = await self._first_overlap(
                appointment.doctor_id, appointment.start_utc, appointment.end_utc
            )
            if existing is not None:
                raise AlreadyExists(
                    f"Doctor {appointment.doctor_id} already has appointment {existing.appointment_id} in this interval",
                    existing=existing,
                )
            self.session.add(appointment)
            await self.session.commit()
            await self.session.refresh(appointment)
            return appointment

    async def reschedule(
        self,
        appointment_id: str,
        start: datetime,
        end: datetime,
        appointment_type: str | None = None,
        notes: str | None = None,
    ) -> Appointment | None:
        with _store_errors("reschedule"):
            appointment = await self.session.get(Appointment, appointment_id)
            if appointment is None:
                return None
            start, end = to_naive_utc(start), to_naive_utc(end)
            await self._lock_doctor(appointment.doctor_id)
            existing = await self._first_overlap(appointment.doctor_id, start, end, exclude_id=appointment_id)
            if existing is not None:
                raise AlreadyExists(
                    f"Doctor {appointment.doctor_id} already has appointment {existing.appointment_id} in this interval",
                    existing=existing,
                )
            appointment.start_utc = start
            appointment.end_utc = end
            if appointment_type is not None:
                appointment.appointment_type = appointment_type
            if notes is not None:
                appointment.notes = notes
            appointment.updated_at = _utc_naive_now()
            self.session.add(appointment)
            await self.session.commit()
            await self.session.refresh(appointment)
            return appointment

    async def update_status(self, appointment_id: str, status: str) -> Appointment | None:
        with _store_errors("update_status"):
            appointment = await self.session.get(Appointment, appointment_id)
            if appointment is None:
                return None
            appointment.status = status
            appointment.updated_at = _utc_naive_now()
            self.session.add(appointment)
            await self.session.flush()
            return appointment
