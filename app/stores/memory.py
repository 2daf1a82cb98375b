import asyncio
from datetime import UTC, datetime

from app.core.exceptions import AlreadyExists
from app.models.appointment import Appointment
from app.models.schedule import ScheduleBlock
from app.services.interval import as_utc, overlaps, to_naive_utc


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class InMemoryScheduleStore:
    def __init__(self, blocks: list[ScheduleBlock] | None = None) -> None:
        self._blocks: dict[str, ScheduleBlock] = {}
        for block in blocks or []:
            self._blocks[block.schedule_id] = block

    async def list_blocks(self, doctor_id: str) -> list[ScheduleBlock]:
        return sorted(
            (b for b in self._blocks.values() if b.doctor_id == doctor_id),
            key=lambda b: (b.day_of_week, b.start_time),
        )

    async def get_block(self, schedule_id: str) -> ScheduleBlock | None:
        return self._blocks.get(schedule_id)

    async def add_block(self, block: ScheduleBlock) -> ScheduleBlock:
        self._blocks[block.schedule_id] = block
        return block

    async def update_block(self, block: ScheduleBlock) -> ScheduleBlock:
        block.updated_at = _utc_naive_now()
        self._blocks[block.schedule_id] = block
        return block

    async def delete_block(self, schedule_id: str) -> bool:
        return self._blocks.pop(schedule_id, None) is not None


class InMemoryAppointmentStore:
    """Dict-backed store. insert() and reschedule() check and write under one lock."""

    def __init__(self, appointments: list[Appointment] | None = None) -> None:
        self._rows: dict[str, Appointment] = {}
        self._lock = asyncio.Lock()
        for appt in appointments or []:
            self._rows[appt.appointment_id] = appt

    def _active_for_doctor(self, doctor_id: str) -> list[Appointment]:
        return [a for a in self._rows.values() if a.doctor_id == doctor_id and a.is_active]

    async def list_by_doctor(
        self,
        doctor_id: str,
        range_start: datetime | None = None,
        range_end: datetime | None = None,
    ) -> list[Appointment]:
        rows = self._active_for_doctor(doctor_id)
        if range_start is not None:
            rows = [a for a in rows if as_utc(a.end_utc) > as_utc(range_start)]
        if range_end is not None:
            rows = [a for a in rows if as_utc(a.start_utc) < as_utc(range_end)]
        return sorted(rows, key=lambda a: a.start_utc)

    async def list_by_patient(self, patient_id: str) -> list[Appointment]:
        return sorted((a for a in self._rows.values() if a.patient_id == patient_id), key=lambda a: a.start_utc)

    async def get(self, appointment_id: str) -> Appointment | None:
        return self._rows.get(appointment_id)

    def _refuse_overlap(
        self, doctor_id: str, start: datetime, end: datetime, exclude_id: str | None = None
    ) -> None:
        start, end = as_utc(start), as_utc(end)
        for existing in self._active_for_doctor(doctor_id):
            if existing.appointment_id == exclude_id:
                continue
            if overlaps(start, end, as_utc(existing.start_utc), as_utc(existing.end_utc)):
                raise AlreadyExists(
                    f"Doctor {doctor_id} already has appointment {existing.appointment_id} in this interval",
                    existing=existing,
                )

    async def insert(self, appointment: Appointment) -> Appointment:
        async with self._lock:
            self._refuse_overlap(appointment.doctor_id, appointment.start_utc, appointment.end_utc)
            self._rows[appointment.appointment_id] = appointment
            return appointment

    async def reschedule(
        self,
        appointment_id: str,
        start: datetime,
        end: datetime,
        appointment_type: str | None = None,
        notes: str | None = None,
    ) -> Appointment | None:
        async with self._lock:
            appt = self._rows.get(appointment_id)
            if appt is None:
                return None
            self._refuse_overlap(appt.doctor_id, start, end, exclude_id=appointment_id)
            appt.start_utc = to_naive_utc(start)
            appt.end_utc = to_naive_utc(end)
            if appointment_type is not None:
                appt.appointment_type = appointment_type
            if notes is not None:
                appt.notes = notes
            appt.updated_at = _utc_naive_now()
            return appt

    async def update_status(self, appointment_id: str, status: str) -> Appointment | None:
        async with self._lock:
            appt = self._rows.get(appointment_id)
            if appt is None:
                return None
            appt.status = status
            appt.updated_at = _utc_naive_now()
            return appt
