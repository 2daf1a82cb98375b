"""Store contracts the scheduling engine reads from and writes to."""

import asyncio
from collections.abc import Awaitable
from datetime import datetime
from typing import Protocol, TypeVar

from app.core.config import settings
from app.core.exceptions import StoreUnavailable
from app.models.appointment import Appointment
from app.models.schedule import ScheduleBlock

T = TypeVar("T")


class ScheduleStore(Protocol):
    async def list_blocks(self, doctor_id: str) -> list[ScheduleBlock]: ...

    async def get_block(self, schedule_id: str) -> ScheduleBlock | None: ...

    async def add_block(self, block: ScheduleBlock) -> ScheduleBlock: ...

    async def update_block(self, block: ScheduleBlock) -> ScheduleBlock: ...

    async def delete_block(self, schedule_id: str) -> bool: ...


class AppointmentStore(Protocol):
    async def list_by_doctor(
        self,
        doctor_id: str,
        range_start: datetime | None = None,
        range_end: datetime | None = None,
    ) -> list[Appointment]:
        """Non-cancelled appointments of the doctor, optionally those intersecting [range_start, range_end)."""
        ...

    async def list_by_patient(self, patient_id: str) -> list[Appointment]: ...

    async def get(self, appointment_id: str) -> Appointment | None: ...

    async def insert(self, appointment: Appointment) -> Appointment:
        """Write unless a non-cancelled overlapping appointment exists for the doctor.

        Raises AlreadyExists (carrying the blocking record) in that case. The
        write is durable and visible to other readers when this returns.
        """
        ...

    async def reschedule(
        self,
        appointment_id: str,
        start: datetime,
        end: datetime,
        appointment_type: str | None = None,
        notes: str | None = None,
    ) -> Appointment | None:
        """Move an appointment unless another non-cancelled one of the doctor overlaps.

        Same contract as insert(); None when the appointment does not exist.
        """
        ...

    async def update_status(self, appointment_id: str, status: str) -> Appointment | None: ...


async def call_store(awaitable: Awaitable[T], timeout_s: float | None = None) -> T:
    """Await a store call, turning a timeout into StoreUnavailable."""
    timeout = timeout_s if timeout_s is not None else settings.store_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as exc:
        raise StoreUnavailable(f"Store call timed out after {timeout}s") from exc
