from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_session
from app.core.locks import booking_locks
from app.services.appointment_service import BookingAdmissionController
from app.stores.base import AppointmentStore, ScheduleStore
from app.stores.sql import SqlAppointmentStore, SqlScheduleStore


def get_schedule_store(session: AsyncSession = Depends(get_session)) -> ScheduleStore:
    return SqlScheduleStore(session)


def get_appointment_store(session: AsyncSession = Depends(get_session)) -> AppointmentStore:
    return SqlAppointmentStore(session)


def get_booking_controller(
    schedules: ScheduleStore = Depends(get_schedule_store),
    appointments: AppointmentStore = Depends(get_appointment_store),
) -> BookingAdmissionController:
    """Stores are per request; the per-doctor lock registry is process-wide."""
    return BookingAdmissionController(schedules, appointments, locks=booking_locks)
