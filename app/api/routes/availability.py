from datetime import date

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_appointment_store, get_schedule_store
from app.api.schemas.appointment import AvailableSlotsResponse, DaySlots, SlotInfo
from app.services.availability_service import get_doctor_availability
from app.stores.base import AppointmentStore, ScheduleStore

router = APIRouter(prefix="/doctors", tags=["availability"])


@router.get("/{doctor_id}/availability", response_model=AvailableSlotsResponse)
async def doctor_availability(
    doctor_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    schedules: ScheduleStore = Depends(get_schedule_store),
    appointments: AppointmentStore = Depends(get_appointment_store),
) -> AvailableSlotsResponse:
    """Free slots per day over [start_date, end_date). Days without free slots are omitted."""
    days = await get_doctor_availability(
        doctor_id,
        start_date,
        end_date,
        schedules=schedules,
        appointments=appointments,
    )
    return AvailableSlotsResponse(
        doctor_id=doctor_id,
        available_slots=[
            DaySlots(
                date=day.date,
                slots=[SlotInfo(start_time=s.start, end_time=s.end) for s in day.slots],
            )
            for day in days
        ],
    )
