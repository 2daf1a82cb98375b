from app.models.schedule import ScheduleBlock, ScheduleBlockCreate, ScheduleBlockPublic, ScheduleBlockUpdate
from app.models.appointment import Appointment, AppointmentPublic, AppointmentStatus
from app.models.availability import CandidateSlot, DayAvailability

__all__ = [
    "ScheduleBlock",
    "ScheduleBlockCreate",
    "ScheduleBlockPublic",
    "ScheduleBlockUpdate",
    "Appointment",
    "AppointmentPublic",
    "AppointmentStatus",
    "CandidateSlot",
    "DayAvailability",
]
