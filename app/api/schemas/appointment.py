import datetime as dt

from pydantic import BaseModel

from app.models.appointment import AppointmentPublic


class SlotInfo(BaseModel):
    start_time: dt.datetime
    end_time: dt.datetime


class DaySlots(BaseModel):
    date: dt.date
    slots: list[SlotInfo]


class AvailableSlotsResponse(BaseModel):
    doctor_id: str
    available_slots: list[DaySlots]


class BookAppointmentRequest(BaseModel):
    doctor_id: str
    patient_id: str
    start_time: dt.datetime
    end_time: dt.datetime
    appointment_type: str | None = None
    notes: str | None = None


class BookingResponse(BaseModel):
    message: str
    outcome: str
    appointment: AppointmentPublic


class StatusUpdateRequest(BaseModel):
    status: str


class RescheduleAppointmentRequest(BaseModel):
    start_time: dt.datetime | None = None
    end_time: dt.datetime | None = None
    appointment_type: str | None = None
    notes: str | None = None
