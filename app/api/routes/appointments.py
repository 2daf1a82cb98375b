import logging
from datetime import datetime
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.api.deps import get_appointment_store, get_booking_controller
from app.api.schemas.appointment import (
    BookAppointmentRequest,
    BookingResponse,
    RescheduleAppointmentRequest,
    StatusUpdateRequest,
)
from app.models.appointment import Appointment, AppointmentPublic
from app.services.appointment_service import (
    AdmissionResult,
    BookingAdmissionController,
    BookingRequest,
    RescheduleRequest,
    cancel_appointment,
    get_appointment,
    list_appointments_for_doctor,
    list_appointments_for_patient,
    update_appointment_status,
)
from app.services.conflict_service import ConflictKind
from app.services.interval import as_utc
from app.stores.base import AppointmentStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/appointments", tags=["appointments"])


def _to_public(a: Appointment) -> AppointmentPublic:
    """Public shape; stored naive UTC values are sent back as aware UTC."""
    return AppointmentPublic(
        appointment_id=a.appointment_id,
        doctor_id=a.doctor_id,
        patient_id=a.patient_id,
        start_utc=as_utc(a.start_utc),
        end_utc=as_utc(a.end_utc),
        status=a.status,
        appointment_type=a.appointment_type,
        notes=a.notes or "",
        created_at=as_utc(a.created_at),
    )


def _raise_rejection(result: AdmissionResult) -> NoReturn:
    if result.outcome is ConflictKind.OUTSIDE_WORKING_HOURS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Appointment time is outside of doctor's working hours", "outcome": result.outcome.value},
        )
    detail: dict = {"message": "Appointment overlaps with an existing appointment", "outcome": result.outcome.value}
    if result.appointment is not None:
        detail["conflicting_appointment"] = _to_public(result.appointment).model_dump(mode="json")
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    body: BookAppointmentRequest,
    response: Response,
    controller: BookingAdmissionController = Depends(get_booking_controller),
) -> BookingResponse:
    result = await controller.admit(
        BookingRequest(
            doctor_id=body.doctor_id,
            patient_id=body.patient_id,
            start=body.start_time,
            end=body.end_time,
            appointment_type=body.appointment_type,
            notes=body.notes or "",
        )
    )
    if result.committed and result.appointment is not None:
        return BookingResponse(
            message="Appointment created successfully",
            outcome=result.outcome.value,
            appointment=_to_public(result.appointment),
        )
    if result.is_idempotent_replay and result.appointment is not None:
        # Retried request: hand back the booking that already exists
        response.status_code = status.HTTP_200_OK
        return BookingResponse(
            message="Appointment already exists",
            outcome=result.outcome.value,
            appointment=_to_public(result.appointment),
        )
    _raise_rejection(result)


@router.put("/{appointment_id}", response_model=BookingResponse)
async def reschedule_appointment(
    appointment_id: str,
    body: RescheduleAppointmentRequest,
    controller: BookingAdmissionController = Depends(get_booking_controller),
) -> BookingResponse:
    result = await controller.reschedule(
        RescheduleRequest(
            appointment_id=appointment_id,
            start=body.start_time,
            end=body.end_time,
            appointment_type=body.appointment_type,
            notes=body.notes,
        )
    )
    if result.committed and result.appointment is not None:
        return BookingResponse(
            message="Appointment updated successfully",
            outcome=result.outcome.value,
            appointment=_to_public(result.appointment),
        )
    _raise_rejection(result)


@router.get("", response_model=list[AppointmentPublic])
async def list_appointments(
    doctor_id: str | None = Query(None),
    patient_id: str | None = Query(None),
    from_time: datetime | None = Query(None),
    store: AppointmentStore = Depends(get_appointment_store),
) -> list[AppointmentPublic]:
    if doctor_id:
        appointments = await list_appointments_for_doctor(store, doctor_id, from_dt=from_time)
    elif patient_id:
        appointments = await list_appointments_for_patient(store, patient_id)
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="doctor_id or patient_id is required",
        )
    return [_to_public(a) for a in appointments]


@router.get("/{appointment_id}", response_model=AppointmentPublic)
async def get_appointment_by_id(
    appointment_id: str,
    store: AppointmentStore = Depends(get_appointment_store),
) -> AppointmentPublic:
    return _to_public(await get_appointment(store, appointment_id))


@router.patch("/{appointment_id}/status", response_model=AppointmentPublic)
async def change_appointment_status(
    appointment_id: str,
    body: StatusUpdateRequest,
    store: AppointmentStore = Depends(get_appointment_store),
) -> AppointmentPublic:
    return _to_public(await update_appointment_status(store, appointment_id, body.status))


@router.delete("/{appointment_id}", response_model=AppointmentPublic)
async def cancel_booked_appointment(
    appointment_id: str,
    store: AppointmentStore = Depends(get_appointment_store),
) -> AppointmentPublic:
    appointment = await cancel_appointment(store, appointment_id)
    logger.info("Appointment %s cancelled via API", appointment_id)
    return _to_public(appointment)
