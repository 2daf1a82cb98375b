import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from enum import Enum

from app.core.config import settings
from app.core.exceptions import AlreadyExists, InvalidStatus, NotFound
from app.core.locks import DoctorLockRegistry, booking_locks
from app.models.appointment import Appointment, AppointmentStatus
from app.services.conflict_service import (
    ConflictKind,
    ConflictOutcome,
    check_conflict,
    find_booking_conflict,
    validate_interval,
)
from app.services.interval import as_utc, to_naive_utc
from app.stores.base import AppointmentStore, ScheduleStore, call_store

logger = logging.getLogger(__name__)


class AdmissionState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    RESERVED = "reserved"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class BookingRequest:
    doctor_id: str
    patient_id: str
    start: datetime
    end: datetime
    appointment_type: str | None = None
    notes: str = ""


@dataclass(frozen=True)
class RescheduleRequest:
    """Move and/or edit an existing appointment. None keeps the current value."""

    appointment_id: str
    start: datetime | None = None
    end: datetime | None = None
    appointment_type: str | None = None
    notes: str | None = None


@dataclass
class AdmissionResult:
    state: AdmissionState
    outcome: ConflictKind
    # The committed appointment, or the existing one that blocked the request
    appointment: Appointment | None = None
    history: list[AdmissionState] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.state is AdmissionState.COMMITTED

    @property
    def is_idempotent_replay(self) -> bool:
        """Rejected only because the very same booking already exists."""
        return self.outcome is ConflictKind.EXACT_DUPLICATE


def _lost_race(
    exc: AlreadyExists, doctor_id: str, start: datetime, end: datetime, patient_id: str
) -> ConflictOutcome:
    """Classify a conditional write refused by the store against the record that won."""
    # Another writer (e.g. another process) committed first
    winner = exc.existing if isinstance(exc.existing, Appointment) else None
    lost = ConflictOutcome(ConflictKind.OVERLAP, winner)
    if winner is not None:
        lost = find_booking_conflict(doctor_id, start, end, [winner], patient_id)
    logger.warning("Write for doctor=%s lost commit race: %s", doctor_id, lost.kind.value)
    return lost


class BookingAdmissionController:
    """Single entry point for creating appointments.

    Validation and the store write for one doctor run under that doctor's
    lock, and the store write itself is conditional, so two overlapping
    requests can never both be committed.
    """

    def __init__(
        self,
        schedules: ScheduleStore,
        appointments: AppointmentStore,
        locks: DoctorLockRegistry | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self.schedules = schedules
        self.appointments = appointments
        self.locks = locks or booking_locks
        self.tz = tz or settings.reference_tz

    def _reject(self, history: list[AdmissionState], outcome: ConflictOutcome) -> AdmissionResult:
        history.append(AdmissionState.REJECTED)
        return AdmissionResult(
            state=AdmissionState.REJECTED,
            outcome=outcome.kind,
            appointment=outcome.existing,
            history=history,
        )

    async def admit(self, request: BookingRequest) -> AdmissionResult:
        history = [AdmissionState.RECEIVED]
        start, end = validate_interval(request.start, request.end)

        async with self.locks.hold(request.doctor_id):
            blocks = await call_store(self.schedules.list_blocks(request.doctor_id))
            existing = await call_store(self.appointments.list_by_doctor(request.doctor_id, start, end))
            outcome = check_conflict(
                request.doctor_id,
                start,
                end,
                existing,
                patient_id=request.patient_id,
                schedule_blocks=blocks,
                tz=self.tz,
            )
            if not outcome.ok:
                logger.info(
                    "Booking rejected doctor=%s patient=%s %s..%s: %s",
                    request.doctor_id,
                    request.patient_id,
                    start.isoformat(),
                    end.isoformat(),
                    outcome.kind.value,
                )
                return self._reject(history, outcome)
            history.append(AdmissionState.VALIDATED)

            appointment = Appointment(
                doctor_id=request.doctor_id,
                patient_id=request.patient_id,
                start_utc=to_naive_utc(start),
                end_utc=to_naive_utc(end),
                status=AppointmentStatus.SCHEDULED.value,
                appointment_type=request.appointment_type,
                notes=request.notes or "",
            )
            history.append(AdmissionState.RESERVED)
            try:
                saved = await call_store(self.appointments.insert(appointment))
            except AlreadyExists as exc:
                lost = _lost_race(exc, request.doctor_id, start, end, request.patient_id)
                return self._reject(history, lost)

        history.append(AdmissionState.COMMITTED)
        logger.info(
            "Appointment %s committed doctor=%s patient=%s %s..%s",
            saved.appointment_id,
            saved.doctor_id,
            saved.patient_id,
            start.isoformat(),
            end.isoformat(),
        )
        return AdmissionResult(
            state=AdmissionState.COMMITTED,
            outcome=ConflictKind.NO_CONFLICT,
            appointment=saved,
            history=history,
        )

    async def reschedule(self, request: RescheduleRequest) -> AdmissionResult:
        """Move an appointment through the same checks as a new booking.

        The appointment being moved never conflicts with itself. Another
        booking at exactly the new interval is an OVERLAP here, not a replay.
        Editing only type or notes skips the interval checks.
        """
        history = [AdmissionState.RECEIVED]
        current = await get_appointment(self.appointments, request.appointment_id)
        if not current.is_active:
            raise InvalidStatus("Cancelled appointments cannot be rescheduled")
        start, end = validate_interval(request.start or current.start_utc, request.end or current.end_utc)
        doctor_id = current.doctor_id

        async with self.locks.hold(doctor_id):
            moved = (start, end) != (as_utc(current.start_utc), as_utc(current.end_utc))
            if moved:
                blocks = await call_store(self.schedules.list_blocks(doctor_id))
                others = [
                    a
                    for a in await call_store(self.appointments.list_by_doctor(doctor_id, start, end))
                    if a.appointment_id != current.appointment_id
                ]
                outcome = check_conflict(
                    doctor_id,
                    start,
                    end,
                    others,
                    patient_id=current.patient_id,
                    schedule_blocks=blocks,
                    tz=self.tz,
                )
                if outcome.kind is ConflictKind.EXACT_DUPLICATE:
                    outcome = ConflictOutcome(ConflictKind.OVERLAP, outcome.existing)
                if not outcome.ok:
                    logger.info(
                        "Reschedule of %s rejected %s..%s: %s",
                        current.appointment_id,
                        start.isoformat(),
                        end.isoformat(),
                        outcome.kind.value,
                    )
                    return self._reject(history, outcome)
            history.append(AdmissionState.VALIDATED)

            history.append(AdmissionState.RESERVED)
            try:
                saved = await call_store(
                    self.appointments.reschedule(
                        current.appointment_id,
                        start,
                        end,
                        appointment_type=request.appointment_type,
                        notes=request.notes,
                    )
                )
            except AlreadyExists as exc:
                lost = _lost_race(exc, doctor_id, start, end, current.patient_id)
                if lost.kind is ConflictKind.EXACT_DUPLICATE:
                    lost = ConflictOutcome(ConflictKind.OVERLAP, lost.existing)
                return self._reject(history, lost)
            if saved is None:
                raise NotFound(f"Appointment {request.appointment_id} not found")

        history.append(AdmissionState.COMMITTED)
        logger.info(
            "Appointment %s rescheduled to %s..%s (moved=%s)",
            saved.appointment_id,
            start.isoformat(),
            end.isoformat(),
            moved,
        )
        return AdmissionResult(
            state=AdmissionState.COMMITTED,
            outcome=ConflictKind.NO_CONFLICT,
            appointment=saved,
            history=history,
        )


async def get_appointment(store: AppointmentStore, appointment_id: str) -> Appointment:
    appointment = await call_store(store.get(appointment_id))
    if appointment is None:
        raise NotFound(f"Appointment {appointment_id} not found")
    return appointment


async def list_appointments_for_doctor(
    store: AppointmentStore,
    doctor_id: str,
    from_dt: datetime | None = None,
) -> list[Appointment]:
    return await call_store(store.list_by_doctor(doctor_id, range_start=from_dt))


async def list_appointments_for_patient(store: AppointmentStore, patient_id: str) -> list[Appointment]:
    return await call_store(store.list_by_patient(patient_id))


async def update_appointment_status(
    store: AppointmentStore, appointment_id: str, status: str
) -> Appointment:
    try:
        new_status = AppointmentStatus(status)
    except ValueError as exc:
        raise InvalidStatus("Invalid status value") from exc
    current = await get_appointment(store, appointment_id)
    if current.status == AppointmentStatus.CANCELLED.value and new_status is not AppointmentStatus.CANCELLED:
        # Reactivating would bypass admission; book a new appointment instead
        raise InvalidStatus("Cancelled appointments cannot be reactivated")
    previous = current.status
    updated = await call_store(store.update_status(appointment_id, new_status.value))
    if updated is None:
        raise NotFound(f"Appointment {appointment_id} not found")
    logger.info("Appointment %s status %s -> %s", appointment_id, previous, new_status.value)
    return updated


async def cancel_appointment(store: AppointmentStore, appointment_id: str) -> Appointment:
    """Mark the appointment cancelled; its interval becomes bookable again."""
    return await update_appointment_status(store, appointment_id, AppointmentStatus.CANCELLED.value)
