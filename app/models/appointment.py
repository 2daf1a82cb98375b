from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _naive_utc_column(index: bool = False) -> Column:
    # Explicit naive DateTime: values are stored as UTC without an offset
    return Column(DateTime(timezone=False), nullable=False, index=index)


def _new_id() -> str:
    return str(uuid4())


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no-show"


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    appointment_id: str = Field(default_factory=_new_id, primary_key=True)
    doctor_id: str = Field(index=True)
    patient_id: str = Field(index=True)
    start_utc: datetime = Field(sa_column=_naive_utc_column(index=True))
    end_utc: datetime = Field(sa_column=_naive_utc_column(index=True))
    status: str = Field(default=AppointmentStatus.SCHEDULED.value, index=True)
    appointment_type: str | None = None
    notes: str = ""
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_column=_naive_utc_column())
    updated_at: datetime = Field(default_factory=_utc_naive_now, sa_column=_naive_utc_column())

    @property
    def is_active(self) -> bool:
        """Cancelled appointments never block a slot."""
        return self.status != AppointmentStatus.CANCELLED.value


class AppointmentPublic(SQLModel):
    appointment_id: str
    doctor_id: str
    patient_id: str
    start_utc: datetime
    end_utc: datetime
    status: str
    appointment_type: str | None = None
    notes: str = ""
    created_at: datetime
