from datetime import UTC, datetime, time
from uuid import uuid4

from pydantic import field_validator, model_validator
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


class ScheduleBlock(SQLModel, table=True):
    """One recurring weekly working-hours interval for a doctor.

    day_of_week uses 0 = Sunday .. 6 = Saturday.
    """

    __tablename__ = "schedule_blocks"
    schedule_id: str = Field(default_factory=_new_id, primary_key=True)
    doctor_id: str = Field(index=True)
    day_of_week: int = Field(index=True)
    start_time: time
    end_time: time
    slot_duration_minutes: int = 30
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_column=_naive_utc_column())
    updated_at: datetime = Field(default_factory=_utc_naive_now, sa_column=_naive_utc_column())


def parse_hhmm(value: str | time) -> time:
    """Accept "HH:MM" (24-hour) or a time object."""
    if isinstance(value, time):
        return value
    parts = value.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError("Invalid time format. Use HH:MM (24-hour format)")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError("Invalid time format. Use HH:MM (24-hour format)")
    return time(hour, minute)


class ScheduleBlockCreate(SQLModel):
    day_of_week: int
    start_time: time
    end_time: time
    # None falls back to settings.default_slot_duration_minutes
    slot_duration_minutes: int | None = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_time(cls, v: object) -> object:
        if isinstance(v, str):
            return parse_hhmm(v)
        return v

    @field_validator("day_of_week")
    @classmethod
    def _check_day(cls, v: int) -> int:
        if not 0 <= v <= 6:
            raise ValueError("Day of week must be between 0-6 (Sunday-Saturday)")
        return v

    @field_validator("slot_duration_minutes")
    @classmethod
    def _check_duration(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("Slot duration must be a positive number of minutes")
        return v

    @model_validator(mode="after")
    def _check_order(self) -> "ScheduleBlockCreate":
        if self.start_time >= self.end_time:
            raise ValueError("End time must be after start time")
        return self


class ScheduleBlockPublic(SQLModel):
    schedule_id: str
    doctor_id: str
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration_minutes: int


class ScheduleBlockUpdate(SQLModel):
    """Partial change to a block's hours or slot length; the weekday is fixed."""

    start_time: time | None = None
    end_time: time | None = None
    slot_duration_minutes: int | None = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_time(cls, v: object) -> object:
        if isinstance(v, str):
            return parse_hhmm(v)
        return v

    @field_validator("slot_duration_minutes")
    @classmethod
    def _check_duration(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("Slot duration must be a positive number of minutes")
        return v
