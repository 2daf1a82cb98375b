from pydantic import BaseModel

from app.models.schedule import ScheduleBlockPublic


class ScheduleListResponse(BaseModel):
    schedules: list[ScheduleBlockPublic]
    count: int


class ScheduleResponse(BaseModel):
    message: str
    schedule: ScheduleBlockPublic
