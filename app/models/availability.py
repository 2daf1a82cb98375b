import datetime as dt

from sqlmodel import SQLModel


class CandidateSlot(SQLModel):
    """A bookable interval that has not been persisted. Aware UTC instants."""

    start: dt.datetime
    end: dt.datetime

    @property
    def key(self) -> tuple[dt.datetime, dt.datetime]:
        return self.start, self.end


class DayAvailability(SQLModel):
    date: dt.date
    slots: list[CandidateSlot]
