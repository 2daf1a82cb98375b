"""Error taxonomy for the scheduling engine.

Client input errors and infrastructure failures are exceptions. Business
outcomes (overlap, duplicate, outside working hours) are not: they are
returned as values so callers have to handle them explicitly.
"""


class SchedulingError(Exception):
    """Base class for all scheduling errors."""


class InvalidRange(SchedulingError, ValueError):
    """Date range is empty, inverted or too long."""


class InvalidInterval(SchedulingError, ValueError):
    """Proposed interval has start >= end or is otherwise malformed."""


class InvalidScheduleBlock(SchedulingError, ValueError):
    """Schedule block fields fail validation."""


class NotFound(SchedulingError):
    """Requested record does not exist."""


class AlreadyExists(SchedulingError):
    """Conditional insert refused because an overlapping record exists."""

    def __init__(self, message: str, existing: object | None = None) -> None:
        super().__init__(message)
        self.existing = existing


class StoreUnavailable(SchedulingError):
    """Transient store failure or timeout. Safe for the caller to retry."""


class InvalidStatus(SchedulingError, ValueError):
    """Unknown appointment status or a transition that is not allowed."""
