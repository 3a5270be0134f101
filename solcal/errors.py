"""
Error types raised by the Sol Calendar engine.

Store-level errors propagate to the caller (the calendar management layer
decides what to show the user). Decode problems never raise during normal
reads; they degrade per field and are reported as warnings instead.
"""


class CalendarEngineError(Exception):
    """Base class for all engine errors."""


class StorageIoError(CalendarEngineError):
    """The database could not be opened, read or written."""


class ConflictError(CalendarEngineError):
    """An insert collided with an existing (calendar_id, uid) row."""

    def __init__(self, calendar_id: str, uid: str):
        super().__init__(f"Event {uid!r} already exists in calendar {calendar_id!r}")
        self.calendar_id = calendar_id
        self.uid = uid


class NotFoundError(CalendarEngineError):
    """An update targeted an event that does not exist."""

    def __init__(self, calendar_id: str, uid: str):
        super().__init__(f"Event {uid!r} not found in calendar {calendar_id!r}")
        self.calendar_id = calendar_id
        self.uid = uid


class DecodeError(CalendarEngineError):
    """A stored field could not be decoded."""

    def __init__(self, field: str, raw, reason: str):
        super().__init__(f"Cannot decode {field}: {reason}")
        self.field = field
        self.raw = raw
        self.reason = reason


class RecurrenceCapExceeded(CalendarEngineError):
    """Recurrence expansion hit the iteration cap before reaching its end."""

    def __init__(self, uid: str, iterations: int):
        super().__init__(f"Expansion of {uid!r} stopped after {iterations} iterations")
        self.uid = uid
        self.iterations = iterations
