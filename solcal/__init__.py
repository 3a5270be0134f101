"""
Sol Calendar Engine

This package provides the core functionality for calendar events:
- Value types (models.py) - MasterEvent, Repeat, CalendarSource
- SQLite event store with schema migrations (event_storage.py)
- Row codec with graceful field decoding (event_codec.py)
- Recurrence expansion (recurrence.py)
- Virtual occurrence ids (occurrence_id.py)
- Month/week display aggregation (display.py)
- Event repository (event_repository.py) - sources plus the store
- iCalendar import/export (ical_bridge.py)
"""

from .config import Config
from .errors import (
    CalendarEngineError,
    ConflictError,
    DecodeError,
    NotFoundError,
    RecurrenceCapExceeded,
    StorageIoError,
)
from .models import (
    AlertTime,
    CalendarSource,
    MasterEvent,
    Occurrence,
    Repeat,
    RepeatFrequency,
    TravelTime,
)
from .event_storage import EventStore, open_event_store
from .event_repository import EventRepository
from .display import DisplayEvent
from .recurrence import expand

__all__ = [
    'Config',
    'CalendarEngineError',
    'ConflictError',
    'DecodeError',
    'NotFoundError',
    'RecurrenceCapExceeded',
    'StorageIoError',
    'AlertTime',
    'CalendarSource',
    'MasterEvent',
    'Occurrence',
    'Repeat',
    'RepeatFrequency',
    'TravelTime',
    'EventStore',
    'open_event_store',
    'EventRepository',
    'DisplayEvent',
    'expand',
]
