"""
Value types for the calendar event engine.

A MasterEvent is the single stored record of an event series. Occurrences
are derived from it by the recurrence expander and never stored. Calendar
metadata (CalendarSource) comes from the configuration file; the database
only ever sees a calendar_id string.
"""

from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from enum import Enum
from typing import NamedTuple, Optional


@dataclass
class CalendarSource:
    """
    Metadata about a calendar.

    Separate from the events themselves: name, color and the enabled flag
    live in the configuration file, not in the event database.
    """
    id: str
    name: str
    color: str = "#3B82F6"
    enabled: bool = True

    def __hash__(self):
        return hash(self.id)

    def __eq__(self, other):
        if isinstance(other, CalendarSource):
            return self.id == other.id
        return False


class TravelTime(Enum):
    """Travel time blocked before an event."""
    NONE = "None"
    FIVE_MINUTES = "FiveMinutes"
    FIFTEEN_MINUTES = "FifteenMinutes"
    THIRTY_MINUTES = "ThirtyMinutes"
    ONE_HOUR = "OneHour"
    ONE_AND_HALF_HOURS = "OneAndHalfHours"
    TWO_HOURS = "TwoHours"


class AlertTime(Enum):
    """When to alert before an event starts."""
    NONE = "None"
    AT_TIME = "AtTime"
    FIVE_MINUTES = "FiveMinutes"
    TEN_MINUTES = "TenMinutes"
    FIFTEEN_MINUTES = "FifteenMinutes"
    THIRTY_MINUTES = "ThirtyMinutes"
    ONE_HOUR = "OneHour"
    TWO_HOURS = "TwoHours"
    ONE_DAY = "OneDay"
    TWO_DAYS = "TwoDays"
    ONE_WEEK = "OneWeek"


class RepeatFrequency(Enum):
    """Recurrence frequencies understood by the expander."""
    NEVER = "Never"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    BIWEEKLY = "Biweekly"
    MONTHLY = "Monthly"
    YEARLY = "Yearly"
    CUSTOM = "Custom"  # Carries a raw rule; stored but never expanded


@dataclass(frozen=True)
class Repeat:
    """
    Recurrence setting of a master event.

    Only CUSTOM carries a payload: the raw recurrence rule text, kept for
    round-tripping (e.g. an RRULE from an imported file).
    """
    frequency: RepeatFrequency = RepeatFrequency.NEVER
    rule: Optional[str] = None

    @classmethod
    def custom(cls, rule: str) -> 'Repeat':
        return cls(RepeatFrequency.CUSTOM, rule)

    @property
    def is_recurring(self) -> bool:
        return self.frequency is not RepeatFrequency.NEVER

    def __str__(self):
        if self.frequency is RepeatFrequency.CUSTOM:
            return f"Custom({self.rule})"
        return self.frequency.value


NEVER = Repeat()
DAILY = Repeat(RepeatFrequency.DAILY)
WEEKLY = Repeat(RepeatFrequency.WEEKLY)
BIWEEKLY = Repeat(RepeatFrequency.BIWEEKLY)
MONTHLY = Repeat(RepeatFrequency.MONTHLY)
YEARLY = Repeat(RepeatFrequency.YEARLY)


@dataclass
class MasterEvent:
    """
    One stored event series.

    start/end are timezone-aware UTC datetimes. For recurring events they
    define the time of day, the duration and the first date of the series.
    created_at/updated_at are stamped by the store.
    """
    uid: str
    summary: str
    start: datetime
    end: datetime
    location: Optional[str] = None
    notes: Optional[str] = None
    url: Optional[str] = None
    all_day: bool = False
    travel_time: TravelTime = TravelTime.NONE
    repeat: Repeat = NEVER
    repeat_until: Optional[date] = None
    exception_dates: list[date] = field(default_factory=list)
    invitees: list[str] = field(default_factory=list)
    attachments: list[str] = field(default_factory=list)
    alert: AlertTime = AlertTime.NONE
    alert_second: Optional[AlertTime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # ==================== Convenience Properties ====================

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_recurring(self) -> bool:
        return self.repeat.is_recurring

    @property
    def start_date(self) -> date:
        """Calendar date of the start (UTC)."""
        return self.start.date()

    @property
    def end_date(self) -> date:
        """Calendar date of the end (UTC)."""
        return self.end.date()

    @property
    def is_multi_day(self) -> bool:
        """All-day event spanning more than one calendar day."""
        return self.all_day and self.end_date > self.start_date

    def __repr__(self):
        return f"MasterEvent(uid={self.uid!r}, summary={self.summary!r}, start={self.start}, repeat={self.repeat})"


class Occurrence(NamedTuple):
    """One concrete instance of a master event on a calendar date."""
    occurrence_date: date
    event: MasterEvent
