"""
Display aggregation for month and week views.

Groups expanded occurrences of all enabled calendars by calendar day.
Multi-day all-day events are repeated on every covered day (clamped to the
query window) and carry their full span so renderers can draw continuation
bars; everything else appears once, on its start date.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Callable, Iterable, Optional

from .errors import StorageIoError
from .models import CalendarSource, MasterEvent
from .recurrence import expand
from .timezone_utils import days_in_month


logger = logging.getLogger(__name__)

# A month grid shows at most 6 days of the previous month...
MONTH_VIEW_LEADING_DAYS = 6
# ...and at most 13 days of the next one
MONTH_VIEW_TRAILING_DAYS = 13

FetchEvents = Callable[[str], list[MasterEvent]]


@dataclass
class DisplayEvent:
    """One item to render in a day cell."""
    calendar_id: str
    uid: str
    summary: str
    color: str
    all_day: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    # Full span of a multi-day event, for continuation styling
    span_start: Optional[date] = None
    span_end: Optional[date] = None

    @property
    def is_span(self) -> bool:
        return self.span_start is not None

    def continues_before(self, day: date) -> bool:
        return self.span_start is not None and self.span_start < day

    def continues_after(self, day: date) -> bool:
        return self.span_end is not None and self.span_end > day


def month_view_range(year: int, month: int) -> tuple[date, date]:
    """
    Date window covered by a month grid, including adjacent-month days.

    Returns (first of month - 6 days, first of month + days in month + 13 days).
    """
    first_of_month = date(year, month, 1)
    range_start = first_of_month - timedelta(days=MONTH_VIEW_LEADING_DAYS)
    range_end = first_of_month + timedelta(days=days_in_month(year, month) + MONTH_VIEW_TRAILING_DAYS)
    return range_start, range_end


def week_days(day: date, first_day_of_week: int = 0) -> list[date]:
    """
    The 7 days of the week containing day.

    first_day_of_week uses date.weekday() numbering (0 = Monday, 6 = Sunday).
    """
    offset = (day.weekday() - first_day_of_week) % 7
    first = day - timedelta(days=offset)
    return [first + timedelta(days=i) for i in range(7)]


def _minute_time(value) -> time:
    return time(value.hour, value.minute)


def add_occurrence(
    events_by_date: dict[date, list[DisplayEvent]],
    source: CalendarSource,
    occurrence: MasterEvent,
    range_start: date,
    range_end: date,
) -> None:
    """Place one expanded occurrence into the per-day mapping."""
    event_start = occurrence.start_date
    event_end = occurrence.end_date

    if occurrence.all_day and event_end > event_start:
        current = max(event_start, range_start)
        last = min(event_end, range_end)
        while current <= last:
            events_by_date[current].append(DisplayEvent(
                calendar_id=source.id,
                uid=occurrence.uid,
                summary=occurrence.summary,
                color=source.color,
                all_day=True,
                span_start=event_start,
                span_end=event_end,
            ))
            current += timedelta(days=1)
        return

    if not (range_start <= event_start <= range_end):
        return

    if occurrence.all_day:
        start_time = end_time = None
    else:
        start_time = _minute_time(occurrence.start)
        end_time = _minute_time(occurrence.end)

    events_by_date[event_start].append(DisplayEvent(
        calendar_id=source.id,
        uid=occurrence.uid,
        summary=occurrence.summary,
        color=source.color,
        all_day=occurrence.all_day,
        start_time=start_time,
        end_time=end_time,
    ))


def aggregate(
    sources: Iterable[CalendarSource],
    fetch_events: FetchEvents,
    range_start: date,
    range_end: date,
) -> dict[date, list[DisplayEvent]]:
    """
    Build the per-day display mapping for [range_start, range_end].

    Args:
        sources: Calendars to include; disabled ones are skipped
        fetch_events: Returns the master events of a calendar id
        range_start: First date of the window (inclusive)
        range_end: Last date of the window (inclusive)

    Returns:
        Mapping of date to display items, in source then cadence order
    """
    events_by_date: dict[date, list[DisplayEvent]] = defaultdict(list)

    for source in sources:
        if not source.enabled:
            continue

        try:
            masters = fetch_events(source.id)
        except StorageIoError as e:
            logger.error("Skipping calendar %r: %s", source.id, e)
            continue

        for master in masters:
            for occurrence in expand(master, range_start, range_end):
                add_occurrence(events_by_date, source, occurrence.event, range_start, range_end)

    return dict(events_by_date)


def aggregate_month(
    sources: Iterable[CalendarSource],
    fetch_events: FetchEvents,
    year: int,
    month: int,
) -> dict[date, list[DisplayEvent]]:
    """Display mapping for a month grid, adjacent-month days included."""
    range_start, range_end = month_view_range(year, month)
    return aggregate(sources, fetch_events, range_start, range_end)


def aggregate_week(
    sources: Iterable[CalendarSource],
    fetch_events: FetchEvents,
    days: list[date],
) -> dict[date, list[DisplayEvent]]:
    """Display mapping for the given (consecutive) week days."""
    if not days:
        return {}
    return aggregate(sources, fetch_events, days[0], days[-1])
