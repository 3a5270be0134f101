"""
Recurrence expansion.

Turns a master event into the concrete occurrences that fall inside a
visible date window. Expansion is bounded by the window end, by the
event's repeat_until date and by a hard iteration cap.
"""

import logging
from dataclasses import replace
from datetime import date
from typing import Optional

from .errors import RecurrenceCapExceeded
from .models import MasterEvent, Occurrence, RepeatFrequency
from .occurrence_id import to_occurrence_id
from .timezone_utils import add_days, add_months, utc_datetime


logger = logging.getLogger(__name__)

# Safety bound against pathological inputs, per expand() call
MAX_ITERATIONS = 1000


def next_occurrence_date(current: date, frequency: RepeatFrequency) -> Optional[date]:
    """
    Advance a recurrence cursor by one step.

    Returns None when iteration must stop: the frequency does not repeat
    (NEVER, CUSTOM) or the date range is exhausted.
    """
    if frequency is RepeatFrequency.DAILY:
        return add_days(current, 1)
    if frequency is RepeatFrequency.WEEKLY:
        return add_days(current, 7)
    if frequency is RepeatFrequency.BIWEEKLY:
        return add_days(current, 14)
    if frequency is RepeatFrequency.MONTHLY:
        following = add_months(current, 1)
        return following if following is not None else add_days(current, 30)
    if frequency is RepeatFrequency.YEARLY:
        following = add_months(current, 12)
        return following if following is not None else add_days(current, 365)
    # CUSTOM rules are stored but not interpreted
    return None


def materialize(event: MasterEvent, occurrence_date: date) -> MasterEvent:
    """
    Copy of a recurring master moved to occurrence_date.

    Keeps the time of day and duration; the uid becomes the virtual
    occurrence id.
    """
    start = utc_datetime(occurrence_date, event.start.time())
    return replace(
        event,
        uid=to_occurrence_id(event.uid, occurrence_date),
        start=start,
        end=start + event.duration,
        exception_dates=list(event.exception_dates),
        invitees=list(event.invitees),
        attachments=list(event.attachments),
    )


def expand(
    event: MasterEvent,
    range_start: date,
    range_end: date,
    max_iterations: int = MAX_ITERATIONS,
    strict: bool = False,
) -> list[Occurrence]:
    """
    Expand a master event into its occurrences within [range_start, range_end].

    Both bounds are inclusive. Occurrences are returned in cadence order.
    Non-recurring events yield themselves unchanged if their start date is
    in range.

    Args:
        event: The master event
        range_start: First visible date
        range_end: Last visible date
        max_iterations: Cap on cursor steps for this call
        strict: Raise RecurrenceCapExceeded instead of logging a warning
            when the cap truncates the result

    Returns:
        List of (occurrence_date, event) pairs
    """
    if not event.is_recurring:
        event_date = event.start_date
        if range_start <= event_date <= range_end:
            return [Occurrence(event_date, event)]
        return []

    recurrence_end = event.repeat_until if event.repeat_until is not None else range_end
    exceptions = set(event.exception_dates)
    frequency = event.repeat.frequency

    occurrences = []
    # Iterate from the series start so the cadence stays aligned with it
    current: Optional[date] = event.start_date
    iterations = 0

    while current is not None and current <= recurrence_end and current <= range_end:
        if iterations >= max_iterations:
            if strict:
                raise RecurrenceCapExceeded(event.uid, iterations)
            logger.warning("Recurrence of %s truncated after %d iterations (window %s..%s)",
                           event.uid, iterations, range_start, range_end)
            break
        iterations += 1

        if current >= range_start and current not in exceptions:
            occurrences.append(Occurrence(current, materialize(event, current)))

        current = next_occurrence_date(current, frequency)

    return occurrences
