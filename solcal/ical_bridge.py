"""
iCalendar import/export for master events.

Maps MasterEvent to VEVENT components and back using the icalendar library.
Simple RRULEs (plain FREQ with an optional UNTIL, or weekly with INTERVAL=2)
become the matching Repeat value; anything richer is kept verbatim as a
Custom rule. All-day events use exclusive DTEND dates on the wire.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from icalendar import Calendar as ICalCalendar, Event as ICalEvent, vRecur

from .models import (
    AlertTime, MasterEvent, Repeat, RepeatFrequency,
    BIWEEKLY, DAILY, MONTHLY, NEVER, WEEKLY, YEARLY,
)
from .timezone_utils import to_utc_datetime, utc_datetime, utc_now


logger = logging.getLogger(__name__)

PRODID = '-//Sol Calendar//sol-calendar//'

_SIMPLE_FREQUENCIES = {
    'DAILY': DAILY,
    'WEEKLY': WEEKLY,
    'MONTHLY': MONTHLY,
    'YEARLY': YEARLY,
}

_ALL_DAY_END = time(23, 59, 59)


@dataclass
class ImportResult:
    """Outcome of parsing an iCalendar document."""
    events: list[MasterEvent] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


# ==================== Export ====================

def _repeat_to_rrule(event: MasterEvent) -> Optional[vRecur]:
    frequency = event.repeat.frequency
    if frequency is RepeatFrequency.NEVER:
        return None

    if frequency is RepeatFrequency.CUSTOM:
        rule = (event.repeat.rule or '').strip()
        if rule.upper().startswith('RRULE:'):
            rule = rule[len('RRULE:'):]
        if not rule:
            return None
        return vRecur.from_ical(rule)

    if frequency is RepeatFrequency.BIWEEKLY:
        rrule = vRecur(freq='WEEKLY', interval=2)
    else:
        rrule = vRecur(freq=frequency.value.upper())

    if event.repeat_until is not None:
        if event.all_day:
            rrule['UNTIL'] = [event.repeat_until]
        else:
            rrule['UNTIL'] = [utc_datetime(event.repeat_until, _ALL_DAY_END)]
    return rrule


def event_to_vevent(event: MasterEvent) -> ICalEvent:
    """Build a VEVENT component from a master event."""
    vevent = ICalEvent()
    vevent.add('uid', event.uid)
    vevent.add('summary', event.summary)
    vevent.add('dtstamp', event.updated_at or utc_now())

    if event.all_day:
        vevent.add('dtstart', event.start_date)
        # DTEND is exclusive for all-day events
        vevent.add('dtend', event.end_date + timedelta(days=1))
    else:
        vevent.add('dtstart', event.start)
        vevent.add('dtend', event.end)

    if event.location:
        vevent.add('location', event.location)
    if event.notes:
        vevent.add('description', event.notes)
    if event.url:
        vevent.add('url', event.url)

    rrule = _repeat_to_rrule(event)
    if rrule is not None:
        vevent.add('rrule', rrule)
        if event.exception_dates:
            if event.all_day:
                vevent.add('exdate', list(event.exception_dates))
            else:
                start_time = event.start.time()
                vevent.add('exdate', [utc_datetime(d, start_time) for d in event.exception_dates])

    for invitee in event.invitees:
        address = invitee if invitee.lower().startswith('mailto:') else f'mailto:{invitee}'
        vevent.add('attendee', address)
    for attachment in event.attachments:
        vevent.add('attach', attachment)

    if event.created_at is not None:
        vevent.add('created', event.created_at)
    if event.updated_at is not None:
        vevent.add('last-modified', event.updated_at)

    return vevent


def events_to_ical(events: Iterable[MasterEvent]) -> str:
    """Serialize master events into one VCALENDAR document."""
    vcal = ICalCalendar()
    vcal.add('prodid', PRODID)
    vcal.add('version', '2.0')
    for event in events:
        vcal.add_component(event_to_vevent(event))
    return vcal.to_ical().decode('utf-8')


# ==================== Import ====================

def _is_date(value) -> bool:
    return isinstance(value, date) and not isinstance(value, datetime)


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _rrule_to_repeat(rrule: vRecur) -> tuple[Repeat, Optional[date]]:
    """Map an RRULE to (repeat, repeat_until)."""
    parts = {key.upper(): value for key, value in rrule.items()}
    frequency = str(parts.get('FREQ', [''])[0]).upper()
    interval = int(parts.get('INTERVAL', [1])[0])

    until = None
    if 'UNTIL' in parts:
        value = parts['UNTIL'][0]
        until = value if _is_date(value) else to_utc_datetime(value).date()

    extra = set(parts) - {'FREQ', 'INTERVAL', 'UNTIL'}
    if not extra:
        if frequency == 'WEEKLY' and interval == 2:
            return BIWEEKLY, until
        if frequency in _SIMPLE_FREQUENCIES and interval == 1:
            return _SIMPLE_FREQUENCIES[frequency], until

    return Repeat.custom(rrule.to_ical().decode('utf-8')), until


def _exception_dates(vevent: ICalEvent) -> list[date]:
    dates = []
    for exdate in _as_list(vevent.get('EXDATE')):
        for entry in exdate.dts:
            value = entry.dt
            day = value if _is_date(value) else to_utc_datetime(value).date()
            if day not in dates:
                dates.append(day)
    return dates


def _optional_text(vevent: ICalEvent, name: str) -> Optional[str]:
    value = vevent.get(name)
    if value is None:
        return None
    text = str(value)
    return text or None


def vevent_to_event(vevent: ICalEvent) -> MasterEvent:
    """
    Build a master event from a VEVENT component.

    Raises:
        ValueError: DTSTART is missing or the end precedes the start.
    """
    dtstart = vevent.get('DTSTART')
    if dtstart is None:
        raise ValueError("missing DTSTART")

    start_value = dtstart.dt
    all_day = _is_date(start_value)
    dtend = vevent.get('DTEND')

    if all_day:
        start = utc_datetime(start_value, time(0, 0))
        if dtend is not None:
            # Exclusive end date back to the last covered day
            last_day = dtend.dt - timedelta(days=1) if _is_date(dtend.dt) else dtend.dt.date()
        else:
            last_day = start_value
        end = utc_datetime(max(last_day, start_value), _ALL_DAY_END)
    else:
        start = to_utc_datetime(start_value)
        if dtend is not None:
            end = to_utc_datetime(dtend.dt)
        elif vevent.get('DURATION') is not None:
            end = start + vevent.get('DURATION').dt
        else:
            end = start + timedelta(hours=1)

    if end < start:
        raise ValueError(f"end {end} precedes start {start}")

    repeat, repeat_until = NEVER, None
    rrule = vevent.get('RRULE')
    if rrule is not None:
        repeat, repeat_until = _rrule_to_repeat(rrule)

    uid = str(vevent.get('UID', '')).strip() or str(uuid.uuid4())

    invitees = []
    for attendee in _as_list(vevent.get('ATTENDEE')):
        address = str(attendee)
        if address.lower().startswith('mailto:'):
            address = address[len('mailto:'):]
        invitees.append(address)

    return MasterEvent(
        uid=uid,
        summary=str(vevent.get('SUMMARY', '')),
        start=start,
        end=end,
        location=_optional_text(vevent, 'LOCATION'),
        notes=_optional_text(vevent, 'DESCRIPTION'),
        url=_optional_text(vevent, 'URL'),
        all_day=all_day,
        repeat=repeat,
        repeat_until=repeat_until,
        exception_dates=_exception_dates(vevent) if repeat.is_recurring else [],
        invitees=invitees,
        attachments=[str(a) for a in _as_list(vevent.get('ATTACH'))],
        alert=AlertTime.NONE,
    )


def parse_ical(ical_text: str) -> ImportResult:
    """
    Parse iCalendar text into master events.

    Components that cannot be converted are reported in ImportResult.errors
    and skipped; the rest of the document is still imported.

    Raises:
        ValueError: the text is not an iCalendar document at all.
    """
    vcal = ICalCalendar.from_ical(ical_text)
    result = ImportResult()

    for vevent in vcal.walk('VEVENT'):
        try:
            result.events.append(vevent_to_event(vevent))
        except (ValueError, TypeError, AttributeError) as e:
            uid = vevent.get('UID', '<no uid>')
            message = f"{uid}: {e}"
            logger.warning("Skipping VEVENT %s", message)
            result.errors.append(message)

    return result
