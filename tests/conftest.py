"""
Shared pytest fixtures for all tests.

Provides temporary event databases, a repository with the default
calendars registered, and helpers to build master events.
"""

import sqlite3
from datetime import date, datetime, time, timedelta

import pytest
import pytz

from solcal.event_repository import EventRepository
from solcal.event_storage import EventStore
from solcal.models import CalendarSource, MasterEvent, NEVER


def utc(year, month, day, hour=0, minute=0, second=0):
    return pytz.UTC.localize(datetime(year, month, day, hour, minute, second))


def make_event(uid="evt-1", summary="Event", start=None, duration=timedelta(hours=1), **kwargs):
    """Build a master event; start defaults to 2025-01-06 09:00 UTC."""
    if start is None:
        start = utc(2025, 1, 6, 9, 0)
    kwargs.setdefault("repeat", NEVER)
    return MasterEvent(uid=uid, summary=summary, start=start, end=start + duration, **kwargs)


def make_all_day(uid, summary, first: date, last: date, **kwargs):
    """All-day event covering first..last inclusive."""
    return MasterEvent(
        uid=uid,
        summary=summary,
        start=pytz.UTC.localize(datetime.combine(first, time(0, 0))),
        end=pytz.UTC.localize(datetime.combine(last, time(23, 59, 59))),
        all_day=True,
        **kwargs,
    )


@pytest.fixture
def db_path(tmp_path):
    """Path of a not-yet-created database file."""
    return tmp_path / "data" / "sol.db"


@pytest.fixture
def store(db_path):
    """Fresh EventStore on a temporary database."""
    event_store = EventStore(db_path)
    yield event_store
    event_store.close()


@pytest.fixture
def sources():
    return [
        CalendarSource(id="personal", name="Personal", color="#3B82F6"),
        CalendarSource(id="work", name="Work", color="#8B5CF6"),
    ]


@pytest.fixture
def repository(store, sources):
    """EventRepository with the personal and work calendars registered."""
    repo = EventRepository(store=store)
    for source in sources:
        repo.add_source(source)
    return repo


@pytest.fixture
def raw_db(db_path):
    """Plain sqlite3 connection factory for building legacy databases."""
    db_path.parent.mkdir(parents=True, exist_ok=True)

    def connect():
        return sqlite3.connect(db_path)

    return connect
