"""
Schema migration tests.

Each test builds a database in an older layout with raw SQL, opens it with
EventStore and checks the data arrives intact in the current schema.
"""

from datetime import date

import pytest

from solcal.errors import ConflictError, StorageIoError
from solcal.event_storage import SCHEMA_VERSION, EventStore
from solcal.models import WEEKLY

from conftest import make_event


V1_EVENTS = """
CREATE TABLE events (
    uid TEXT PRIMARY KEY,
    calendar_id TEXT NOT NULL,
    summary TEXT NOT NULL,
    location TEXT,
    description TEXT,
    all_day INTEGER NOT NULL DEFAULT 0,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

V2_EVENTS = """
CREATE TABLE events (
    uid TEXT PRIMARY KEY,
    calendar_id TEXT NOT NULL,
    summary TEXT NOT NULL,
    location TEXT,
    all_day INTEGER NOT NULL DEFAULT 0,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    travel_time TEXT NOT NULL DEFAULT 'None',
    repeat TEXT NOT NULL DEFAULT 'Never',
    invitees TEXT NOT NULL DEFAULT '[]',
    alert TEXT NOT NULL DEFAULT 'None',
    alert_second TEXT,
    attachments TEXT NOT NULL DEFAULT '[]',
    url TEXT,
    notes TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

META = "CREATE TABLE meta (key TEXT PRIMARY KEY, value TEXT NOT NULL)"


def stamp(conn, version):
    conn.execute(META)
    conn.execute("INSERT INTO meta (key, value) VALUES ('schema_version', ?)", (str(version),))


def build_v1(raw_db, with_meta=True):
    conn = raw_db()
    conn.execute(V1_EVENTS)
    if with_meta:
        stamp(conn, 1)
    conn.execute(
        "INSERT INTO events (uid, calendar_id, summary, location, description, all_day, start_time, end_time) "
        "VALUES ('legacy', 'work', 'Old meeting', 'HQ', 'From v1', 0, "
        "'2024-05-01T09:00:00+00:00', '2024-05-01T10:00:00+00:00')"
    )
    conn.commit()
    conn.close()


def build_v2(raw_db, version=2):
    conn = raw_db()
    conn.execute(V2_EVENTS)
    if version >= 3:
        conn.execute("ALTER TABLE events ADD COLUMN repeat_until TEXT")
    if version >= 4:
        conn.execute("ALTER TABLE events ADD COLUMN exception_dates TEXT NOT NULL DEFAULT '[]'")
    stamp(conn, version)
    conn.execute(
        "INSERT INTO events (uid, calendar_id, summary, start_time, end_time, repeat, invitees) "
        "VALUES ('standup', 'work', 'Standup', '2025-01-06T09:00:00+00:00', "
        "'2025-01-06T09:15:00+00:00', '\"Weekly\"', '[\"ana@example.com\"]')"
    )
    if version >= 3:
        conn.execute("UPDATE events SET repeat_until = '2025-03-31' WHERE uid = 'standup'")
    if version >= 4:
        conn.execute("UPDATE events SET exception_dates = '[\"2025-01-13\"]' WHERE uid = 'standup'")
    conn.commit()
    conn.close()


def test_v1_description_becomes_notes(raw_db, db_path):
    build_v1(raw_db)
    with EventStore(db_path) as store:
        assert store.schema_version == SCHEMA_VERSION
        event = store.get("work", "legacy")
        assert event.summary == "Old meeting"
        assert event.location == "HQ"
        assert event.notes == "From v1"
        assert event.exception_dates == []
        assert event.repeat_until is None
        assert not event.is_recurring


def test_unstamped_legacy_database_is_treated_as_v1(raw_db, db_path):
    build_v1(raw_db, with_meta=False)
    with EventStore(db_path) as store:
        assert store.schema_version == SCHEMA_VERSION
        assert store.get("work", "legacy").notes == "From v1"


@pytest.mark.parametrize("version", [2, 3, 4])
def test_migrates_from(raw_db, db_path, version):
    build_v2(raw_db, version)
    with EventStore(db_path) as store:
        assert store.schema_version == SCHEMA_VERSION
        event = store.get("work", "standup")
        assert event.repeat == WEEKLY
        assert event.invitees == ["ana@example.com"]
        assert event.repeat_until == (date(2025, 3, 31) if version >= 3 else None)
        assert event.exception_dates == ([date(2025, 1, 13)] if version >= 4 else [])


def test_v5_allows_same_uid_per_calendar_after_migration(raw_db, db_path):
    build_v2(raw_db, 4)
    with EventStore(db_path) as store:
        store.insert("personal", make_event("standup"))
        with pytest.raises(ConflictError):
            store.insert("work", make_event("standup"))


def test_reopen_after_migration_is_noop(raw_db, db_path):
    build_v1(raw_db)
    with EventStore(db_path) as store:
        first = store.get("work", "legacy")
    with EventStore(db_path) as store:
        assert store.schema_version == SCHEMA_VERSION
        assert store.count() == 1
        assert store.get("work", "legacy").notes == first.notes


def test_failed_step_rolls_back_completely(raw_db, db_path):
    # A v4 table missing a column the v5 rebuild copies: the step fails
    # after events_new has already been created
    conn = raw_db()
    conn.execute(V2_EVENTS.replace("    alert_second TEXT,\n", ""))
    conn.execute("ALTER TABLE events ADD COLUMN repeat_until TEXT")
    conn.execute("ALTER TABLE events ADD COLUMN exception_dates TEXT NOT NULL DEFAULT '[]'")
    stamp(conn, 4)
    conn.execute(
        "INSERT INTO events (uid, calendar_id, summary, start_time, end_time) "
        "VALUES ('a', 'work', 'Keep me', '2025-01-06T09:00:00+00:00', '2025-01-06T10:00:00+00:00')"
    )
    conn.commit()
    conn.close()

    with pytest.raises(StorageIoError):
        EventStore(db_path)

    conn = raw_db()
    tables = [row[0] for row in conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name")]
    version = conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()[0]
    rows = conn.execute("SELECT uid, summary FROM events").fetchall()
    conn.close()

    assert tables == ["events", "meta"]
    assert version == "4"
    assert rows == [("a", "Keep me")]
