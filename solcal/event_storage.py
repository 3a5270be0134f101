"""
Persistent Event Storage for Sol Calendar.

SQLite database of master events, accessed through SQLAlchemy Core.
The schema is versioned through a key/value meta table and migrated
forward on open; each migration step runs in its own transaction.

Calendar metadata (name, color, enabled) is NOT stored here. The store only
ever sees calendar_id as an opaque partition key.
"""

import logging
import os
import threading
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Optional, Union

from sqlalchemy import (
    Column, Index, Integer, MetaData, Table, Text, UniqueConstraint,
    create_engine, delete, event as sa_event, func, insert, select, text, update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import ConflictError, StorageIoError
from .event_codec import DecodedEvent, decode_row, encode_event, encode_dates
from .models import MasterEvent
from .timezone_utils import format_rfc3339, utc_now


logger = logging.getLogger(__name__)

# Current database schema version
SCHEMA_VERSION = 5

APP_NAME = "sol-calendar"
DATABASE_NAME = "sol.db"

metadata = MetaData()

meta_table = Table(
    "meta", metadata,
    Column("key", Text, primary_key=True),
    Column("value", Text, nullable=False),
)

events_table = Table(
    "events", metadata,
    Column("uid", Text, nullable=False),
    Column("calendar_id", Text, nullable=False),
    Column("summary", Text, nullable=False),
    Column("location", Text),
    Column("all_day", Integer, nullable=False, server_default=text("0")),
    Column("start_time", Text, nullable=False),
    Column("end_time", Text, nullable=False),
    Column("travel_time", Text, nullable=False, server_default="None"),
    Column("repeat", Text, nullable=False, server_default="Never"),
    Column("repeat_until", Text),
    Column("exception_dates", Text, nullable=False, server_default="[]"),
    Column("invitees", Text, nullable=False, server_default="[]"),
    Column("alert", Text, nullable=False, server_default="None"),
    Column("alert_second", Text),
    Column("attachments", Text, nullable=False, server_default="[]"),
    Column("url", Text),
    Column("notes", Text),
    Column("created_at", Text, nullable=False, server_default=text("(datetime('now'))")),
    Column("updated_at", Text, nullable=False, server_default=text("(datetime('now'))")),
    UniqueConstraint("calendar_id", "uid"),
    Index("idx_events_start_time", "start_time"),
    Index("idx_events_calendar_id", "calendar_id"),
    Index("idx_events_calendar_date", "calendar_id", "start_time"),
)

_EVENT_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_events_start_time ON events(start_time)",
    "CREATE INDEX IF NOT EXISTS idx_events_calendar_id ON events(calendar_id)",
    "CREATE INDEX IF NOT EXISTS idx_events_calendar_date ON events(calendar_id, start_time)",
]


# ==================== Migrations ====================
# Each entry upgrades the schema from (version - 1) or older to `version`.
# Statements of one step run inside a single transaction.

_MIGRATE_TO_V2 = [
    # Full event schema; the legacy description column becomes notes
    """
    CREATE TABLE events_new (
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
    """,
    """
    INSERT INTO events_new (uid, calendar_id, summary, location, all_day, start_time, end_time,
                            notes, created_at, updated_at)
    SELECT uid, calendar_id, summary, location, all_day, start_time, end_time,
           description, created_at, updated_at
    FROM events
    """,
    "DROP TABLE events",
    "ALTER TABLE events_new RENAME TO events",
    *_EVENT_INDEXES,
]

_MIGRATE_TO_V3 = [
    "ALTER TABLE events ADD COLUMN repeat_until TEXT",
]

_MIGRATE_TO_V4 = [
    # JSON array of YYYY-MM-DD strings
    "ALTER TABLE events ADD COLUMN exception_dates TEXT NOT NULL DEFAULT '[]'",
]

_MIGRATE_TO_V5 = [
    # uid is unique per calendar, not globally
    """
    CREATE TABLE events_new (
        uid TEXT NOT NULL,
        calendar_id TEXT NOT NULL,
        summary TEXT NOT NULL,
        location TEXT,
        all_day INTEGER NOT NULL DEFAULT 0,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        travel_time TEXT NOT NULL DEFAULT 'None',
        repeat TEXT NOT NULL DEFAULT 'Never',
        repeat_until TEXT,
        exception_dates TEXT NOT NULL DEFAULT '[]',
        invitees TEXT NOT NULL DEFAULT '[]',
        alert TEXT NOT NULL DEFAULT 'None',
        alert_second TEXT,
        attachments TEXT NOT NULL DEFAULT '[]',
        url TEXT,
        notes TEXT,
        created_at TEXT NOT NULL DEFAULT (datetime('now')),
        updated_at TEXT NOT NULL DEFAULT (datetime('now')),
        UNIQUE(calendar_id, uid)
    )
    """,
    """
    INSERT INTO events_new (uid, calendar_id, summary, location, all_day, start_time, end_time,
                            travel_time, repeat, repeat_until, exception_dates, invitees, alert,
                            alert_second, attachments, url, notes, created_at, updated_at)
    SELECT uid, calendar_id, summary, location, all_day, start_time, end_time,
           travel_time, repeat, repeat_until, exception_dates, invitees, alert,
           alert_second, attachments, url, notes, created_at, updated_at
    FROM events
    """,
    "DROP TABLE events",
    "ALTER TABLE events_new RENAME TO events",
    *_EVENT_INDEXES,
]

MIGRATIONS: list[tuple[int, list[str]]] = [
    (2, _MIGRATE_TO_V2),
    (3, _MIGRATE_TO_V3),
    (4, _MIGRATE_TO_V4),
    (5, _MIGRATE_TO_V5),
]


def _enable_transactional_ddl(engine: Engine) -> None:
    """
    Let SQLite run DDL inside our transactions.

    pysqlite only opens transactions implicitly before DML, which would
    leave ALTER/CREATE/DROP statements outside the migration transaction.
    """
    @sa_event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @sa_event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class EventStore:
    """
    SQLite-backed store of master events keyed by (calendar_id, uid).

    One store object owns the engine; every public operation is serialized
    by a process-wide lock, so a single instance can be shared between
    threads.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._lock = threading.RLock()

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIoError(f"Cannot create database directory {self.db_path.parent}: {e}") from e

        self._engine = create_engine(f"sqlite:///{self.db_path}")
        _enable_transactional_ddl(self._engine)

        try:
            with self._lock:
                self._init_schema()
        except Exception:
            self._engine.dispose()
            raise

        logger.info("Opened event database at %s", self.db_path)

    def __repr__(self):
        return f"EventStore(path={str(self.db_path)!r})"

    def __enter__(self) -> 'EventStore':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self) -> None:
        with self._lock:
            self._engine.dispose()

    # ==================== Schema ====================

    def _init_schema(self) -> None:
        try:
            version = self._read_schema_version()
            if version == 0 and self._has_table("events"):
                # Unstamped database from the first release
                logger.warning("Found events table without schema version, assuming v1")
                version = 1
            if version == 0:
                logger.info("Creating fresh database schema (v%d)", SCHEMA_VERSION)
                with self._engine.begin() as conn:
                    metadata.create_all(conn)
                    self._write_schema_version(conn, SCHEMA_VERSION)
            elif version < SCHEMA_VERSION:
                self._migrate(version)
            elif version > SCHEMA_VERSION:
                raise StorageIoError(
                    f"Database schema v{version} is newer than supported v{SCHEMA_VERSION}")
        except SQLAlchemyError as e:
            raise StorageIoError(f"Cannot initialize database {self.db_path}: {e}") from e

    def _has_table(self, name: str) -> bool:
        with self._engine.connect() as conn:
            return conn.execute(
                text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = :name"),
                {"name": name},
            ).scalar() is not None

    def _read_schema_version(self) -> int:
        """Stored schema version, or 0 for a database without one."""
        if not self._has_table("meta"):
            return 0
        with self._engine.connect() as conn:
            value = conn.execute(
                select(meta_table.c.value).where(meta_table.c.key == "schema_version")
            ).scalar()
        if value is None:
            return 0
        try:
            return int(value)
        except ValueError:
            logger.warning("Unreadable schema_version %r, treating database as fresh", value)
            return 0

    @staticmethod
    def _write_schema_version(conn: Connection, version: int) -> None:
        conn.execute(
            text("INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', :version)"),
            {"version": str(version)},
        )

    def _migrate(self, from_version: int) -> None:
        logger.info("Migrating database from v%d to v%d", from_version, SCHEMA_VERSION)
        for target, statements in MIGRATIONS:
            if from_version >= target:
                continue
            with self._engine.begin() as conn:
                meta_table.create(conn, checkfirst=True)
                for statement in statements:
                    conn.execute(text(statement))
                self._write_schema_version(conn, target)
            logger.info("Database migrated to v%d", target)

    @property
    def schema_version(self) -> int:
        with self._lock:
            try:
                return self._read_schema_version()
            except SQLAlchemyError as e:
                raise StorageIoError(f"Cannot read schema version: {e}") from e

    # ==================== Event Operations ====================

    def insert(self, calendar_id: str, event: MasterEvent) -> MasterEvent:
        """
        Insert a new event.

        Returns the event as stored (with created_at/updated_at stamped).

        Raises:
            ConflictError: if (calendar_id, uid) already exists.
        """
        now = utc_now()
        row = encode_event(calendar_id, event)
        row["created_at"] = format_rfc3339(event.created_at or now)
        row["updated_at"] = format_rfc3339(now)

        with self._lock:
            try:
                with self._engine.begin() as conn:
                    conn.execute(insert(events_table).values(**row))
            except IntegrityError as e:
                if "UNIQUE" in str(e.orig):
                    raise ConflictError(calendar_id, event.uid) from e
                raise StorageIoError(f"Failed to insert event {event.uid!r}: {e}") from e
            except SQLAlchemyError as e:
                raise StorageIoError(f"Failed to insert event {event.uid!r}: {e}") from e

        return replace(event, created_at=event.created_at or now, updated_at=now)

    def update(self, calendar_id: str, event: MasterEvent) -> bool:
        """
        Replace all fields of the event matched by (calendar_id, event.uid).

        Returns True if a row was updated, False if none matched.
        """
        row = encode_event(calendar_id, event)
        for key in ("uid", "calendar_id", "created_at"):
            row.pop(key, None)
        row["updated_at"] = format_rfc3339(utc_now())

        statement = (
            update(events_table)
            .where(events_table.c.calendar_id == calendar_id)
            .where(events_table.c.uid == event.uid)
            .values(**row)
        )
        return self._write(statement, f"update event {event.uid!r}") > 0

    def add_exception_date(self, calendar_id: str, uid: str, day: date) -> bool:
        """
        Suppress the occurrence of a recurring event on the given date.

        Read-modify-write under the store lock. Returns False if the event
        does not exist.
        """
        with self._lock:
            existing = self.get(calendar_id, uid)
            if existing is None:
                return False
            if day in existing.exception_dates:
                return True
            dates = existing.exception_dates + [day]
            statement = (
                update(events_table)
                .where(events_table.c.calendar_id == calendar_id)
                .where(events_table.c.uid == uid)
                .values(exception_dates=encode_dates(dates),
                        updated_at=format_rfc3339(utc_now()))
            )
            return self._write(statement, f"add exception date to {uid!r}") > 0

    def delete(self, calendar_id: str, uid: str) -> bool:
        """Delete an event. Returns whether a row was removed."""
        statement = (
            delete(events_table)
            .where(events_table.c.calendar_id == calendar_id)
            .where(events_table.c.uid == uid)
        )
        return self._write(statement, f"delete event {uid!r}") > 0

    def delete_all_for_calendar(self, calendar_id: str) -> int:
        """Delete every event of a calendar. Returns the number removed."""
        removed = self._write(
            delete(events_table).where(events_table.c.calendar_id == calendar_id),
            f"delete events of calendar {calendar_id!r}",
        )
        logger.info("Deleted %d events for calendar %r", removed, calendar_id)
        return removed

    def get(self, calendar_id: str, uid: str) -> Optional[MasterEvent]:
        """Get a single event, or None."""
        rows = self._query(
            select(events_table)
            .where(events_table.c.calendar_id == calendar_id)
            .where(events_table.c.uid == uid)
        )
        return rows[0].event if rows else None

    def list_for_calendar(self, calendar_id: str) -> list[MasterEvent]:
        """All events of a calendar, ordered by start time."""
        return [decoded.event for decoded in self.list_decoded(calendar_id)]

    def list_decoded(self, calendar_id: str) -> list[DecodedEvent]:
        """Like list_for_calendar, but keeps per-field decode warnings."""
        return self._query(
            select(events_table)
            .where(events_table.c.calendar_id == calendar_id)
            .order_by(events_table.c.start_time, events_table.c.uid)
        )

    def list_calendar_ids(self) -> list[str]:
        """Distinct calendar ids that have stored events."""
        with self._lock:
            try:
                with self._engine.connect() as conn:
                    result = conn.execute(
                        select(events_table.c.calendar_id).distinct().order_by(events_table.c.calendar_id)
                    )
                    return [row[0] for row in result]
            except SQLAlchemyError as e:
                raise StorageIoError(f"Failed to list calendars: {e}") from e

    def count(self, calendar_id: Optional[str] = None) -> int:
        query = select(func.count()).select_from(events_table)
        if calendar_id is not None:
            query = query.where(events_table.c.calendar_id == calendar_id)
        with self._lock:
            try:
                with self._engine.connect() as conn:
                    return conn.execute(query).scalar_one()
            except SQLAlchemyError as e:
                raise StorageIoError(f"Failed to count events: {e}") from e

    def _write(self, statement, what: str) -> int:
        """Execute a DML statement in its own transaction, returning the row count."""
        with self._lock:
            try:
                with self._engine.begin() as conn:
                    return conn.execute(statement).rowcount
            except SQLAlchemyError as e:
                raise StorageIoError(f"Failed to {what}: {e}") from e

    def _query(self, query) -> list[DecodedEvent]:
        with self._lock:
            try:
                with self._engine.connect() as conn:
                    rows = conn.execute(query).mappings().all()
            except SQLAlchemyError as e:
                raise StorageIoError(f"Failed to read events: {e}") from e
        return [decode_row(row) for row in rows]


def get_default_database_path() -> Path:
    """Get the default database path respecting XDG."""
    xdg_data = os.environ.get('XDG_DATA_HOME', os.path.expanduser('~/.local/share'))
    return Path(xdg_data) / APP_NAME / DATABASE_NAME


def open_event_store(db_path: Optional[Path] = None) -> EventStore:
    """Open (creating or migrating as needed) the event database."""
    if db_path is None:
        db_path = get_default_database_path()
    return EventStore(db_path)
