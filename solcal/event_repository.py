"""
Event repository: calendar sources plus the shared event store.

This is the layer UI actions talk to. It owns the registered calendars,
resolves virtual occurrence ids back to master events, and provides
recurrence-expanded views over all enabled calendars.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Iterable, Optional

from .display import DisplayEvent, aggregate, aggregate_month, aggregate_week
from .errors import CalendarEngineError, ConflictError, NotFoundError
from .event_storage import EventStore, open_event_store
from .models import CalendarSource, MasterEvent, Occurrence
from .occurrence_id import from_occurrence_id, occurrence_date_of
from .recurrence import expand


logger = logging.getLogger(__name__)


def new_uid() -> str:
    return str(uuid.uuid4())


@dataclass
class ImportStats:
    """Counts from a batch import into one calendar."""
    imported: int = 0
    skipped: int = 0
    failed: int = 0


class EventRepository:
    """
    Repository for master events across calendar sources.

    Stores master events in the EventStore keyed by (calendar_id, uid) and
    expands them into occurrences on demand. Occurrences are never stored.
    """

    def __init__(self, store: Optional[EventStore] = None, db_path: Optional[Path] = None):
        self._store = store if store is not None else open_event_store(db_path)
        self._sources: dict[str, CalendarSource] = {}

    @property
    def store(self) -> EventStore:
        return self._store

    def close(self) -> None:
        self._store.close()

    # ==================== Source Management ====================

    def add_source(self, source: CalendarSource) -> None:
        """Register a calendar source."""
        self._sources[source.id] = source

    def remove_source(self, source_id: str) -> bool:
        """Unregister a calendar source (its events stay stored)."""
        return self._sources.pop(source_id, None) is not None

    def get_source(self, source_id: str) -> Optional[CalendarSource]:
        return self._sources.get(source_id)

    def get_all_sources(self) -> list[CalendarSource]:
        return list(self._sources.values())

    def set_enabled(self, source_id: str, enabled: bool) -> None:
        source = self._sources.get(source_id)
        if source is None:
            raise KeyError(f"Unknown source: {source_id}")
        source.enabled = enabled

    def delete_calendar(self, calendar_id: str) -> int:
        """
        Delete all events of a calendar and unregister it.

        Returns the number of events removed.
        """
        removed = self._store.delete_all_for_calendar(calendar_id)
        self._sources.pop(calendar_id, None)
        return removed

    # ==================== Event Resolution ====================

    def _resolve(self, calendar_id: str, uid: str) -> Optional[MasterEvent]:
        """
        Find the master event addressed by a uid or occurrence id.

        The stripped master uid wins; a stored uid that merely looks like an
        occurrence id is used when no such master exists.
        """
        master_uid = from_occurrence_id(uid)
        master = self._store.get(calendar_id, master_uid)
        if master is None and master_uid != uid:
            master = self._store.get(calendar_id, uid)
        return master

    def get_event(self, calendar_id: str, uid: str) -> Optional[MasterEvent]:
        """Get the master event for a uid or occurrence id."""
        return self._resolve(calendar_id, uid)

    def get_events(self, calendar_id: str) -> list[MasterEvent]:
        """All master events of a calendar."""
        return self._store.list_for_calendar(calendar_id)

    # ==================== CRUD Operations ====================

    def create_event(self, calendar_id: str, event: MasterEvent) -> MasterEvent:
        """
        Store a new event.

        Raises:
            ConflictError: the uid already exists in this calendar.
        """
        if not event.uid:
            event = replace(event, uid=new_uid())
        return self._store.insert(calendar_id, event)

    def update_event(self, calendar_id: str, event: MasterEvent) -> None:
        """
        Replace a whole event series.

        event.uid may be an occurrence id; the master is updated.

        Raises:
            NotFoundError: no such master event in this calendar.
        """
        master = self._resolve(calendar_id, event.uid)
        if master is None:
            raise NotFoundError(calendar_id, event.uid)
        if master.uid != event.uid:
            event = replace(event, uid=master.uid)
        if not self._store.update(calendar_id, event):
            raise NotFoundError(calendar_id, event.uid)

    def delete_event(self, calendar_id: str, uid: str) -> bool:
        """
        Delete an event series. Accepts occurrence ids.

        Returns whether anything was removed.
        """
        master = self._resolve(calendar_id, uid)
        if master is None:
            return False
        return self._store.delete(calendar_id, master.uid)

    def delete_occurrence(self, calendar_id: str, occurrence_id: str) -> bool:
        """
        Delete a single occurrence.

        For recurring events the occurrence date is added to the master's
        exception dates; a non-recurring event is deleted outright.
        Returns whether anything changed.
        """
        master = self._resolve(calendar_id, occurrence_id)
        if master is None:
            return False

        if not master.is_recurring:
            return self._store.delete(calendar_id, master.uid)

        day = occurrence_date_of(occurrence_id)
        if day is None or master.uid == occurrence_id:
            raise ValueError(f"{occurrence_id!r} does not identify a single occurrence")

        logger.debug("Adding exception date %s to %s", day, master.uid)
        return self._store.add_exception_date(calendar_id, master.uid, day)

    # ==================== Recurrence Expansion ====================

    def _enabled_sources(self, source_ids: Optional[list[str]] = None) -> list[CalendarSource]:
        if source_ids is not None:
            sources = [self._sources[sid] for sid in source_ids if sid in self._sources]
        else:
            sources = list(self._sources.values())
        return [s for s in sources if s.enabled]

    def get_instances(
        self,
        range_start: date,
        range_end: date,
        source_ids: Optional[list[str]] = None,
    ) -> list[tuple[CalendarSource, Occurrence]]:
        """
        Expanded occurrences for a date range.

        Args:
            range_start: First date (inclusive)
            range_end: Last date (inclusive)
            source_ids: Optional list of source IDs to filter by

        Returns:
            (source, occurrence) pairs sorted by start time
        """
        instances = []
        for source in self._enabled_sources(source_ids):
            for master in self._store.list_for_calendar(source.id):
                for occurrence in expand(master, range_start, range_end):
                    instances.append((source, occurrence))

        instances.sort(key=lambda pair: (pair[1].event.start, pair[1].event.uid))
        return instances

    def display_events(self, range_start: date, range_end: date) -> dict[date, list[DisplayEvent]]:
        return aggregate(self._enabled_sources(), self._store.list_for_calendar, range_start, range_end)

    def display_events_for_month(self, year: int, month: int) -> dict[date, list[DisplayEvent]]:
        return aggregate_month(self._enabled_sources(), self._store.list_for_calendar, year, month)

    def display_events_for_week(self, days: list[date]) -> dict[date, list[DisplayEvent]]:
        return aggregate_week(self._enabled_sources(), self._store.list_for_calendar, days)

    # ==================== Batch Import ====================

    def import_events(self, calendar_id: str, events: Iterable[MasterEvent]) -> ImportStats:
        """
        Add events to a calendar one by one.

        Events whose uid already exists in the calendar are skipped; any
        other per-event failure is logged and counted, and the remaining
        events are still imported.
        """
        stats = ImportStats()
        for event in events:
            try:
                self.create_event(calendar_id, event)
            except ConflictError:
                logger.debug("Skipping duplicate event %s in %r", event.uid, calendar_id)
                stats.skipped += 1
            except CalendarEngineError as e:
                logger.error("Failed to import event %s: %s", event.uid, e)
                stats.failed += 1
            else:
                stats.imported += 1
        return stats

    # ==================== Statistics ====================

    def get_event_count(self) -> int:
        """Get total number of stored master events."""
        return self._store.count()
