"""
Repository tests: sources, occurrence id resolution and expanded views.
"""

from datetime import date

import pytest

from solcal.errors import ConflictError, NotFoundError, StorageIoError
from solcal.event_repository import EventRepository
from solcal.models import CalendarSource, WEEKLY

from conftest import make_event, utc


class TestSources:
    def test_registered_sources(self, repository):
        assert [s.id for s in repository.get_all_sources()] == ["personal", "work"]
        assert repository.get_source("work").color == "#8B5CF6"
        assert repository.get_source("nope") is None

    def test_remove_source_keeps_events(self, repository):
        repository.create_event("work", make_event("m"))
        assert repository.remove_source("work") is True
        assert repository.remove_source("work") is False
        assert repository.get_event("work", "m") is not None

    def test_set_enabled(self, repository):
        repository.set_enabled("work", False)
        assert not repository.get_source("work").enabled
        with pytest.raises(KeyError):
            repository.set_enabled("nope", True)

    def test_opens_database_from_path(self, tmp_path):
        repo = EventRepository(db_path=tmp_path / "repo.db")
        try:
            repo.add_source(CalendarSource(id="x", name="X"))
            repo.create_event("x", make_event("a"))
            assert repo.get_event_count() == 1
        finally:
            repo.close()


class TestCrud:
    def test_create_assigns_uid(self, repository):
        stored = repository.create_event("work", make_event(""))
        assert stored.uid
        assert repository.get_event("work", stored.uid) is not None

    def test_create_conflict(self, repository):
        repository.create_event("work", make_event("m"))
        with pytest.raises(ConflictError):
            repository.create_event("work", make_event("m"))

    def test_update_through_occurrence_id(self, repository):
        repository.create_event("work", make_event("standup", repeat=WEEKLY))
        edited = make_event("standup_20250113", summary="Renamed", repeat=WEEKLY)
        repository.update_event("work", edited)

        master = repository.get_event("work", "standup")
        assert master.summary == "Renamed"
        assert master.uid == "standup"

    def test_update_missing_raises(self, repository):
        with pytest.raises(NotFoundError):
            repository.update_event("work", make_event("ghost"))

    def test_get_event_by_occurrence_id(self, repository):
        repository.create_event("work", make_event("standup", repeat=WEEKLY))
        assert repository.get_event("work", "standup_20250120").uid == "standup"

    def test_literal_uid_with_date_suffix(self, repository):
        repository.create_event("work", make_event("report_20250101"))
        assert repository.get_event("work", "report_20250101").uid == "report_20250101"
        assert repository.delete_event("work", "report_20250101") is True

    def test_delete_series_by_occurrence_id(self, repository):
        repository.create_event("work", make_event("standup", repeat=WEEKLY))
        assert repository.delete_event("work", "standup_20250120") is True
        assert repository.get_event("work", "standup") is None
        assert repository.delete_event("work", "standup") is False


class TestDeleteOccurrence:
    def test_recurring_adds_exception_date(self, repository):
        repository.create_event("work", make_event("standup", repeat=WEEKLY))
        assert repository.delete_occurrence("work", "standup_20250113") is True

        master = repository.get_event("work", "standup")
        assert master.exception_dates == [date(2025, 1, 13)]
        remaining = [occ.occurrence_date for _, occ in repository.get_instances(date(2025, 1, 1), date(2025, 1, 31))]
        assert remaining == [date(2025, 1, 6), date(2025, 1, 20), date(2025, 1, 27)]

    def test_non_recurring_is_deleted(self, repository):
        repository.create_event("work", make_event("once"))
        assert repository.delete_occurrence("work", "once_20250106") is True
        assert repository.get_event("work", "once") is None

    def test_missing_event(self, repository):
        assert repository.delete_occurrence("work", "ghost_20250106") is False

    def test_recurring_master_uid_is_not_an_occurrence(self, repository):
        repository.create_event("work", make_event("standup", repeat=WEEKLY))
        with pytest.raises(ValueError):
            repository.delete_occurrence("work", "standup")


class TestDeleteCalendar:
    def test_work_calendar_removed_personal_untouched(self, repository):
        for i in range(3):
            repository.create_event("work", make_event(f"w{i}"))
        repository.create_event("personal", make_event("p0"))
        repository.create_event("personal", make_event("w0"))

        assert repository.delete_calendar("work") == 3
        assert repository.get_source("work") is None
        assert repository.get_events("work") == []
        assert [e.uid for e in repository.get_events("personal")] == ["p0", "w0"]
        assert repository.get_event_count() == 2


class TestInstances:
    def test_sorted_across_calendars(self, repository):
        repository.create_event("work", make_event("late", start=utc(2025, 1, 6, 15)))
        repository.create_event("personal", make_event("early", start=utc(2025, 1, 6, 7)))
        repository.create_event("work", make_event("standup", start=utc(2025, 1, 6, 9), repeat=WEEKLY))

        instances = repository.get_instances(date(2025, 1, 6), date(2025, 1, 7))
        assert [(s.id, o.event.uid) for s, o in instances] == [
            ("personal", "early"), ("work", "standup_20250106"), ("work", "late")]

    def test_source_filter_and_disabled(self, repository):
        repository.create_event("work", make_event("w"))
        repository.create_event("personal", make_event("p"))

        only_work = repository.get_instances(date(2025, 1, 1), date(2025, 1, 31), ["work"])
        assert [o.event.uid for _, o in only_work] == ["w"]

        repository.set_enabled("work", False)
        remaining = repository.get_instances(date(2025, 1, 1), date(2025, 1, 31))
        assert [o.event.uid for _, o in remaining] == ["p"]

    def test_display_month_uses_source_colors(self, repository):
        repository.create_event("work", make_event("w"))
        result = repository.display_events_for_month(2025, 1)
        assert result[date(2025, 1, 6)][0].color == "#8B5CF6"

    def test_display_week(self, repository):
        repository.create_event("personal", make_event("p", repeat=WEEKLY))
        days = [date(2025, 1, 13 + i) for i in range(7)]
        result = repository.display_events_for_week(days)
        assert result[date(2025, 1, 13)][0].uid == "p_20250113"


class TestImportEvents:
    def test_duplicates_are_skipped_and_rest_imported(self, repository):
        repository.create_event("personal", make_event("a", summary="Existing"))
        stats = repository.import_events("personal", [
            make_event("a", summary="Incoming"),
            make_event("b"),
            make_event("c"),
        ])

        assert (stats.imported, stats.skipped, stats.failed) == (2, 1, 0)
        assert repository.get_event("personal", "a").summary == "Existing"
        assert repository.get_event("personal", "c") is not None

    def test_store_failure_is_counted_and_import_continues(self, repository, monkeypatch):
        original_insert = repository.store.insert

        def flaky_insert(calendar_id, event):
            if event.uid == "broken":
                raise StorageIoError("disk full")
            return original_insert(calendar_id, event)

        monkeypatch.setattr(repository.store, "insert", flaky_insert)
        stats = repository.import_events("work", [make_event("broken"), make_event("fine")])

        assert (stats.imported, stats.skipped, stats.failed) == (1, 0, 1)
        assert repository.get_event("work", "fine") is not None
