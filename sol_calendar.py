#!/usr/bin/env python3
"""
Sol Calendar - command line front end for the calendar event engine.

This is the main entry point for the application.
"""

import sys
import argparse
from pathlib import Path

from solcal.config import Config, WEEKDAYS
from solcal.display import week_days
from solcal.errors import CalendarEngineError
from solcal.event_repository import EventRepository
from solcal.ical_bridge import events_to_ical, parse_ical
from solcal.logging_config import setup_logging
from solcal.timezone_utils import parse_date


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Sol Calendar - local calendar events with recurrence"
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Path to configuration file (default: auto-detect)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    month = commands.add_parser("month", help="Show the month grid events")
    month.add_argument("year", type=int)
    month.add_argument("month", type=int)

    week = commands.add_parser("week", help="Show the week containing a date")
    week.add_argument("date", type=parse_date, help="YYYY-MM-DD")

    listing = commands.add_parser("list", help="List occurrences in a date range")
    listing.add_argument("start", type=parse_date, help="YYYY-MM-DD")
    listing.add_argument("end", type=parse_date, help="YYYY-MM-DD")
    listing.add_argument("--calendar", action="append", dest="calendars",
                         help="Only include this calendar (repeatable)")

    delete_cal = commands.add_parser("delete-calendar", help="Delete all events of a calendar")
    delete_cal.add_argument("calendar")

    delete_occ = commands.add_parser("delete-occurrence", help="Delete one occurrence of an event")
    delete_occ.add_argument("calendar")
    delete_occ.add_argument("occurrence_id")

    import_cmd = commands.add_parser("import", help="Import events from an .ics file")
    import_cmd.add_argument("calendar")
    import_cmd.add_argument("path", type=Path)

    export_cmd = commands.add_parser("export", help="Export a calendar as iCalendar")
    export_cmd.add_argument("calendar")
    export_cmd.add_argument("path", type=Path, nargs="?",
                            help="Output file (default: stdout)")

    return parser.parse_args(argv)


def print_days(events_by_date) -> None:
    for day in sorted(events_by_date):
        print(day.strftime("%a %Y-%m-%d"))
        for item in events_by_date[day]:
            if item.all_day:
                when = "all day"
            else:
                when = f"{item.start_time:%H:%M}-{item.end_time:%H:%M}"
            marker = ""
            if item.continues_before(day):
                marker += "<"
            if item.continues_after(day):
                marker += ">"
            print(f"  [{item.calendar_id}] {when:<11} {item.summary} {marker}".rstrip())


def run(args, config: Config, repository: EventRepository) -> int:
    if args.command == "month":
        print_days(repository.display_events_for_month(args.year, args.month))

    elif args.command == "week":
        days = week_days(args.date, config.first_day_of_week)
        print_days(repository.display_events_for_week(days))

    elif args.command == "list":
        for source, occurrence in repository.get_instances(args.start, args.end, args.calendars):
            event = occurrence.event
            print(f"{event.start:%Y-%m-%d %H:%M}  [{source.id}] {event.summary}  ({event.uid})")

    elif args.command == "delete-calendar":
        removed = repository.delete_calendar(args.calendar)
        print(f"Deleted {removed} events from {args.calendar}")

    elif args.command == "delete-occurrence":
        if not repository.delete_occurrence(args.calendar, args.occurrence_id):
            print(f"No event found for {args.occurrence_id}")
            return 1

    elif args.command == "import":
        result = parse_ical(args.path.read_text(encoding="utf-8"))
        for error in result.errors:
            print(f"Skipped: {error}", file=sys.stderr)
        stats = repository.import_events(args.calendar, result.events)
        print(f"Imported {stats.imported} events into {args.calendar}, "
              f"skipped {stats.skipped} duplicates, {stats.failed} failed")
        if stats.failed:
            return 1

    elif args.command == "export":
        text = events_to_ical(repository.get_events(args.calendar))
        if args.path:
            args.path.write_text(text, encoding="utf-8")
        else:
            sys.stdout.write(text)

    return 0


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.debug)

    # Load configuration
    try:
        config = Config.load(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        print("\nPlease create a configuration file at:")
        print(f"  - {Config.get_default_config_path()}")
        print("\nExample configuration:")
        print("""
[General]
database = "~/.local/share/sol-calendar/sol.db"
first_day_of_week = "monday"

[Calendar.work]
name = "Work"
color = "#8B5CF6"
""")
        return 1
    except (ValueError, OSError) as e:
        print(f"Error loading configuration: {e}")
        return 1

    if args.debug:
        print(f"Loaded configuration from: {config.source_path or 'defaults'}")
        print(f"  Database: {config.database_path}")
        print(f"  Calendars: {len(config.calendars)}")
        print(f"  Week starts on: {WEEKDAYS[config.first_day_of_week]}")

    try:
        repository = EventRepository(db_path=config.database_path)
    except CalendarEngineError as e:
        print(f"Error opening database: {e}")
        return 1

    for source in config.sources():
        repository.add_source(source)

    try:
        return run(args, config, repository)
    except (CalendarEngineError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        repository.close()


if __name__ == "__main__":
    sys.exit(main())
