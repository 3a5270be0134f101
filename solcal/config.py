"""
Configuration parser for Sol Calendar.

Handles TOML file parsing. Calendar metadata (name, color, enabled) lives
here rather than in the event database.

Example:

    [General]
    database = "~/.local/share/sol-calendar/sol.db"
    first_day_of_week = "monday"

    [Calendar.work]
    name = "Work"
    color = "#8B5CF6"
    enabled = true
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .event_storage import APP_NAME, get_default_database_path
from .models import CalendarSource


WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# Colors palette for auto-assignment to calendars
CALENDAR_COLORS = [
    '#3B82F6',  # Blue
    '#8B5CF6',  # Purple
    '#10B981',  # Green
    '#EF4444',  # Red
    '#F59E0B',  # Amber
    '#06B6D4',  # Cyan
    '#EC4899',  # Pink
    '#6366F1',  # Indigo
    '#84CC16',  # Lime
    '#64748B',  # Slate
]


def get_next_color(used_colors: list[str]) -> str:
    """Get the next available color from the palette."""
    for color in CALENDAR_COLORS:
        if color.lower() not in [c.lower() for c in used_colors]:
            return color
    # If all colors are used, cycle back
    return CALENDAR_COLORS[len(used_colors) % len(CALENDAR_COLORS)]


@dataclass
class CalendarConfig:
    """Configuration for one calendar."""
    id: str
    name: str
    color: str = CALENDAR_COLORS[0]
    enabled: bool = True

    def to_source(self) -> CalendarSource:
        return CalendarSource(id=self.id, name=self.name, color=self.color, enabled=self.enabled)


def default_calendars() -> list[CalendarConfig]:
    """Calendars created when no configuration exists yet."""
    return [
        CalendarConfig(id="personal", name="Personal", color="#3B82F6"),
        CalendarConfig(id="work", name="Work", color="#8B5CF6"),
    ]


@dataclass
class Config:
    """Main configuration container for Sol Calendar."""

    database_path: Path
    first_day_of_week: int = 0  # date.weekday() numbering, 0 = Monday
    calendars: list[CalendarConfig] = field(default_factory=default_calendars)
    source_path: Optional[Path] = None

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get the default configuration file path."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
        return Path(xdg_config) / APP_NAME / f'{APP_NAME}.toml'

    @classmethod
    def default(cls) -> 'Config':
        return cls(database_path=get_default_database_path())

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'Config':
        """
        Load configuration from a TOML file.

        Without an explicit path, a missing default file yields the default
        configuration. An explicit path that does not exist is an error.

        Raises:
            FileNotFoundError: explicit config_path does not exist
            ValueError: invalid values in the file
        """
        if config_path is None:
            config_path = cls.get_default_config_path()
            if not config_path.exists():
                return cls.default()

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'rb') as f:
            data = tomllib.load(f)

        return cls.from_dict(data, source_path=config_path)

    @classmethod
    def from_dict(cls, data: dict, source_path: Optional[Path] = None) -> 'Config':
        general = data.get('General', {})

        database = general.get('database')
        if database:
            database_path = Path(os.path.expanduser(database))
        else:
            database_path = get_default_database_path()

        first_day_name = str(general.get('first_day_of_week', 'monday')).lower()
        if first_day_name not in WEEKDAYS:
            raise ValueError(f"Invalid first_day_of_week: {first_day_name!r}")

        # Supports both [Calendar.id] and [Calendar] with nested sub-tables;
        # TOML parses both into the same nested dict
        calendars = []
        used_colors = []
        for cal_id, value in data.get('Calendar', {}).items():
            if not isinstance(value, dict):
                continue
            color = value.get('color') or get_next_color(used_colors)
            used_colors.append(color)
            calendars.append(CalendarConfig(
                id=cal_id,
                name=value.get('name', cal_id),
                color=color,
                enabled=bool(value.get('enabled', True)),
            ))

        return cls(
            database_path=database_path,
            first_day_of_week=WEEKDAYS.index(first_day_name),
            calendars=calendars or default_calendars(),
            source_path=source_path,
        )

    def sources(self) -> list[CalendarSource]:
        return [cal.to_source() for cal in self.calendars]
