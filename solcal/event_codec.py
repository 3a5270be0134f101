"""
Row encoding for master events.

Maps a MasterEvent to the flat column values of the events table and back.
Enum fields are JSON encoded the same way older releases wrote them: unit
variants as JSON strings ("Weekly") and the custom recurrence as
{"Custom": "<rule>"}. Lists are JSON arrays; exception dates are ISO dates.

Decoding never fails as a whole: a corrupt field falls back to its safe
default and is reported as a FieldWarning, so the rest of the record stays
available.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional, Type, TypeVar

from .errors import DecodeError
from .models import MasterEvent, Repeat, RepeatFrequency, TravelTime, AlertTime, NEVER
from .timezone_utils import format_rfc3339, parse_timestamp, format_date, parse_date, utc_now


logger = logging.getLogger(__name__)

E = TypeVar('E', bound=Enum)


@dataclass
class FieldWarning:
    """A field that could not be decoded and was replaced by its default."""
    field: str
    raw: Any
    reason: str

    def __str__(self):
        return f"{self.field}: {self.reason} (raw={self.raw!r})"


@dataclass
class DecodedEvent:
    calendar_id: str
    event: MasterEvent
    warnings: list[FieldWarning] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


# ==================== Encoding ====================

def encode_enum(value: Enum) -> str:
    return json.dumps(value.value)


def encode_repeat(repeat: Repeat) -> str:
    if repeat.frequency is RepeatFrequency.CUSTOM:
        return json.dumps({"Custom": repeat.rule or ""})
    return json.dumps(repeat.frequency.value)


def encode_list(values: list) -> str:
    return json.dumps(list(values), ensure_ascii=False)


def encode_dates(values: list[date]) -> str:
    return json.dumps([format_date(d) for d in values])


def encode_event(calendar_id: str, event: MasterEvent) -> dict:
    """
    Encode an event as a dict of events-table column values.

    created_at/updated_at are only included when set on the event.
    """
    row = {
        "uid": event.uid,
        "calendar_id": calendar_id,
        "summary": event.summary,
        "location": event.location,
        "all_day": int(bool(event.all_day)),
        "start_time": format_rfc3339(event.start),
        "end_time": format_rfc3339(event.end),
        "travel_time": encode_enum(event.travel_time),
        "repeat": encode_repeat(event.repeat),
        "repeat_until": format_date(event.repeat_until) if event.repeat_until else None,
        "exception_dates": encode_dates(event.exception_dates),
        "invitees": encode_list(event.invitees),
        "alert": encode_enum(event.alert),
        "alert_second": encode_enum(event.alert_second) if event.alert_second else None,
        "attachments": encode_list(event.attachments),
        "url": event.url,
        "notes": event.notes,
    }
    if event.created_at is not None:
        row["created_at"] = format_rfc3339(event.created_at)
    if event.updated_at is not None:
        row["updated_at"] = format_rfc3339(event.updated_at)
    return row


# ==================== Decoding ====================

def _load_tag(raw: str) -> Any:
    """Load a JSON enum tag, accepting the bare tags used as column defaults."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw.strip()


def decode_enum(enum_type: Type[E], raw: Optional[str], field_name: str = "") -> E:
    """
    Decode an enum column.

    Raises:
        DecodeError: for unknown variants or non-string payloads.
    """
    if raw is None:
        raise DecodeError(field_name, raw, "missing value")
    tag = _load_tag(raw)
    if not isinstance(tag, str):
        raise DecodeError(field_name, raw, "expected a variant name")
    try:
        return enum_type(tag)
    except ValueError:
        raise DecodeError(field_name, raw, f"unknown {enum_type.__name__} variant {tag!r}")


def decode_repeat(raw: Optional[str]) -> Repeat:
    """
    Decode the repeat column.

    Raises:
        DecodeError: for unknown variants or malformed custom payloads.
    """
    if raw is None:
        raise DecodeError("repeat", raw, "missing value")
    tag = _load_tag(raw)
    if isinstance(tag, dict):
        if set(tag) != {"Custom"} or not isinstance(tag["Custom"], str):
            raise DecodeError("repeat", raw, "malformed custom rule")
        return Repeat.custom(tag["Custom"])
    if not isinstance(tag, str):
        raise DecodeError("repeat", raw, "expected a variant name")
    try:
        frequency = RepeatFrequency(tag)
    except ValueError:
        raise DecodeError("repeat", raw, f"unknown repeat variant {tag!r}")
    if frequency is RepeatFrequency.CUSTOM:
        raise DecodeError("repeat", raw, "custom repeat without a rule")
    return Repeat(frequency)


def decode_string_list(raw: Optional[str], field_name: str = "") -> list[str]:
    """
    Decode a JSON array of strings.

    Raises:
        DecodeError: if the payload is not an array of strings.
    """
    if raw is None:
        raise DecodeError(field_name, raw, "missing value")
    try:
        values = json.loads(raw)
    except ValueError as e:
        raise DecodeError(field_name, raw, f"invalid JSON: {e}")
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise DecodeError(field_name, raw, "expected an array of strings")
    return values


class _RowDecoder:
    """Collects field warnings while decoding one row."""

    def __init__(self, row: Mapping[str, Any]):
        self.row = row
        self.warnings: list[FieldWarning] = []

    def warn(self, field_name: str, raw: Any, reason: str) -> None:
        self.warnings.append(FieldWarning(field_name, raw, reason))

    def guarded(self, field_name: str, decode, default):
        """Run decode(raw), falling back to default on DecodeError."""
        raw = self.row.get(field_name)
        try:
            return decode(raw)
        except DecodeError as e:
            self.warn(field_name, raw, e.reason)
            return default

    def timestamp(self, field_name: str, default: Optional[datetime]) -> Optional[datetime]:
        raw = self.row.get(field_name)
        if raw is None:
            if default is not None:
                self.warn(field_name, raw, "missing value")
            return default
        try:
            return parse_timestamp(str(raw))
        except ValueError as e:
            self.warn(field_name, raw, f"invalid timestamp: {e}")
            return default

    def optional_date(self, field_name: str) -> Optional[date]:
        raw = self.row.get(field_name)
        if raw in (None, ""):
            return None
        try:
            return parse_date(raw)
        except (TypeError, ValueError):
            self.warn(field_name, raw, "invalid date")
            return None

    def date_list(self, field_name: str) -> list[date]:
        raw = self.row.get(field_name)
        if raw is None:
            # Rows written before the column existed
            return []
        try:
            values = decode_string_list(raw, field_name)
        except DecodeError as e:
            self.warn(field_name, raw, e.reason)
            return []
        dates = []
        for value in values:
            try:
                dates.append(parse_date(value))
            except ValueError:
                self.warn(field_name, value, "invalid date entry skipped")
        return dates


def decode_row(row: Mapping[str, Any]) -> DecodedEvent:
    """
    Decode an events-table row into a MasterEvent.

    Never raises for bad field payloads; see DecodedEvent.warnings.
    """
    d = _RowDecoder(row)

    start = d.timestamp("start_time", utc_now())
    end = d.timestamp("end_time", start)

    alert_second_raw = row.get("alert_second")
    alert_second = None
    if alert_second_raw is not None:
        alert_second = d.guarded(
            "alert_second", lambda raw: decode_enum(AlertTime, raw, "alert_second"), None)

    event = MasterEvent(
        uid=row["uid"],
        summary=row.get("summary") or "",
        start=start,
        end=end,
        location=row.get("location"),
        notes=row.get("notes"),
        url=row.get("url"),
        all_day=bool(row.get("all_day")),
        travel_time=d.guarded(
            "travel_time", lambda raw: decode_enum(TravelTime, raw, "travel_time"), TravelTime.NONE),
        repeat=d.guarded("repeat", decode_repeat, NEVER),
        repeat_until=d.optional_date("repeat_until"),
        exception_dates=d.date_list("exception_dates"),
        invitees=d.guarded(
            "invitees", lambda raw: decode_string_list(raw, "invitees"), []),
        attachments=d.guarded(
            "attachments", lambda raw: decode_string_list(raw, "attachments"), []),
        alert=d.guarded("alert", lambda raw: decode_enum(AlertTime, raw, "alert"), AlertTime.NONE),
        alert_second=alert_second,
        created_at=d.timestamp("created_at", None),
        updated_at=d.timestamp("updated_at", None),
    )

    if d.warnings:
        logger.warning("Event %s decoded with defaults: %s",
                       event.uid, "; ".join(str(w) for w in d.warnings))

    return DecodedEvent(calendar_id=row.get("calendar_id", ""), event=event, warnings=d.warnings)
