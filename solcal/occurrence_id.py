"""
Virtual occurrence identifiers.

A single occurrence of a recurring event is addressed as
"{master_uid}_{YYYYMMDD}". No row exists for it; every action on an
occurrence must be resolved back to the master uid first.
"""

import re
from datetime import date, datetime
from typing import Optional


# Underscore followed by exactly eight ASCII digits at the very end; the
# master uid part may be empty
_OCCURRENCE_RE = re.compile(r"(.*)_([0-9]{8})", re.DOTALL)


def to_occurrence_id(master_uid: str, occurrence_date: date) -> str:
    """Build the virtual id of the occurrence of master_uid on occurrence_date."""
    return f"{master_uid}_{occurrence_date.year:04d}{occurrence_date.month:02d}{occurrence_date.day:02d}"


def from_occurrence_id(occurrence_id: str) -> str:
    """
    Return the master uid for an occurrence id.

    Plain uids without a date suffix are returned unchanged.
    """
    match = _OCCURRENCE_RE.fullmatch(occurrence_id)
    if match is None:
        return occurrence_id
    return match.group(1)


def occurrence_date_of(occurrence_id: str) -> Optional[date]:
    """
    Return the date encoded in an occurrence id.

    None if there is no suffix or it is not a valid calendar date.
    """
    match = _OCCURRENCE_RE.fullmatch(occurrence_id)
    if match is None:
        return None
    try:
        return datetime.strptime(match.group(2), "%Y%m%d").date()
    except ValueError:
        return None


def is_occurrence_id(identifier: str) -> bool:
    return occurrence_date_of(identifier) is not None
