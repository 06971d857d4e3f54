"""Temporal value classification and calendar arithmetic.

A value written exactly as ``YYYY-MM-DD`` is a date-only (all-day) value;
anything else must be a zoned instant.  The tag is decided by the lexical
form alone, never by what the caller meant.
"""

from __future__ import annotations

import datetime
import re
from dataclasses import dataclass
from enum import Enum
from typing import Union

from dateutil import parser as dateutil_parser

from gcal.errors import InvalidDateTime
from gcal.timezones import get_zone

DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$", re.ASCII)

ONE_DAY = datetime.timedelta(days=1)


class EventKind(str, Enum):
    """Whether an event spans calendar days or has explicit instants."""

    ALL_DAY = "all-day"
    TIMED = "timed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class DateOnly:
    """A calendar date with no time-of-day or zone."""

    date: datetime.date

    @property
    def kind(self) -> EventKind:
        return EventKind.ALL_DAY

    def isoformat(self) -> str:
        return self.date.isoformat()


@dataclass(frozen=True, slots=True)
class Instant:
    """An aware point in time."""

    value: datetime.datetime

    def __post_init__(self) -> None:
        if self.value.tzinfo is None:
            raise ValueError("Instant requires an aware datetime")

    @property
    def kind(self) -> EventKind:
        return EventKind.TIMED

    def isoformat(self) -> str:
        return self.value.isoformat(timespec="seconds")


TemporalValue = Union[DateOnly, Instant]


@dataclass(frozen=True, slots=True)
class EventTimeRange:
    """Start and end of an event; both ends always carry the same tag.

    For date-only ranges ``end`` is exclusive (a one-day event ends on the
    following date).  For instant ranges ``end`` is the literal end.
    """

    start: TemporalValue
    end: TemporalValue

    def __post_init__(self) -> None:
        if type(self.start) is not type(self.end):
            raise ValueError("EventTimeRange ends must both be dates or both instants")

    @property
    def kind(self) -> EventKind:
        return self.start.kind


def classify(value: str) -> EventKind:
    """Return the event kind implied by the lexical form of *value*.

    No calendar validation happens here: ``2026-02-30`` is still all-day.
    """
    if DATE_ONLY_RE.fullmatch(value):
        return EventKind.ALL_DAY
    return EventKind.TIMED


def parse_date(value: str) -> datetime.date:
    """Build a date from a ``YYYY-MM-DD`` string."""
    try:
        return datetime.date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidDateTime(f"Invalid date: {value}") from exc


def parse_instant(value: str, tz: str) -> datetime.datetime:
    """Parse an ISO-8601 datetime, interpreting naive values in *tz*.

    Offset-qualified input keeps its instant and is re-expressed in *tz*.
    """
    zone = get_zone(tz)
    try:
        parsed = dateutil_parser.isoparse(value)
    except (ValueError, OverflowError) as exc:
        raise InvalidDateTime(f"Invalid datetime: {value}") from exc

    if parsed.tzinfo is None:
        return _normalize(parsed.replace(tzinfo=zone), zone)
    return parsed.astimezone(zone)


def parse_temporal(value: str, tz: str) -> TemporalValue:
    """Classify *value* and construct the matching temporal value."""
    if classify(value) is EventKind.ALL_DAY:
        return DateOnly(parse_date(value))
    return Instant(parse_instant(value, tz))


def parse_api_time(field: dict | None, tz: str) -> TemporalValue | None:
    """Convert a Google ``start``/``end`` object into a temporal value."""
    if not field:
        return None
    if field.get("date"):
        return DateOnly(parse_date(field["date"]))
    if field.get("dateTime"):
        return Instant(parse_instant(field["dateTime"], tz))
    return None


def add_days_to_date_string(value: str, days: int) -> str:
    """Add *days* to a ``YYYY-MM-DD`` string.

    Pure calendar arithmetic; the result never depends on the host zone.
    """
    return (parse_date(value) + datetime.timedelta(days=days)).isoformat()


def _normalize(value: datetime.datetime, zone: datetime.tzinfo) -> datetime.datetime:
    # Round-trip through UTC so wall times inside a DST gap become real instants.
    return value.astimezone(datetime.UTC).astimezone(zone)


def start_of_day(day: datetime.date, tz: str) -> datetime.datetime:
    """Return midnight of the civil date *day* in *tz*."""
    zone = get_zone(tz)
    return _normalize(datetime.datetime.combine(day, datetime.time.min, tzinfo=zone), zone)


def civil_date(instant: datetime.datetime, tz: str) -> datetime.date:
    """Return the date *instant* falls on as seen from *tz*."""
    return instant.astimezone(get_zone(tz)).date()


def format_instant(value: datetime.datetime, tz: str) -> str:
    """Serialize *value* in *tz* with an explicit UTC offset."""
    return value.astimezone(get_zone(tz)).isoformat(timespec="seconds")


def format_temporal(value: TemporalValue, tz: str) -> str:
    """Serialize a temporal value the way the Calendar API expects it."""
    if isinstance(value, DateOnly):
        return value.isoformat()
    return format_instant(value.value, tz)


__all__ = [
    "DATE_ONLY_RE",
    "DateOnly",
    "EventKind",
    "EventTimeRange",
    "Instant",
    "ONE_DAY",
    "TemporalValue",
    "add_days_to_date_string",
    "civil_date",
    "classify",
    "format_instant",
    "format_temporal",
    "parse_api_time",
    "parse_date",
    "parse_instant",
    "parse_temporal",
    "start_of_day",
]
