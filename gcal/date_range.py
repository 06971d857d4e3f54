"""Date-range resolution for the list and search commands.

``--today``, ``--days``, ``--from`` and ``--to`` are turned into a half-open
``[time_min, time_max)`` window in the effective timezone.  "Today" is the
civil date in that zone, not on the host clock, so a UTC host asked about
Asia/Tokyo late in the evening already sees tomorrow's date.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Callable, Optional

from gcal.errors import InvalidRangeLength
from gcal.temporal import (
    ONE_DAY,
    DateOnly,
    civil_date,
    format_instant,
    parse_temporal,
    start_of_day,
)

DEFAULT_DAYS = 7
DEFAULT_SEARCH_DAYS = 30

FROM_DEFAULTED_WARNING = "--from not specified, defaulting to today"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


@dataclass(slots=True)
class DateRangeInput:
    """Range flags as given on the command line."""

    today: bool = False
    days: Optional[int] = None
    from_: Optional[str] = None
    to: Optional[str] = None


@dataclass(slots=True)
class ResolvedDateRange:
    """Half-open instant range; ``time_max`` is exclusive."""

    time_min: datetime.datetime
    time_max: datetime.datetime
    timezone: str
    warning: Optional[str] = None

    @property
    def time_min_rfc3339(self) -> str:
        return format_instant(self.time_min, self.timezone)

    @property
    def time_max_rfc3339(self) -> str:
        return format_instant(self.time_max, self.timezone)

    def as_params(self) -> dict[str, str]:
        """Return ``timeMin``/``timeMax`` query parameters."""
        return {"timeMin": self.time_min_rfc3339, "timeMax": self.time_max_rfc3339}


def _from_bounds(value: str, tz: str, days: int) -> tuple[datetime.datetime, datetime.datetime]:
    parsed = parse_temporal(value, tz)
    if isinstance(parsed, DateOnly):
        return (
            start_of_day(parsed.date, tz),
            start_of_day(parsed.date + datetime.timedelta(days=days), tz),
        )
    return parsed.value, parsed.value + datetime.timedelta(days=days)


def _upper_bound(value: str, tz: str) -> datetime.datetime:
    # --to is inclusive, so the exclusive bound is one day later.
    parsed = parse_temporal(value, tz)
    if isinstance(parsed, DateOnly):
        return start_of_day(parsed.date + ONE_DAY, tz)
    return parsed.value + ONE_DAY


def resolve_date_range(
    options: DateRangeInput,
    tz: str,
    now: Callable[[], datetime.datetime] = utcnow,
    *,
    default_days: int = DEFAULT_DAYS,
) -> ResolvedDateRange:
    """Turn range flags into a ResolvedDateRange in *tz*.

    Precedence: ``today`` > ``from_`` (with optional ``to``) > ``to`` alone
    (from defaults to today, with a warning) > ``days``.
    """
    warning: Optional[str] = None

    if options.today:
        today = civil_date(now(), tz)
        time_min = start_of_day(today, tz)
        time_max = start_of_day(today + ONE_DAY, tz)
    elif options.from_:
        time_min, time_max = _from_bounds(options.from_, tz, DEFAULT_DAYS)
        if options.to:
            time_max = _upper_bound(options.to, tz)
    elif options.to:
        time_min = start_of_day(civil_date(now(), tz), tz)
        time_max = _upper_bound(options.to, tz)
        warning = FROM_DEFAULTED_WARNING
    else:
        days = options.days if options.days is not None else default_days
        if days <= 0:
            raise InvalidRangeLength("--days must be a positive integer")
        today = civil_date(now(), tz)
        time_min = start_of_day(today, tz)
        time_max = start_of_day(today + datetime.timedelta(days=days), tz)

    if time_max <= time_min:
        raise InvalidRangeLength(
            f"--to ({options.to}) must not be before --from "
            f"({options.from_ or 'today'})"
        )

    return ResolvedDateRange(
        time_min=time_min, time_max=time_max, timezone=tz, warning=warning
    )


__all__ = [
    "DEFAULT_DAYS",
    "DEFAULT_SEARCH_DAYS",
    "DateRangeInput",
    "FROM_DEFAULTED_WARNING",
    "ResolvedDateRange",
    "resolve_date_range",
    "utcnow",
]
