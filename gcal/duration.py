"""Compound duration parsing (``30m``, ``1h``, ``2d``, ``1d2h30m``)."""

from __future__ import annotations

import re

from gcal.errors import DayUnitDurationRequired, InvalidDuration, ZeroDuration

DURATION_RE = re.compile(r"^(?:(\d+)d)?(?:(\d+)h)?(?:(\d+)m)?$", re.ASCII)

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR


def parse_duration(value: str) -> int:
    """Parse a compound duration string into milliseconds.

    Components are optional but ordered (days, hours, minutes) and at least
    one must be present.  A duration that adds up to zero is rejected.
    """
    match = DURATION_RE.fullmatch(value) if value else None
    if match is None:
        raise InvalidDuration(
            f'Invalid duration: "{value}". Use formats like 30m, 1h, 2d, 1h30m.'
        )

    days, hours, minutes = (int(group or 0) for group in match.groups())
    ms = ((days * 24 + hours) * 60 + minutes) * MS_PER_MINUTE

    if ms == 0:
        raise ZeroDuration("Duration must be greater than zero.")
    return ms


def require_whole_days(ms: int, value: str) -> int:
    """Return *ms* as a day count, or fail when it is not whole days."""
    days, remainder = divmod(ms, MS_PER_DAY)
    if remainder:
        raise DayUnitDurationRequired(
            f'All-day events require a duration in whole days (e.g. 1d, 2d), got "{value}".'
        )
    return days


def decompose(ms: int) -> tuple[int, int, int]:
    """Split milliseconds into (days, hours, minutes)."""
    days, rest = divmod(ms, MS_PER_DAY)
    hours, rest = divmod(rest, MS_PER_HOUR)
    return days, hours, rest // MS_PER_MINUTE


def format_duration(ms: int) -> str:
    """Render milliseconds in the same compact grammar parse_duration reads."""
    days, hours, minutes = decompose(ms)
    text = ""
    if days:
        text += f"{days}d"
    if hours:
        text += f"{hours}h"
    if minutes or not text:
        text += f"{minutes}m"
    return text


__all__ = [
    "DURATION_RE",
    "MS_PER_DAY",
    "MS_PER_HOUR",
    "MS_PER_MINUTE",
    "decompose",
    "format_duration",
    "parse_duration",
    "require_whole_days",
]
