"""Effective timezone resolution.

The zone used by a command is picked once per invocation from
``--timezone`` > config file ``timezone`` > the host's system zone, and is
validated against the IANA database before anything else runs.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from gcal.errors import InvalidTimezone

DEFAULT_TIMEZONE_NAME = "UTC"

_ETC_TIMEZONE = Path("/etc/timezone")
_ETC_LOCALTIME = Path("/etc/localtime")


def _zone_name_from_localtime(path: Path) -> Optional[str]:
    """Derive an IANA name from a ``/etc/localtime`` style symlink."""
    try:
        target = path.resolve(strict=True)
    except OSError:
        return None

    parts = target.parts
    for marker in ("zoneinfo", "zoneinfo-posix"):
        if marker in parts:
            name = "/".join(parts[parts.index(marker) + 1 :])
            return name or None
    return None


def system_timezone_name() -> str:
    """Return the host's IANA zone name, falling back to UTC.

    A ``TZ`` value that is not an IANA key (POSIX rules such as ``JST-9``)
    is skipped in favour of the system files.
    """
    env_tz = os.environ.get("TZ", "").strip().lstrip(":")
    if is_valid_timezone(env_tz):
        return env_tz

    try:
        configured = _ETC_TIMEZONE.read_text(encoding="utf-8").strip()
    except OSError:
        configured = ""
    if is_valid_timezone(configured):
        return configured

    return _zone_name_from_localtime(_ETC_LOCALTIME) or DEFAULT_TIMEZONE_NAME


def is_valid_timezone(name: str) -> bool:
    """Return True when *name* resolves in the IANA timezone database."""
    if not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def get_zone(name: str) -> ZoneInfo:
    """Return the ZoneInfo for *name* or raise InvalidTimezone."""
    if not is_valid_timezone(name):
        raise InvalidTimezone(f"Invalid timezone: {name}")
    return ZoneInfo(name)


def resolve_timezone(
    explicit: Optional[str] = None,
    configured: Optional[str] = None,
) -> str:
    """Pick the effective timezone name and validate it immediately."""
    if explicit is not None:
        name = explicit
    elif configured is not None:
        name = configured
    else:
        name = system_timezone_name()

    if not is_valid_timezone(name):
        raise InvalidTimezone(f"Invalid timezone: {name}")
    return name


__all__ = [
    "DEFAULT_TIMEZONE_NAME",
    "get_zone",
    "is_valid_timezone",
    "resolve_timezone",
    "system_timezone_name",
]
