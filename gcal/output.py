"""JSON envelopes and plain-text rendering of command results."""

from __future__ import annotations

import datetime
import json
from typing import Any, Iterable, List, Optional

from gcal.api import Calendar, CalendarEvent
from gcal.duration import format_duration
from gcal.temporal import add_days_to_date_string

CALENDAR_ID_MAX = 15
CALENDAR_ID_COL = 18


def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def format_json_success(data: Any) -> str:
    return json.dumps({"success": True, "data": _jsonable(data)}, indent=2, ensure_ascii=False)


def format_json_error(code: str, message: str) -> str:
    return json.dumps(
        {"success": False, "error": {"code": code, "message": message}},
        indent=2,
        ensure_ascii=False,
    )


# ---------------------------------------------------------------------------
# Event text helpers
# ---------------------------------------------------------------------------


def _date_key(event: CalendarEvent) -> str:
    return event.start if event.all_day else event.start[:10]


def _day_of_week(date_str: str) -> str:
    try:
        return datetime.date.fromisoformat(date_str).strftime("%a")
    except ValueError:
        return "???"


def _time_range(event: CalendarEvent) -> str:
    if event.all_day:
        return "[All Day]  "
    return f"{event.start[11:16]}-{event.end[11:16]}"


def _transparency_tag(event: CalendarEvent) -> str:
    return "[free]" if event.transparency == "transparent" else "[busy]"


def inclusive_end_date(event: CalendarEvent) -> str:
    """Return the last day an all-day event covers (the API end is exclusive)."""
    if not event.end:
        return event.start
    return add_days_to_date_string(event.end, -1)


def _timed_duration(event: CalendarEvent) -> Optional[str]:
    try:
        elapsed = datetime.datetime.fromisoformat(event.end) - datetime.datetime.fromisoformat(
            event.start
        )
    except (ValueError, TypeError):
        return None
    ms = elapsed // datetime.timedelta(milliseconds=1)
    return format_duration(ms) if ms > 0 else None


def format_event_list_text(events: Iterable[CalendarEvent]) -> str:
    """Group events by day, one line per event."""
    groups: dict[str, List[CalendarEvent]] = {}
    for event in events:
        groups.setdefault(_date_key(event), []).append(event)

    lines: List[str] = []
    for date_key, group in groups.items():
        if lines:
            lines.append("")
        lines.append(f"{date_key} ({_day_of_week(date_key)})")
        for event in group:
            lines.append(
                f"  {_time_range(event)}   {event.title} "
                f"({event.calendar_name}) {_transparency_tag(event)}"
            )
    return "\n".join(lines)


def format_quiet_text(events: Iterable[CalendarEvent]) -> str:
    lines = []
    for event in events:
        if event.all_day:
            lines.append(f"[All Day]     {event.title}")
        else:
            lines.append(f"{event.start[11:16]}-{event.end[11:16]}   {event.title}")
    return "\n".join(lines) if lines else "No events found."


def format_search_result_text(query: str, events: List[CalendarEvent]) -> str:
    count = len(events)
    plural = "event" if count == 1 else "events"
    header = f'Found {count} {plural} matching "{query}":'
    if not count:
        return header

    lines = [header, ""]
    for event in events:
        if event.all_day:
            when = f"{_date_key(event)} [All Day]  "
        else:
            when = f"{_date_key(event)} {event.start[11:16]}-{event.end[11:16]}"
        lines.append(
            f"{when}  {event.title} ({event.calendar_name}) {_transparency_tag(event)}"
        )
    return "\n".join(lines)


def format_event_detail_text(event: CalendarEvent) -> str:
    """Multi-line description of one event."""
    lines = [event.title or "(No title)", ""]
    if event.all_day:
        last_day = inclusive_end_date(event)
        when = event.start if last_day == event.start else f"{event.start} - {last_day}"
        lines.append(f"Date:         {when} (all day)")
    else:
        lines.append(f"Start:        {event.start}")
        lines.append(f"End:          {event.end}")
        duration = _timed_duration(event)
        if duration:
            lines.append(f"Duration:     {duration}")
    lines.append(f"Calendar:     {event.calendar_name} ({event.calendar_id})")
    lines.append(f"Status:       {event.status}")
    lines.append(f"Availability: {'free' if event.transparency == 'transparent' else 'busy'}")
    if event.description:
        lines.append(f"Description:  {event.description}")
    if event.html_link:
        lines.append(f"Link:         {event.html_link}")
    lines.append(f"ID:           {event.id}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Calendars
# ---------------------------------------------------------------------------


def _truncate_id(calendar_id: str) -> str:
    if len(calendar_id) <= CALENDAR_ID_MAX:
        return calendar_id
    return calendar_id[: CALENDAR_ID_MAX - 3] + "..."


def format_calendar_list_text(calendars: Iterable[Calendar]) -> str:
    lines = ["Calendars:"]
    for calendar in calendars:
        checkbox = "[x]" if calendar.enabled else "[ ]"
        cal_id = _truncate_id(calendar.id).ljust(CALENDAR_ID_COL)
        suffix = "" if calendar.enabled else " (disabled)"
        lines.append(f"  {checkbox} {cal_id}{calendar.name}{suffix}")
    return "\n".join(lines)


__all__ = [
    "format_calendar_list_text",
    "format_event_detail_text",
    "format_event_list_text",
    "format_json_error",
    "format_json_success",
    "format_quiet_text",
    "format_search_result_text",
    "inclusive_end_date",
]
