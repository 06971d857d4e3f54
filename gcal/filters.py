"""Client-side event filters applied after listing."""

from __future__ import annotations

from typing import List, Literal, Optional

from gcal.api import CalendarEvent

TransparencyOption = Optional[Literal["busy", "free"]]


def filter_by_transparency(
    events: List[CalendarEvent], option: TransparencyOption
) -> List[CalendarEvent]:
    if option == "busy":
        return [event for event in events if event.transparency == "opaque"]
    if option == "free":
        return [event for event in events if event.transparency == "transparent"]
    return list(events)


def apply_filters(
    events: List[CalendarEvent],
    *,
    transparency: TransparencyOption = None,
    confirmed: bool = False,
    include_tentative: bool = False,
) -> List[CalendarEvent]:
    """Filter events by transparency and status.

    Cancelled events are always dropped.  Tentative events are dropped
    unless *include_tentative* is set; *confirmed* keeps confirmed only.
    """
    filtered = filter_by_transparency(events, transparency)
    filtered = [event for event in filtered if event.status != "cancelled"]
    if confirmed:
        return [event for event in filtered if event.status == "confirmed"]
    if not include_tentative:
        filtered = [event for event in filtered if event.status != "tentative"]
    return filtered


__all__ = ["TransparencyOption", "apply_filters", "filter_by_transparency"]
