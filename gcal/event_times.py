"""Start/end resolution for creating and updating events.

Input is any combination of ``start``, ``end`` and ``duration`` as typed by
the user.  Output is the pair of API-ready start/end values.

All-day events are stored by the Calendar API with an *exclusive* end date,
while users type an *inclusive* one, so a date-only ``end`` is always moved
one day forward here.  Timed events use the literal end instant.

For updates that leave part of the range unspecified, the existing event is
fetched (at most once) so that its duration or its start can be preserved:

    start end duration  behaviour
    ----- --- --------  -------------------------------------------------
      x    x     -      both explicit; existing event never fetched
      x    -     x      end = start + duration
      x    -     -      keep existing duration (create: 1 day / 1 hour)
      -    x     -      keep existing start
      -    -     x      keep existing start, end = start + duration
      -    -     -      nothing to change
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Callable, Optional

from gcal.duration import MS_PER_DAY, parse_duration, require_whole_days
from gcal.errors import (
    InvalidRangeLength,
    MutuallyExclusiveOptions,
    TemporalValidationError,
    TypeMismatch,
)
from gcal.temporal import (
    ONE_DAY,
    DateOnly,
    EventKind,
    EventTimeRange,
    Instant,
    TemporalValue,
    classify,
    format_temporal,
    parse_temporal,
)
from gcal.timezones import get_zone

DEFAULT_ALL_DAY_DAYS = 1
DEFAULT_TIMED_DURATION = datetime.timedelta(hours=1)

FetchExisting = Callable[[], EventTimeRange]


@dataclass(slots=True)
class UserTimeInput:
    """Time flags as typed by the user; ``end`` is inclusive for dates."""

    start: Optional[str] = None
    end: Optional[str] = None
    duration: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None and self.duration is None


@dataclass(frozen=True, slots=True)
class TypeChange:
    """An update turned an all-day event into a timed one or back."""

    from_kind: EventKind
    to_kind: EventKind

    @property
    def message(self) -> str:
        return f"Event type changed from {self.from_kind} to {self.to_kind}"


@dataclass(slots=True)
class ResolvedEventTimes:
    """API-ready start/end values; ``end`` is exclusive for all-day events."""

    start: str
    end: str
    kind: EventKind
    timezone: str
    type_changed: Optional[TypeChange] = None

    @property
    def all_day(self) -> bool:
        return self.kind is EventKind.ALL_DAY

    def to_api_fields(self, *, clear_other_kind: bool = False) -> dict[str, Any]:
        """Return the ``start``/``end`` objects of a Calendar event body.

        PATCH merges nested objects, so with *clear_other_kind* the keys of
        the other event kind are sent as null and removed from the stored
        event.
        """
        if self.all_day:
            start: dict[str, Any] = {"date": self.start}
            end: dict[str, Any] = {"date": self.end}
            if clear_other_kind:
                for field in (start, end):
                    field.update(dateTime=None, timeZone=None)
        else:
            start = {"dateTime": self.start, "timeZone": self.timezone}
            end = {"dateTime": self.end, "timeZone": self.timezone}
            if clear_other_kind:
                start["date"] = None
                end["date"] = None
        return {"start": start, "end": end}


# ---------------------------------------------------------------------------
# Arithmetic helpers
# ---------------------------------------------------------------------------


def _shift(value: TemporalValue, *, days: int = 0, ms: int = 0) -> TemporalValue:
    """Move a value forward by whole days (dates) or elapsed time (instants)."""
    if isinstance(value, DateOnly):
        return DateOnly(value.date + datetime.timedelta(days=days))
    moved = value.value.astimezone(datetime.UTC) + datetime.timedelta(
        days=days, milliseconds=ms
    )
    return Instant(moved.astimezone(value.value.tzinfo))


def _span(existing: EventTimeRange) -> tuple[int, int]:
    """Return the existing event's length as (days, ms) for its own kind."""
    start, end = existing.start, existing.end
    if isinstance(start, DateOnly) and isinstance(end, DateOnly):
        return (end.date - start.date).days, 0
    assert isinstance(start, Instant) and isinstance(end, Instant)
    elapsed = end.value.astimezone(datetime.UTC) - start.value.astimezone(datetime.UTC)
    return 0, elapsed // datetime.timedelta(milliseconds=1)


# ---------------------------------------------------------------------------
# Resolution context
# ---------------------------------------------------------------------------


class _Resolution:
    """Parsed input plus a memoized view of the existing event."""

    def __init__(
        self,
        time_input: UserTimeInput,
        tz: str,
        fetch_existing: Optional[FetchExisting],
    ):
        self.input = time_input
        self.tz = tz
        self.start: Optional[TemporalValue] = None
        self.end: Optional[TemporalValue] = None
        self.duration_ms: Optional[int] = None
        if time_input.start is not None:
            self.start = parse_temporal(time_input.start, tz)
        if time_input.end is not None:
            self.end = parse_temporal(time_input.end, tz)
        if time_input.duration is not None:
            self.duration_ms = parse_duration(time_input.duration)
        self._fetch_existing = fetch_existing
        self._existing: Optional[EventTimeRange] = None

    @property
    def can_fetch(self) -> bool:
        return self._fetch_existing is not None

    @property
    def fetched(self) -> Optional[EventTimeRange]:
        return self._existing

    def existing(self) -> EventTimeRange:
        if self._existing is None:
            if self._fetch_existing is None:
                raise TemporalValidationError(
                    "start is required when there is no existing event"
                )
            self._existing = self._fetch_existing()
        return self._existing

    def duration_for(self, kind: EventKind) -> tuple[int, int]:
        """Return the requested duration as (days, ms) for *kind*."""
        assert self.duration_ms is not None and self.input.duration is not None
        if kind is EventKind.ALL_DAY:
            return require_whole_days(self.duration_ms, self.input.duration), 0
        return 0, self.duration_ms


def _inclusive_to_exclusive(end: TemporalValue) -> TemporalValue:
    if isinstance(end, DateOnly):
        return DateOnly(end.date + ONE_DAY)
    return end


# ---------------------------------------------------------------------------
# Cases, keyed by (has_start, has_end, has_duration)
# ---------------------------------------------------------------------------


def _explicit_range(ctx: _Resolution) -> EventTimeRange:
    assert ctx.start is not None and ctx.end is not None
    return EventTimeRange(ctx.start, _inclusive_to_exclusive(ctx.end))


def _start_plus_duration(ctx: _Resolution) -> EventTimeRange:
    assert ctx.start is not None
    days, ms = ctx.duration_for(ctx.start.kind)
    return EventTimeRange(ctx.start, _shift(ctx.start, days=days, ms=ms))


def _start_keep_duration(ctx: _Resolution) -> EventTimeRange:
    assert ctx.start is not None
    if not ctx.can_fetch:
        if isinstance(ctx.start, DateOnly):
            return EventTimeRange(ctx.start, _shift(ctx.start, days=DEFAULT_ALL_DAY_DAYS))
        default_ms = DEFAULT_TIMED_DURATION // datetime.timedelta(milliseconds=1)
        return EventTimeRange(ctx.start, _shift(ctx.start, ms=default_ms))

    existing = ctx.existing()
    days, ms = _span(existing)
    if isinstance(ctx.start, DateOnly):
        if existing.kind is EventKind.TIMED:
            # A timed event becoming all-day keeps its length rounded up to days.
            days = max(1, -(-ms // MS_PER_DAY))
        return EventTimeRange(ctx.start, _shift(ctx.start, days=days))
    if existing.kind is EventKind.ALL_DAY:
        ms = days * MS_PER_DAY
    return EventTimeRange(ctx.start, _shift(ctx.start, ms=ms))


def _keep_start_with_end(ctx: _Resolution) -> EventTimeRange:
    assert ctx.end is not None
    existing = ctx.existing()
    if ctx.end.kind is not existing.kind:
        raise TypeMismatch(
            f'--end "{ctx.input.end}" is {ctx.end.kind} but the existing event is '
            f"{existing.kind}; pass --start as well to change the event type."
        )
    return EventTimeRange(existing.start, _inclusive_to_exclusive(ctx.end))


def _keep_start_with_duration(ctx: _Resolution) -> EventTimeRange:
    existing = ctx.existing()
    days, ms = ctx.duration_for(existing.kind)
    return EventTimeRange(existing.start, _shift(existing.start, days=days, ms=ms))


_CASES: dict[tuple[bool, bool, bool], Callable[[_Resolution], EventTimeRange]] = {
    (True, True, False): _explicit_range,
    (True, False, True): _start_plus_duration,
    (True, False, False): _start_keep_duration,
    (False, True, False): _keep_start_with_end,
    (False, False, True): _keep_start_with_duration,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_time_input(time_input: UserTimeInput) -> None:
    """Checks that do not need the existing event or a timezone."""
    if time_input.end is not None and time_input.duration is not None:
        raise MutuallyExclusiveOptions("--end and --duration cannot be used together")

    if time_input.start is not None and time_input.end is not None:
        start_kind = classify(time_input.start)
        end_kind = classify(time_input.end)
        if start_kind is not end_kind:
            raise TypeMismatch(
                f'--start "{time_input.start}" and --end "{time_input.end}" must both be '
                f"dates (YYYY-MM-DD) or both datetimes ({start_kind} vs {end_kind})"
            )

    if time_input.duration is not None:
        ms = parse_duration(time_input.duration)
        if time_input.start is not None and classify(time_input.start) is EventKind.ALL_DAY:
            require_whole_days(ms, time_input.duration)


def resolve_event_time_fields(
    time_input: UserTimeInput,
    tz: str,
    fetch_existing: Optional[FetchExisting] = None,
) -> Optional[ResolvedEventTimes]:
    """Resolve user time flags into API start/end values.

    *fetch_existing* returns the current event's range and is called at most
    once, only when part of the range has to be preserved.  Without it
    (creating an event) a missing end defaults to one day or one hour.
    Returns None when no time flag was given.
    """
    validate_time_input(time_input)
    if time_input.is_empty:
        return None

    get_zone(tz)
    ctx = _Resolution(time_input, tz, fetch_existing)
    key = (ctx.start is not None, ctx.end is not None, ctx.duration_ms is not None)
    try:
        case = _CASES[key]
    except KeyError:  # pragma: no cover - combinations are exhaustive after validation
        raise AssertionError(f"unhandled time input combination {key}") from None

    resolved = case(ctx)
    if not _ordered_after(resolved):
        raise InvalidRangeLength(
            f"Event end ({format_temporal(resolved.end, tz)}) must be after its "
            f"start ({format_temporal(resolved.start, tz)})"
        )

    type_changed: Optional[TypeChange] = None
    existing = ctx.fetched
    if existing is not None and existing.kind is not resolved.kind:
        type_changed = TypeChange(from_kind=existing.kind, to_kind=resolved.kind)

    return ResolvedEventTimes(
        start=format_temporal(resolved.start, tz),
        end=format_temporal(resolved.end, tz),
        kind=resolved.kind,
        timezone=tz,
        type_changed=type_changed,
    )


def _ordered_after(time_range: EventTimeRange) -> bool:
    start, end = time_range.start, time_range.end
    if isinstance(start, DateOnly) and isinstance(end, DateOnly):
        return end.date > start.date
    assert isinstance(start, Instant) and isinstance(end, Instant)
    return end.value > start.value


def resolve_create_times(time_input: UserTimeInput, tz: str) -> ResolvedEventTimes:
    """Resolve times for a new event; ``start`` is mandatory."""
    if time_input.start is None:
        raise TemporalValidationError("--start is required")
    resolved = resolve_event_time_fields(time_input, tz)
    assert resolved is not None
    return resolved


__all__ = [
    "DEFAULT_ALL_DAY_DAYS",
    "DEFAULT_TIMED_DURATION",
    "FetchExisting",
    "ResolvedEventTimes",
    "TypeChange",
    "UserTimeInput",
    "resolve_create_times",
    "resolve_event_time_fields",
    "validate_time_input",
]
