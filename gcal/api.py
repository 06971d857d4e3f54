"""Google Calendar service layer.

Domain models and a service wrapping the Calendar v3 client.  List calls go
through the bounded paginator; HTTP failures are mapped to ApiError codes.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, List, Literal, Optional

from googleapiclient.errors import HttpError

from gcal.config import CalendarConfig, GcalSettings
from gcal.errors import ApiError, GcalError
from gcal.google_auth import get_calendar_service
from gcal.pagination import Page, collect_all
from gcal.temporal import EventTimeRange, parse_api_time

logger = logging.getLogger(__name__)

EventStatus = Literal["confirmed", "tentative", "cancelled"]
Transparency = Literal["opaque", "transparent"]

_STATUSES = {"confirmed", "tentative", "cancelled"}
_TRANSPARENCIES = {"opaque", "transparent"}


# ---------------------------------------------------------------------------
# Domain models
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class CalendarEvent:
    """Normalized event; ``end`` is the API's exclusive date for all-day events."""

    id: str
    title: str
    start: str
    end: str
    all_day: bool
    calendar_id: str
    calendar_name: str
    description: Optional[str] = None
    html_link: str = ""
    status: EventStatus = "confirmed"
    transparency: Transparency = "opaque"
    created: str = ""
    updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Calendar:
    """Calendar visible to the user, merged with its config entry."""

    id: str
    name: str
    description: Optional[str] = None
    primary: bool = False
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def normalize_event(
    event: dict[str, Any], calendar_id: str, calendar_name: str
) -> CalendarEvent:
    """Convert a Calendar API event resource into a CalendarEvent."""
    start = event.get("start") or {}
    end = event.get("end") or {}
    all_day = bool(start.get("date"))

    if all_day:
        start_value = start.get("date") or ""
        end_value = end.get("date") or ""
    else:
        start_value = start.get("dateTime") or ""
        end_value = end.get("dateTime") or ""

    status = event.get("status")
    transparency = event.get("transparency")

    return CalendarEvent(
        id=event.get("id") or "",
        title=event.get("summary") or "",
        start=start_value,
        end=end_value,
        all_day=all_day,
        calendar_id=calendar_id,
        calendar_name=calendar_name,
        description=event.get("description"),
        html_link=event.get("htmlLink") or "",
        status=status if status in _STATUSES else "confirmed",
        transparency=transparency if transparency in _TRANSPARENCIES else "opaque",
        created=event.get("created") or "",
        updated=event.get("updated") or "",
    )


def normalize_calendar(item: dict[str, Any]) -> Calendar:
    """Convert a calendarList entry into a Calendar."""
    return Calendar(
        id=item.get("id") or "",
        name=item.get("summary") or "",
        description=item.get("description"),
        primary=bool(item.get("primary")),
    )


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def map_api_error(exc: Exception, context: str) -> GcalError:
    """Translate a client exception into an ApiError with a stable code."""
    if isinstance(exc, GcalError):
        return exc
    if isinstance(exc, HttpError):
        status = exc.resp.status if exc.resp is not None else None
        reason = getattr(exc, "reason", None) or str(exc)
        message = f"{context}: {reason}"
        if status in (401, 403):
            return ApiError(message, code="AUTH_REQUIRED")
        if status == 404:
            return ApiError(message, code="NOT_FOUND")
        return ApiError(message, code="API_ERROR")
    return ApiError(f"{context}: {exc}", code="API_ERROR")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class CalendarService:
    """Manage Calendar API calls and convert responses into domain models."""

    def __init__(
        self,
        user_email: Optional[str] = None,
        *,
        settings: Optional[GcalSettings] = None,
        service_factory: Callable[[str], Any] | None = None,
    ):
        self._settings = settings
        self._user_email = user_email
        self._client: Any | None = None
        self._service_factory = service_factory

    def _client_or_raise(self) -> Any:
        if self._client is None:
            settings = self._settings or GcalSettings()
            user_email = self._user_email or settings.user_email
            try:
                if self._service_factory is not None:
                    self._client = self._service_factory(user_email)
                else:
                    self._client = get_calendar_service(user_email, settings)
            except ValueError as exc:
                raise ApiError(str(exc), code="AUTH_REQUIRED") from exc
            except Exception as exc:
                raise map_api_error(exc, "Error creating calendar service") from exc
        return self._client

    def reset(self) -> None:
        """Drop the cached client so the next call reloads credentials."""
        self._client = None

    @staticmethod
    def _execute(call: Any, context: str) -> dict[str, Any]:
        try:
            return call.execute() or {}
        except Exception as exc:
            raise map_api_error(exc, context) from exc

    # ---- Calendars --------------------------------------------------------

    def list_calendars(self) -> List[Calendar]:
        """List every calendar in the user's calendar list."""
        client = self._client_or_raise()

        def fetch_page(cursor: Optional[str]) -> Page[dict[str, Any]]:
            params: dict[str, Any] = {}
            if cursor:
                params["pageToken"] = cursor
            response = self._execute(
                client.calendarList().list(**params), "Error listing calendars"
            )
            return Page.from_response(response)

        return [normalize_calendar(item) for item in collect_all(fetch_page)]

    # ---- Events -----------------------------------------------------------

    def list_events(
        self,
        calendar_id: str,
        calendar_name: str,
        *,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[CalendarEvent]:
        """List expanded event instances in a calendar, across all pages."""
        client = self._client_or_raise()
        base_params: dict[str, Any] = {
            "calendarId": calendar_id,
            "singleEvents": True,
            "orderBy": "startTime",
        }
        if time_min:
            base_params["timeMin"] = time_min
        if time_max:
            base_params["timeMax"] = time_max
        if query:
            base_params["q"] = query

        def fetch_page(cursor: Optional[str]) -> Page[dict[str, Any]]:
            params = dict(base_params)
            if cursor:
                params["pageToken"] = cursor
            response = self._execute(
                client.events().list(**params),
                f"Error listing events in {calendar_name}",
            )
            return Page.from_response(response)

        items = collect_all(fetch_page)
        logger.debug("Fetched %d events from %s", len(items), calendar_id)
        return [normalize_event(item, calendar_id, calendar_name) for item in items]

    def get_event_resource(self, calendar_id: str, event_id: str) -> dict[str, Any]:
        """Return the raw event resource."""
        client = self._client_or_raise()
        return self._execute(
            client.events().get(calendarId=calendar_id, eventId=event_id),
            f"Error retrieving event {event_id}",
        )

    def get_event(
        self, calendar_id: str, calendar_name: str, event_id: str
    ) -> CalendarEvent:
        """Retrieve a single event."""
        resource = self.get_event_resource(calendar_id, event_id)
        return normalize_event(resource, calendar_id, calendar_name)

    def get_event_times(
        self, calendar_id: str, event_id: str, timezone: str
    ) -> EventTimeRange:
        """Return the start/end of an existing event as temporal values."""
        resource = self.get_event_resource(calendar_id, event_id)
        start = parse_api_time(resource.get("start"), timezone)
        end = parse_api_time(resource.get("end"), timezone)
        if start is None or end is None:
            raise ApiError(f"Event {event_id} has no start or end time")
        return EventTimeRange(start=start, end=end)

    def create_event(
        self, calendar_id: str, calendar_name: str, body: dict[str, Any]
    ) -> CalendarEvent:
        """Insert a new event."""
        client = self._client_or_raise()
        created = self._execute(
            client.events().insert(calendarId=calendar_id, body=body),
            "Error creating event",
        )
        logger.info("Created event %s in %s", created.get("id"), calendar_id)
        return normalize_event(created, calendar_id, calendar_name)

    def update_event(
        self,
        calendar_id: str,
        calendar_name: str,
        event_id: str,
        body: dict[str, Any],
    ) -> CalendarEvent:
        """Patch the given fields of an existing event."""
        client = self._client_or_raise()
        updated = self._execute(
            client.events().patch(calendarId=calendar_id, eventId=event_id, body=body),
            f"Error updating event {event_id}",
        )
        logger.info("Updated event %s in %s", event_id, calendar_id)
        return normalize_event(updated, calendar_id, calendar_name)

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        """Delete an event."""
        client = self._client_or_raise()
        self._execute(
            client.events().delete(calendarId=calendar_id, eventId=event_id),
            f"Error deleting event {event_id}",
        )
        logger.info("Deleted event %s from %s", event_id, calendar_id)


# ---------------------------------------------------------------------------
# Calendar lookup
# ---------------------------------------------------------------------------


def resolve_event_calendar(
    service: CalendarService, event_id: str, calendars: List[CalendarConfig]
) -> CalendarConfig:
    """Find the one calendar among *calendars* that holds *event_id*."""
    found: List[CalendarConfig] = []
    for calendar in calendars:
        try:
            service.get_event_resource(calendar.id, event_id)
        except ApiError as exc:
            if exc.code == "NOT_FOUND":
                continue
            raise
        found.append(calendar)

    if not found:
        raise ApiError(
            f'Event "{event_id}" not found in any enabled calendar', code="NOT_FOUND"
        )
    if len(found) > 1:
        names = ", ".join(f"{cal.label} ({cal.id})" for cal in found)
        raise ApiError(
            f'Event "{event_id}" found in multiple calendars: {names}. '
            "Specify --calendar <calendar-id>.",
            code="INVALID_ARGS",
        )
    return found[0]


__all__ = [
    "Calendar",
    "CalendarEvent",
    "CalendarService",
    "map_api_error",
    "normalize_calendar",
    "normalize_event",
    "resolve_event_calendar",
]
