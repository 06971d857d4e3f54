"""Tests for gcal.api: service layer over a fake Calendar client."""

from __future__ import annotations

import pytest

from gcal.api import (
    CalendarService,
    map_api_error,
    normalize_calendar,
    normalize_event,
    resolve_event_calendar,
)
from gcal.config import CalendarConfig
from gcal.errors import ApiError, PaginationLimitExceeded
from gcal.temporal import DateOnly, EventKind, Instant


def timed_event(event_id: str, start: str, end: str, **extra):
    return {
        "id": event_id,
        "summary": extra.pop("summary", event_id),
        "start": {"dateTime": start},
        "end": {"dateTime": end},
        **extra,
    }


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class TestNormalizeEvent:
    def test_timed(self):
        event = normalize_event(
            timed_event(
                "e1",
                "2026-02-01T10:00:00+09:00",
                "2026-02-01T11:00:00+09:00",
                summary="Standup",
                htmlLink="https://calendar.example/e1",
                transparency="transparent",
            ),
            "primary",
            "Main",
        )
        assert event.title == "Standup"
        assert event.all_day is False
        assert event.start == "2026-02-01T10:00:00+09:00"
        assert event.transparency == "transparent"
        assert event.status == "confirmed"
        assert event.calendar_name == "Main"

    def test_all_day(self):
        event = normalize_event(
            {"id": "e2", "start": {"date": "2026-02-01"}, "end": {"date": "2026-02-02"}},
            "primary",
            "Main",
        )
        assert event.all_day is True
        assert (event.start, event.end) == ("2026-02-01", "2026-02-02")
        assert event.title == ""

    def test_unknown_status_and_transparency_are_coerced(self):
        event = normalize_event(
            {"id": "e3", "status": "weird", "transparency": "glass"}, "primary", "Main"
        )
        assert event.status == "confirmed"
        assert event.transparency == "opaque"

    def test_to_dict(self):
        event = normalize_event({"id": "e4"}, "cal", "Cal")
        data = event.to_dict()
        assert data["id"] == "e4"
        assert data["calendar_id"] == "cal"

    def test_calendar(self):
        calendar = normalize_calendar({"id": "me@example.com", "summary": "Me", "primary": True})
        assert calendar.primary is True
        assert calendar.enabled is True
        assert calendar.name == "Me"


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestMapApiError:
    @pytest.mark.parametrize(
        "status, code",
        [(401, "AUTH_REQUIRED"), (403, "AUTH_REQUIRED"), (404, "NOT_FOUND"), (500, "API_ERROR")],
    )
    def test_http_status(self, http_error, status, code):
        error = map_api_error(http_error(status, "nope"), "Error listing")
        assert isinstance(error, ApiError)
        assert error.code == code
        assert error.message.startswith("Error listing: ")
        assert "nope" in error.message

    def test_other_exceptions(self):
        error = map_api_error(OSError("socket closed"), "Error listing")
        assert error.code == "API_ERROR"
        assert "socket closed" in error.message

    def test_gcal_errors_pass_through(self):
        original = PaginationLimitExceeded("Pagination limit of 100 pages exceeded")
        assert map_api_error(original, "ctx") is original


# ---------------------------------------------------------------------------
# Service calls
# ---------------------------------------------------------------------------


class TestCalendarService:
    def test_list_events_collects_all_pages(self, fake_client, service):
        fake_client.page_size = 2
        for index in range(5):
            fake_client.add_event(
                "primary",
                timed_event(f"e{index}", "2026-02-01T10:00:00Z", "2026-02-01T11:00:00Z"),
            )

        events = service.list_events(
            "primary",
            "Main",
            time_min="2026-02-01T00:00:00+00:00",
            time_max="2026-02-08T00:00:00+00:00",
            query="standup",
        )

        assert [event.id for event in events] == ["e0", "e1", "e2", "e3", "e4"]
        assert fake_client.count("events.list") == 3
        first_params = fake_client.calls[0][1]
        assert first_params["singleEvents"] is True
        assert first_params["orderBy"] == "startTime"
        assert first_params["timeMin"] == "2026-02-01T00:00:00+00:00"
        assert first_params["q"] == "standup"
        assert "pageToken" not in first_params
        assert fake_client.calls[1][1]["pageToken"] == "2"

    def test_list_events_http_error(self, fake_client, service, http_error):
        fake_client.list_errors["primary"] = http_error(403, "Forbidden")
        with pytest.raises(ApiError) as exc_info:
            service.list_events("primary", "Main")
        assert exc_info.value.code == "AUTH_REQUIRED"

    def test_list_calendars(self, fake_client, service):
        fake_client.calendar_items = [
            {"id": "me@example.com", "summary": "Me", "primary": True},
            {"id": "team@example.com", "summary": "Team"},
        ]
        calendars = service.list_calendars()
        assert [calendar.id for calendar in calendars] == ["me@example.com", "team@example.com"]

    def test_get_event_times(self, fake_client, service):
        fake_client.add_event(
            "primary",
            timed_event("e1", "2026-02-01T10:00:00+09:00", "2026-02-01T11:00:00+09:00"),
        )
        fake_client.add_event(
            "primary",
            {"id": "e2", "start": {"date": "2026-02-01"}, "end": {"date": "2026-02-03"}},
        )

        timed = service.get_event_times("primary", "e1", "Asia/Tokyo")
        assert timed.kind is EventKind.TIMED
        assert isinstance(timed.start, Instant)
        assert timed.start.isoformat() == "2026-02-01T10:00:00+09:00"

        all_day = service.get_event_times("primary", "e2", "Asia/Tokyo")
        assert isinstance(all_day.end, DateOnly)
        assert all_day.end.isoformat() == "2026-02-03"

    def test_get_missing_event(self, service):
        with pytest.raises(ApiError) as exc_info:
            service.get_event("primary", "Main", "missing")
        assert exc_info.value.code == "NOT_FOUND"

    def test_create_update_delete(self, fake_client, service):
        created = service.create_event(
            "primary",
            "Main",
            {"summary": "Lunch", "start": {"date": "2026-02-01"}, "end": {"date": "2026-02-02"}},
        )
        assert created.title == "Lunch"
        assert created.all_day is True

        updated = service.update_event("primary", "Main", created.id, {"summary": "Brunch"})
        assert updated.title == "Brunch"
        assert fake_client.calls[-1][0] == "events.patch"

        service.delete_event("primary", created.id)
        assert fake_client.find("primary", created.id) is None

    def test_missing_credentials_is_auth_error(self):
        def factory(_email):
            raise ValueError("No valid credentials found")

        service = CalendarService("tester@example.com", service_factory=factory)
        with pytest.raises(ApiError) as exc_info:
            service.list_calendars()
        assert exc_info.value.code == "AUTH_REQUIRED"


# ---------------------------------------------------------------------------
# Calendar lookup for an event
# ---------------------------------------------------------------------------


class TestResolveEventCalendar:
    CALENDARS = [CalendarConfig(id="primary", name="Main"), CalendarConfig(id="team", name="Team")]

    def test_single_match(self, fake_client, service):
        fake_client.add_event("team", {"id": "e1"})
        assert resolve_event_calendar(service, "e1", self.CALENDARS).id == "team"

    def test_not_found(self, service):
        with pytest.raises(ApiError) as exc_info:
            resolve_event_calendar(service, "e1", self.CALENDARS)
        assert exc_info.value.code == "NOT_FOUND"

    def test_ambiguous(self, fake_client, service):
        fake_client.add_event("primary", {"id": "e1"})
        fake_client.add_event("team", {"id": "e1"})
        with pytest.raises(ApiError) as exc_info:
            resolve_event_calendar(service, "e1", self.CALENDARS)
        assert exc_info.value.code == "INVALID_ARGS"
        assert "Main (primary)" in exc_info.value.message

    def test_other_errors_propagate(self, service, monkeypatch, http_error):
        def boom(calendar_id, event_id):
            raise map_api_error(http_error(500, "backend"), "Error retrieving event")

        monkeypatch.setattr(service, "get_event_resource", boom)
        with pytest.raises(ApiError) as exc_info:
            resolve_event_calendar(service, "e1", self.CALENDARS)
        assert exc_info.value.code == "API_ERROR"
