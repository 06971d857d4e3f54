"""Shared fixtures: an in-memory stand-in for the Calendar v3 client."""

from __future__ import annotations

import copy
import json
from typing import Any, Optional

import httplib2
import pytest
from googleapiclient.errors import HttpError

from gcal.api import CalendarService


def build_http_error(status: int, message: str = "boom") -> HttpError:
    resp = httplib2.Response({"status": status, "reason": message})
    content = json.dumps({"error": {"code": status, "message": message}}).encode("utf-8")
    return HttpError(resp, content)


def merge_patch(target: dict[str, Any], body: dict[str, Any]) -> None:
    """Apply PATCH semantics: nested objects merge, null removes a key."""
    for key, value in body.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            merge_patch(target[key], value)
        else:
            target[key] = value


class FakeRequest:
    def __init__(self, result: Any = None, error: Optional[Exception] = None):
        self._result = result
        self._error = error

    def execute(self) -> Any:
        if self._error is not None:
            raise self._error
        return self._result


class FakeEvents:
    def __init__(self, client: "FakeCalendarClient"):
        self._client = client

    def list(self, **params):
        self._client.calls.append(("events.list", params))
        calendar_id = params["calendarId"]
        if calendar_id in self._client.list_errors:
            return FakeRequest(error=self._client.list_errors[calendar_id])
        items = self._client.store.get(calendar_id, [])
        return FakeRequest(self._client.paginate(items, params.get("pageToken")))

    def get(self, *, calendarId, eventId):
        self._client.calls.append(("events.get", {"calendarId": calendarId, "eventId": eventId}))
        event = self._client.find(calendarId, eventId)
        if event is None:
            return FakeRequest(error=build_http_error(404, "Not Found"))
        return FakeRequest(copy.deepcopy(event))

    def insert(self, *, calendarId, body):
        self._client.calls.append(("events.insert", {"calendarId": calendarId, "body": body}))
        created = {
            "id": f"created-{len(self._client.calls)}",
            "status": "confirmed",
            "htmlLink": "https://calendar.example/event",
            **copy.deepcopy(body),
        }
        self._client.store.setdefault(calendarId, []).append(created)
        return FakeRequest(copy.deepcopy(created))

    def patch(self, *, calendarId, eventId, body):
        self._client.calls.append(
            ("events.patch", {"calendarId": calendarId, "eventId": eventId, "body": body})
        )
        event = self._client.find(calendarId, eventId)
        if event is None:
            return FakeRequest(error=build_http_error(404, "Not Found"))
        merge_patch(event, copy.deepcopy(body))
        return FakeRequest(copy.deepcopy(event))

    def delete(self, *, calendarId, eventId):
        self._client.calls.append(("events.delete", {"calendarId": calendarId, "eventId": eventId}))
        event = self._client.find(calendarId, eventId)
        if event is None:
            return FakeRequest(error=build_http_error(404, "Not Found"))
        self._client.store[calendarId].remove(event)
        return FakeRequest("")


class FakeCalendarList:
    def __init__(self, client: "FakeCalendarClient"):
        self._client = client

    def list(self, **params):
        self._client.calls.append(("calendarList.list", params))
        return FakeRequest(
            self._client.paginate(self._client.calendar_items, params.get("pageToken"))
        )


class FakeCalendarClient:
    """Mimics ``service.events().list(...).execute()`` call chains."""

    def __init__(self, page_size: int = 250):
        self.page_size = page_size
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.store: dict[str, list[dict[str, Any]]] = {}
        self.calendar_items: list[dict[str, Any]] = []
        self.list_errors: dict[str, Exception] = {}

    def events(self) -> FakeEvents:
        return FakeEvents(self)

    def calendarList(self) -> FakeCalendarList:
        return FakeCalendarList(self)

    def paginate(self, items: list[Any], token: Optional[str]) -> dict[str, Any]:
        offset = int(token or 0)
        page = items[offset : offset + self.page_size]
        response: dict[str, Any] = {"items": copy.deepcopy(page)}
        if offset + self.page_size < len(items):
            response["nextPageToken"] = str(offset + self.page_size)
        return response

    def find(self, calendar_id: str, event_id: str) -> Optional[dict[str, Any]]:
        for event in self.store.get(calendar_id, []):
            if event.get("id") == event_id:
                return event
        return None

    def add_event(self, calendar_id: str, event: dict[str, Any]) -> dict[str, Any]:
        self.store.setdefault(calendar_id, []).append(event)
        return event

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)


@pytest.fixture
def fake_client() -> FakeCalendarClient:
    return FakeCalendarClient()


@pytest.fixture
def service(fake_client: FakeCalendarClient) -> CalendarService:
    return CalendarService("tester@example.com", service_factory=lambda _email: fake_client)


@pytest.fixture
def http_error():
    return build_http_error
