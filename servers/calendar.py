"""Standalone Google Calendar MCP server.

Exposes the gcal commands (list, search, show, add, update, delete,
calendars) as MCP tools.  Every tool returns the JSON envelope printed by
``gcal --format json``; per-calendar warnings are added under ``warnings``.

Run:
    python -m servers.calendar --transport streamable-http --host 0.0.0.0 --port 9004
"""

from __future__ import annotations

import json
from typing import Awaitable, Callable, List, Optional

from fastmcp import FastMCP

from gcal.api import CalendarService
from gcal.commands import (
    CommandContext,
    CommandResult,
    EventOptions,
    FilterOptions,
    handle_add,
    handle_calendars,
    handle_delete,
    handle_list,
    handle_search,
    handle_show,
    handle_update,
    run_command,
)
from gcal.config import GcalSettings, load_config, select_calendars
from gcal.date_range import DateRangeInput
from gcal.errors import GcalError
from gcal.output import format_json_error
from gcal.timezones import resolve_timezone

# Default port for HTTP transport
DEFAULT_HTTP_PORT = 9004

mcp: FastMCP = FastMCP("calendar")

Handler = Callable[[CommandContext], Awaitable[CommandResult]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build_context(
    user_email: Optional[str],
    calendar_ids: Optional[List[str]],
    timezone: Optional[str],
    out: List[str],
    err: List[str],
) -> CommandContext:
    settings = GcalSettings()
    config = load_config(settings)
    return CommandContext(
        service=CalendarService(user_email or settings.user_email, settings=settings),
        calendars=select_calendars(calendar_ids, config),
        timezone=resolve_timezone(timezone, config.timezone),
        output_format="json",
        config_calendars=list(config.calendars),
        write=out.append,
        write_err=err.append,
    )


def _respond(out: List[str], err: List[str]) -> str:
    text = "\n".join(out)
    if not err:
        return text
    if not text:
        return json.dumps({"success": True, "warnings": err}, indent=2)
    payload = json.loads(text)
    payload["warnings"] = err
    return json.dumps(payload, indent=2, ensure_ascii=False)


async def _run(
    handler: Handler,
    *,
    user_email: Optional[str],
    calendar_ids: Optional[List[str]],
    timezone: Optional[str],
) -> str:
    out: List[str] = []
    err: List[str] = []
    try:
        ctx = _build_context(user_email, calendar_ids, timezone, out, err)
    except GcalError as exc:
        return format_json_error(exc.code, exc.message)

    await run_command(ctx, handler(ctx))
    return _respond(out, err)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool("calendar_list_events")
async def calendar_list_events(
    user_email: Optional[str] = None,
    calendar_ids: Optional[List[str]] = None,
    timezone: Optional[str] = None,
    today: bool = False,
    days: Optional[int] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    busy: bool = False,
    free: bool = False,
    confirmed: bool = False,
    include_tentative: bool = False,
) -> str:
    """List events in a date range across the configured calendars.

    Dates are YYYY-MM-DD or ISO datetimes; ``date_to`` is inclusive.  With no
    range the next 7 days starting today (in ``timezone``) are listed.
    """
    range_input = DateRangeInput(today=today, days=days, from_=date_from, to=date_to)
    filters = FilterOptions(
        busy=busy, free=free, confirmed=confirmed, include_tentative=include_tentative
    )
    return await _run(
        lambda ctx: handle_list(ctx, range_input, filters),
        user_email=user_email,
        calendar_ids=calendar_ids,
        timezone=timezone,
    )


@mcp.tool("calendar_search_events")
async def calendar_search_events(
    query: str,
    user_email: Optional[str] = None,
    calendar_ids: Optional[List[str]] = None,
    timezone: Optional[str] = None,
    days: Optional[int] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    busy: bool = False,
    free: bool = False,
    confirmed: bool = False,
    include_tentative: bool = False,
) -> str:
    """Search events by text; the default window is the next 30 days."""
    range_input = DateRangeInput(days=days, from_=date_from, to=date_to)
    filters = FilterOptions(
        busy=busy, free=free, confirmed=confirmed, include_tentative=include_tentative
    )
    return await _run(
        lambda ctx: handle_search(ctx, query, range_input, filters),
        user_email=user_email,
        calendar_ids=calendar_ids,
        timezone=timezone,
    )


@mcp.tool("calendar_get_event")
async def calendar_get_event(
    event_id: str,
    user_email: Optional[str] = None,
    calendar_id: Optional[str] = None,
    timezone: Optional[str] = None,
) -> str:
    """Get one event by ID."""
    return await _run(
        lambda ctx: handle_show(ctx, event_id),
        user_email=user_email,
        calendar_ids=[calendar_id] if calendar_id else None,
        timezone=timezone,
    )


@mcp.tool("calendar_create_event")
async def calendar_create_event(
    title: str,
    start: str,
    end: Optional[str] = None,
    duration: Optional[str] = None,
    description: Optional[str] = None,
    free: bool = False,
    user_email: Optional[str] = None,
    calendar_id: Optional[str] = None,
    timezone: Optional[str] = None,
) -> str:
    """Create a new calendar event.

    All-day events: use dates (YYYY-MM-DD); ``end`` is the last day of the
    event, inclusive.  Timed events: use ISO datetimes; naive values are
    interpreted in ``timezone``.  Give ``end`` or ``duration`` (30m, 1h,
    2d), not both; without either the event lasts one day or one hour.
    """
    options = EventOptions(
        title=title,
        start=start,
        end=end,
        duration=duration,
        description=description,
        free=free,
    )
    return await _run(
        lambda ctx: handle_add(ctx, options),
        user_email=user_email,
        calendar_ids=[calendar_id] if calendar_id else None,
        timezone=timezone,
    )


@mcp.tool("calendar_update_event")
async def calendar_update_event(
    event_id: str,
    title: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    duration: Optional[str] = None,
    description: Optional[str] = None,
    busy: bool = False,
    free: bool = False,
    user_email: Optional[str] = None,
    calendar_id: Optional[str] = None,
    timezone: Optional[str] = None,
) -> str:
    """Update an existing calendar event.

    Only the given fields change.  Changing ``start`` alone keeps the
    event's duration; changing ``end`` or ``duration`` alone keeps its start.
    A date ``start`` turns a timed event into an all-day one and vice versa.
    """
    options = EventOptions(
        title=title,
        start=start,
        end=end,
        duration=duration,
        description=description,
        busy=busy,
        free=free,
    )
    return await _run(
        lambda ctx: handle_update(ctx, event_id, options),
        user_email=user_email,
        calendar_ids=[calendar_id] if calendar_id else None,
        timezone=timezone,
    )


@mcp.tool("calendar_delete_event")
async def calendar_delete_event(
    event_id: str,
    dry_run: bool = False,
    user_email: Optional[str] = None,
    calendar_id: Optional[str] = None,
) -> str:
    """Delete a calendar event by ID."""
    return await _run(
        lambda ctx: handle_delete(ctx, event_id, dry_run=dry_run),
        user_email=user_email,
        calendar_ids=[calendar_id] if calendar_id else None,
        timezone=None,
    )


@mcp.tool("calendar_list_calendars")
async def calendar_list_calendars(user_email: Optional[str] = None) -> str:
    """List calendars the user has access to."""
    return await _run(
        handle_calendars,
        user_email=user_email,
        calendar_ids=None,
        timezone=None,
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def run(
    transport: str = "stdio",
    host: str = "0.0.0.0",
    port: int = DEFAULT_HTTP_PORT,
) -> None:  # pragma: no cover - integration entrypoint
    """Run the Calendar MCP server with the specified transport."""
    if transport == "streamable-http":
        mcp.run(
            transport="streamable-http",
            host=host,
            port=port,
            json_response=True,
            stateless_http=True,
            uvicorn_config={"access_log": False},
        )
    else:
        mcp.run(transport="stdio")


def main() -> None:  # pragma: no cover - CLI helper
    import argparse

    parser = argparse.ArgumentParser(description="Calendar MCP Server")
    parser.add_argument(
        "--transport",
        choices=["stdio", "streamable-http"],
        default="stdio",
        help="Transport protocol to use",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind HTTP server to",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_HTTP_PORT,
        help="Port for HTTP server",
    )
    args = parser.parse_args()
    run(args.transport, args.host, args.port)


if __name__ == "__main__":  # pragma: no cover
    main()


__all__ = [
    "mcp",
    "run",
    "main",
    "DEFAULT_HTTP_PORT",
    "calendar_list_events",
    "calendar_search_events",
    "calendar_get_event",
    "calendar_create_event",
    "calendar_update_event",
    "calendar_delete_event",
    "calendar_list_calendars",
]
