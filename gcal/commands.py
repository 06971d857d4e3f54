"""Command handlers shared by the CLI and the MCP server.

Each handler takes a :class:`CommandContext`, writes its result through the
context's ``write`` callable (advisories go to ``write_err``) and returns a
:class:`CommandResult`.  Errors propagate as :class:`GcalError`;
:func:`run_command` turns them into formatted output and an exit code.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

import httpx

from gcal.api import Calendar, CalendarEvent, CalendarService, resolve_event_calendar
from gcal.config import (
    CalendarConfig,
    GcalSettings,
    OutputFormat,
    default_config_path,
    generate_config_toml,
    local_config_path,
)
from gcal.date_range import (
    DEFAULT_SEARCH_DAYS,
    DateRangeInput,
    ResolvedDateRange,
    resolve_date_range,
    utcnow,
)
from gcal.errors import (
    ApiError,
    ConfigError,
    ExitCode,
    GcalError,
    TemporalValidationError,
    error_code_to_exit_code,
)
from gcal.event_times import (
    ResolvedEventTimes,
    UserTimeInput,
    resolve_create_times,
    resolve_event_time_fields,
)
from gcal.filters import TransparencyOption, apply_filters
from gcal.google_auth import (
    delete_credentials,
    fetch_user_email,
    get_credentials,
    load_token_data,
    revoke_token,
    run_oauth_flow,
)
from gcal.output import (
    format_calendar_list_text,
    format_event_detail_text,
    format_event_list_text,
    format_json_error,
    format_json_success,
    format_quiet_text,
    format_search_result_text,
)
from gcal.temporal import DateOnly, civil_date, parse_temporal, start_of_day

logger = logging.getLogger(__name__)

Writer = Callable[[str], None]


def _write_stdout(text: str) -> None:
    print(text)


def _write_stderr(text: str) -> None:
    print(text, file=sys.stderr)


_LATEST = datetime.datetime.max.replace(tzinfo=datetime.UTC)


@dataclass(slots=True)
class CommandResult:
    exit_code: int = ExitCode.SUCCESS


@dataclass(slots=True)
class CommandContext:
    """Everything a handler needs besides its own options."""

    service: CalendarService
    calendars: List[CalendarConfig]
    timezone: str
    output_format: OutputFormat = "text"
    quiet: bool = False
    config_calendars: List[CalendarConfig] = field(default_factory=list)
    write: Writer = _write_stdout
    write_err: Writer = _write_stderr
    now: Callable[[], datetime.datetime] = utcnow

    @property
    def json(self) -> bool:
        return self.output_format == "json"


@dataclass(slots=True)
class FilterOptions:
    busy: bool = False
    free: bool = False
    confirmed: bool = False
    include_tentative: bool = False

    @property
    def transparency(self) -> TransparencyOption:
        if self.busy:
            return "busy"
        if self.free:
            return "free"
        return None


@dataclass(slots=True)
class EventOptions:
    """Fields for ``add`` and ``update``; None means "not given"."""

    title: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[str] = None
    busy: bool = False
    free: bool = False

    @property
    def time_input(self) -> UserTimeInput:
        return UserTimeInput(start=self.start, end=self.end, duration=self.duration)

    @property
    def transparency(self) -> Optional[str]:
        if self.busy:
            return "opaque"
        if self.free:
            return "transparent"
        return None

    @property
    def has_changes(self) -> bool:
        return (
            self.title is not None
            or self.description is not None
            or self.busy
            or self.free
            or not self.time_input.is_empty
        )


# ---------------------------------------------------------------------------
# Error reporting
# ---------------------------------------------------------------------------


def write_error(
    exc: GcalError,
    output_format: OutputFormat,
    write: Writer = _write_stdout,
    write_err: Writer = _write_stderr,
) -> int:
    """Report *exc* in *output_format* and return its exit code."""
    if output_format == "json":
        write(format_json_error(exc.code, exc.message))
    else:
        write_err(f"Error: {exc.message}")
    return error_code_to_exit_code(exc.code)


async def run_command(
    ctx: CommandContext, handler: Awaitable[CommandResult]
) -> CommandResult:
    """Await *handler*, converting a GcalError into error output."""
    try:
        return await handler
    except GcalError as exc:
        logger.debug("Command failed with %s: %s", exc.code, exc.message)
        return CommandResult(
            write_error(exc, ctx.output_format, ctx.write, ctx.write_err)
        )


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _event_sort_key(event: CalendarEvent, tz: str) -> datetime.datetime:
    try:
        parsed = parse_temporal(event.start, tz)
    except TemporalValidationError:
        return _LATEST
    if isinstance(parsed, DateOnly):
        return start_of_day(parsed.date, tz)
    return parsed.value


async def fetch_events(
    ctx: CommandContext,
    date_range: ResolvedDateRange,
    query: Optional[str] = None,
) -> List[CalendarEvent]:
    """List events from every selected calendar concurrently.

    A failing calendar is reported as a warning; the call only fails when
    every calendar failed.
    """

    async def _fetch_calendar_events(
        calendar: CalendarConfig,
    ) -> tuple[CalendarConfig, List[CalendarEvent] | None, GcalError | None]:
        try:
            events = await asyncio.to_thread(
                ctx.service.list_events,
                calendar.id,
                calendar.label,
                time_min=date_range.time_min_rfc3339,
                time_max=date_range.time_max_rfc3339,
                query=query,
            )
        except GcalError as exc:
            return (calendar, None, exc)
        return (calendar, events, None)

    results = await asyncio.gather(
        *(_fetch_calendar_events(calendar) for calendar in ctx.calendars)
    )

    collected: List[CalendarEvent] = []
    errors: List[GcalError] = []
    for calendar, events, error in results:
        if error is not None:
            logger.debug("Listing %s failed: %s", calendar.id, error)
            ctx.write_err(f"Warning: {calendar.label}: {error}")
            errors.append(error)
            continue
        collected.extend(events or [])

    if errors and len(errors) == len(results):
        raise errors[0]

    collected.sort(key=lambda event: _event_sort_key(event, ctx.timezone))
    return collected


async def _target_calendar(ctx: CommandContext, event_id: str) -> CalendarConfig:
    if len(ctx.calendars) == 1:
        return ctx.calendars[0]
    return await asyncio.to_thread(
        resolve_event_calendar, ctx.service, event_id, ctx.calendars
    )


def _apply_event_fields(
    body: dict[str, Any],
    options: EventOptions,
    times: Optional[ResolvedEventTimes],
    *,
    patch: bool = False,
) -> dict[str, Any]:
    if options.title is not None:
        body["summary"] = options.title
    if options.description is not None:
        body["description"] = options.description
    if options.transparency is not None:
        body["transparency"] = options.transparency
    if times is not None:
        body.update(times.to_api_fields(clear_other_kind=patch))
    return body


def _last_covered_day(date_range: ResolvedDateRange) -> datetime.date:
    return civil_date(date_range.time_max - datetime.timedelta(seconds=1), date_range.timezone)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def handle_list(
    ctx: CommandContext,
    range_input: DateRangeInput,
    filters: Optional[FilterOptions] = None,
) -> CommandResult:
    """List events in a date range across the selected calendars."""
    filters = filters or FilterOptions()
    date_range = resolve_date_range(range_input, ctx.timezone, ctx.now)
    if date_range.warning:
        ctx.write_err(f"Warning: {date_range.warning}")

    events = await fetch_events(ctx, date_range)
    events = apply_filters(
        events,
        transparency=filters.transparency,
        confirmed=filters.confirmed,
        include_tentative=filters.include_tentative,
    )

    if ctx.json:
        ctx.write(format_json_success({"events": events, "count": len(events)}))
    elif ctx.quiet:
        ctx.write(format_quiet_text(events))
    else:
        ctx.write(format_event_list_text(events) or "No events found.")
    return CommandResult()


async def handle_search(
    ctx: CommandContext,
    query: str,
    range_input: DateRangeInput,
    filters: Optional[FilterOptions] = None,
) -> CommandResult:
    """Full-text search over a date range (30 days by default)."""
    if not query.strip():
        raise GcalError("search query must not be empty", code="INVALID_ARGS")
    filters = filters or FilterOptions()
    date_range = resolve_date_range(
        range_input, ctx.timezone, ctx.now, default_days=DEFAULT_SEARCH_DAYS
    )
    if date_range.warning:
        ctx.write_err(f"Warning: {date_range.warning}")
    if not ctx.json:
        first_day = civil_date(date_range.time_min, ctx.timezone)
        ctx.write_err(f"Searching: {first_day} to {_last_covered_day(date_range)}")
        ctx.write_err("Tip: Use --days <n> or --from/--to to change the search range.")

    events = await fetch_events(ctx, date_range, query=query)
    events = apply_filters(
        events,
        transparency=filters.transparency,
        confirmed=filters.confirmed,
        include_tentative=filters.include_tentative,
    )

    if ctx.json:
        ctx.write(format_json_success({"query": query, "events": events, "count": len(events)}))
    elif ctx.quiet:
        ctx.write(format_quiet_text(events))
    else:
        ctx.write(format_search_result_text(query, events))
    return CommandResult()


async def handle_show(ctx: CommandContext, event_id: str) -> CommandResult:
    calendar = await _target_calendar(ctx, event_id)
    event = await asyncio.to_thread(
        ctx.service.get_event, calendar.id, calendar.label, event_id
    )
    if ctx.json:
        ctx.write(format_json_success({"event": event}))
    else:
        ctx.write(format_event_detail_text(event))
    return CommandResult()


async def handle_add(ctx: CommandContext, options: EventOptions) -> CommandResult:
    """Create an event in the first selected calendar."""
    if not options.title:
        raise GcalError("--title is required", code="INVALID_ARGS")
    if options.busy and options.free:
        raise GcalError("--busy and --free cannot be used together", code="INVALID_ARGS")

    times = resolve_create_times(options.time_input, ctx.timezone)
    body = _apply_event_fields({}, options, times)
    body.setdefault("transparency", "opaque")

    calendar = ctx.calendars[0]
    event = await asyncio.to_thread(
        ctx.service.create_event, calendar.id, calendar.label, body
    )

    if ctx.json:
        ctx.write(format_json_success({"event": event, "message": "Event created"}))
    elif ctx.quiet:
        ctx.write(event.id)
    else:
        ctx.write(f"Event created\n\n{format_event_detail_text(event)}")
    return CommandResult()


async def handle_update(
    ctx: CommandContext, event_id: str, options: EventOptions
) -> CommandResult:
    """Patch an event; unspecified times are kept from the existing event."""
    if not options.has_changes:
        raise GcalError("at least one update option must be provided", code="INVALID_ARGS")
    if options.busy and options.free:
        raise GcalError("--busy and --free cannot be used together", code="INVALID_ARGS")

    calendar = await _target_calendar(ctx, event_id)

    def fetch_existing():
        return ctx.service.get_event_times(calendar.id, event_id, ctx.timezone)

    times = await asyncio.to_thread(
        resolve_event_time_fields, options.time_input, ctx.timezone, fetch_existing
    )
    if times is not None and times.type_changed is not None:
        ctx.write_err(f"Note: {times.type_changed.message}")

    body = _apply_event_fields({}, options, times, patch=True)
    event = await asyncio.to_thread(
        ctx.service.update_event, calendar.id, calendar.label, event_id, body
    )

    if ctx.json:
        data: dict[str, Any] = {"event": event}
        if times is not None and times.type_changed is not None:
            data["type_changed"] = {
                "from": str(times.type_changed.from_kind),
                "to": str(times.type_changed.to_kind),
            }
        ctx.write(format_json_success(data))
    elif not ctx.quiet:
        ctx.write(format_event_detail_text(event))
    return CommandResult()


async def handle_delete(
    ctx: CommandContext, event_id: str, *, dry_run: bool = False
) -> CommandResult:
    if not event_id:
        raise GcalError("event-id is required", code="INVALID_ARGS")
    calendar = await _target_calendar(ctx, event_id)

    if dry_run:
        if ctx.json:
            ctx.write(
                format_json_success(
                    {
                        "dry_run": True,
                        "action": "delete",
                        "event_id": event_id,
                        "calendar_id": calendar.id,
                    }
                )
            )
        else:
            ctx.write(f'DRY RUN: Would delete event "{event_id}" from calendar "{calendar.id}"')
        return CommandResult()

    await asyncio.to_thread(ctx.service.delete_event, calendar.id, event_id)

    if ctx.json:
        ctx.write(format_json_success({"deleted_id": event_id, "message": "Event deleted"}))
    elif not ctx.quiet:
        ctx.write("Event deleted")
    return CommandResult()


def merge_calendars_with_config(
    calendars: List[Calendar], configured: List[CalendarConfig]
) -> List[Calendar]:
    """Apply the config file's ``enabled`` flags to API calendars."""
    by_id = {entry.id: entry for entry in configured}
    for calendar in calendars:
        entry = by_id.get(calendar.id)
        if entry is None and calendar.primary:
            entry = by_id.get("primary")
        if entry is not None:
            calendar.enabled = entry.enabled
    return calendars


async def handle_calendars(ctx: CommandContext) -> CommandResult:
    calendars = await asyncio.to_thread(ctx.service.list_calendars)
    calendars = merge_calendars_with_config(calendars, ctx.config_calendars)

    if ctx.quiet and not ctx.json:
        ctx.write("\n".join(calendar.id for calendar in calendars))
    elif ctx.json:
        ctx.write(format_json_success({"calendars": calendars}))
    else:
        ctx.write(format_calendar_list_text(calendars))
    return CommandResult()



# ---------------------------------------------------------------------------
# Setup: auth / init
# ---------------------------------------------------------------------------

NOT_AUTHENTICATED = "Not authenticated. Run `gcal auth` to authenticate."

Login = Callable[[], Any]


@dataclass(slots=True)
class InitOptions:
    force: bool = False
    all: bool = False
    local: bool = False


def _token_expiry(credentials: Any) -> Optional[str]:
    expiry = getattr(credentials, "expiry", None)
    if expiry is None:
        return None
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=datetime.UTC)
    return expiry.isoformat(timespec="seconds")


async def handle_auth(
    ctx: CommandContext,
    settings: GcalSettings,
    *,
    status: bool = False,
    logout: bool = False,
    login: Optional[Login] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> CommandResult:
    """Log in through the browser, show the stored login, or log out.

    Without flags an existing valid login is reported instead of starting a
    new OAuth flow.
    """
    user_email = settings.user_email

    if logout:
        token_data = await asyncio.to_thread(load_token_data, user_email, settings)
        if token_data is None:
            if ctx.json:
                ctx.write(format_json_success({"logged_out": False, "message": "Not authenticated."}))
            else:
                ctx.write("Not authenticated. Nothing to log out.")
            return CommandResult()

        token = token_data.get("refresh_token") or token_data.get("token")
        revoked = await revoke_token(token, transport=transport) if token else False
        await asyncio.to_thread(delete_credentials, user_email, settings)
        if ctx.json:
            ctx.write(format_json_success({"logged_out": True, "revoked": revoked}))
        else:
            ctx.write("Logged out successfully. Credentials removed.")
        return CommandResult()

    credentials = await asyncio.to_thread(get_credentials, user_email, settings)
    if credentials is None:
        if status:
            raise ApiError(NOT_AUTHENTICATED, code="AUTH_REQUIRED")
        login = login or (lambda: run_oauth_flow(user_email, settings))
        credentials = await asyncio.to_thread(login)
        email = await fetch_user_email(credentials.token, transport=transport)
        if ctx.json:
            ctx.write(format_json_success({"authenticated": True, "email": email}))
        else:
            ctx.write("Authentication successful.")
        return CommandResult()

    email = await fetch_user_email(credentials.token, transport=transport)
    expires_at = _token_expiry(credentials)
    if ctx.json:
        ctx.write(
            format_json_success(
                {"authenticated": True, "email": email, "expires_at": expires_at}
            )
        )
    else:
        ctx.write(f"Authenticated as: {email or 'unknown'}")
        if expires_at:
            ctx.write(f"Token expires: {expires_at}")
    return CommandResult()


async def _list_calendars_for_init(
    ctx: CommandContext, request_auth: Optional[Login]
) -> List[Calendar]:
    try:
        return await asyncio.to_thread(ctx.service.list_calendars)
    except ApiError as exc:
        if exc.code != "AUTH_REQUIRED":
            raise
        if request_auth is None:
            raise ApiError(NOT_AUTHENTICATED, code="AUTH_REQUIRED") from exc
        logger.debug("Listing calendars needs auth: %s", exc)

    await asyncio.to_thread(request_auth)
    ctx.service.reset()
    return await asyncio.to_thread(ctx.service.list_calendars)


async def handle_init(
    ctx: CommandContext,
    options: Optional[InitOptions] = None,
    *,
    request_auth: Optional[Login] = None,
) -> CommandResult:
    """Write a config file listing the account's calendars.

    Only the primary calendar is enabled unless ``all`` is set.  An existing
    file is kept unless ``force`` is set.  With *request_auth*, a missing
    login triggers it once before retrying.
    """
    options = options or InitOptions()
    config_path = local_config_path() if options.local else default_config_path()
    if config_path.exists() and not options.force:
        raise ConfigError(
            f"Config file already exists: {config_path}\nUse --force to overwrite."
        )

    calendars = await _list_calendars_for_init(ctx, request_auth)
    if not calendars:
        raise ApiError("No calendars found in Google Calendar.", code="API_ERROR")

    entries = [
        CalendarConfig(
            id=calendar.id, name=calendar.name, enabled=options.all or calendar.primary
        )
        for calendar in calendars
    ]
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(generate_config_toml(entries, ctx.timezone), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot write config file {config_path}: {exc}") from exc
    logger.info("Wrote config for %d calendars to %s", len(entries), config_path)

    enabled = [entry for entry in entries if entry.enabled]
    if ctx.quiet:
        ctx.write(str(config_path))
    elif ctx.json:
        ctx.write(
            format_json_success(
                {
                    "path": str(config_path),
                    "timezone": ctx.timezone,
                    "calendars": [entry.model_dump() for entry in entries],
                    "enabled_count": len(enabled),
                    "total_count": len(entries),
                }
            )
        )
    else:
        lines = [f"Config file created: {config_path}", "", "Enabled calendars:"]
        lines += [f"  - {entry.label} ({entry.id})" for entry in enabled]
        lines += ["", f"Timezone: {ctx.timezone}"]
        ctx.write("\n".join(lines))
    return CommandResult()


__all__ = [
    "CommandContext",
    "CommandResult",
    "EventOptions",
    "FilterOptions",
    "InitOptions",
    "fetch_events",
    "handle_add",
    "handle_auth",
    "handle_calendars",
    "handle_delete",
    "handle_init",
    "handle_list",
    "handle_search",
    "handle_show",
    "handle_update",
    "merge_calendars_with_config",
    "run_command",
    "write_error",
]
