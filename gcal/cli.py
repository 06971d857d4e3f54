"""Command-line entry point.

Run:
    gcal auth
    gcal init --all
    gcal list --days 3 --tz Asia/Tokyo
    gcal add --title "Standup" --start 2026-03-02T09:30 --duration 15m
    python -m gcal.cli update EVENT_ID --start 2026-03-03
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from gcal.api import CalendarService
from gcal.commands import (
    CommandContext,
    CommandResult,
    EventOptions,
    FilterOptions,
    InitOptions,
    handle_add,
    handle_auth,
    handle_calendars,
    handle_delete,
    handle_init,
    handle_list,
    handle_search,
    handle_show,
    handle_update,
    run_command,
    write_error,
)
from gcal.config import GcalSettings, load_config, select_calendars
from gcal.date_range import DateRangeInput
from gcal.errors import ExitCode, GcalError
from gcal.google_auth import run_oauth_flow
from gcal.timezones import resolve_timezone

logger = logging.getLogger(__name__)

__version__ = "0.1.0"

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

SETUP_COMMANDS = {"auth", "init"}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class GcalArgumentParser(argparse.ArgumentParser):
    """Reports usage errors with the argument exit code instead of 2."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(ExitCode.ARGUMENT, f"{self.prog}: error: {message}\n")


def _global_options(suppress: bool) -> argparse.ArgumentParser:
    """Global flags, accepted before or after the subcommand."""
    default = argparse.SUPPRESS if suppress else None
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "-f",
        "--format",
        choices=["text", "json"],
        default=default,
        help="Output format (default: from config, else text)",
    )
    parser.add_argument(
        "-c",
        "--calendar",
        action="append",
        default=default,
        help="Calendar ID to use (repeatable)",
    )
    parser.add_argument(
        "--timezone",
        "--tz",
        dest="timezone",
        default=default,
        help="IANA timezone, e.g. Asia/Tokyo",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", default=default or False, help="Minimal output"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=default or False, help="Debug logging"
    )
    return parser


def _range_options(parser: argparse.ArgumentParser, default_days: int) -> None:
    parser.add_argument("--today", action="store_true", help="Only today's events")
    parser.add_argument(
        "--days", type=int, help=f"Number of days from today (default: {default_days})"
    )
    parser.add_argument("--from", dest="from_", help="Start date or datetime")
    parser.add_argument("--to", help="End date or datetime (inclusive)")
    parser.add_argument("--busy", action="store_true", help="Only busy events")
    parser.add_argument("--free", action="store_true", help="Only free events")
    parser.add_argument("--confirmed", action="store_true", help="Only confirmed events")
    parser.add_argument(
        "--include-tentative", action="store_true", help="Include tentative events"
    )


def _event_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-t", "--title", help="Event title")
    parser.add_argument("-s", "--start", help="YYYY-MM-DD (all day) or datetime")
    parser.add_argument(
        "-e", "--end", help="YYYY-MM-DD (inclusive, all day) or datetime"
    )
    parser.add_argument("--duration", help="Length such as 30m, 1h30m, 2d")
    parser.add_argument("-d", "--description", help="Event description")
    availability = parser.add_mutually_exclusive_group()
    availability.add_argument("--busy", action="store_true", help="Mark as busy")
    availability.add_argument("--free", action="store_true", help="Mark as free")


def build_parser() -> argparse.ArgumentParser:
    common = _global_options(suppress=True)
    parser = GcalArgumentParser(
        prog="gcal",
        description="Google Calendar from the command line",
        parents=[_global_options(suppress=False)],
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", parents=[common], help="List events in a date range")
    _range_options(list_cmd, 7)

    search_cmd = sub.add_parser("search", parents=[common], help="Search events by text")
    search_cmd.add_argument("query")
    _range_options(search_cmd, 30)

    show_cmd = sub.add_parser("show", parents=[common], help="Show one event")
    show_cmd.add_argument("event_id")

    add_cmd = sub.add_parser("add", parents=[common], help="Create an event")
    _event_options(add_cmd)

    update_cmd = sub.add_parser("update", parents=[common], help="Update an event")
    update_cmd.add_argument("event_id")
    _event_options(update_cmd)

    delete_cmd = sub.add_parser("delete", parents=[common], help="Delete an event")
    delete_cmd.add_argument("event_id")
    delete_cmd.add_argument(
        "--dry-run", action="store_true", help="Show what would be deleted"
    )

    sub.add_parser("calendars", parents=[common], help="List calendars")

    auth_cmd = sub.add_parser("auth", parents=[common], help="Manage OAuth authentication")
    auth_mode = auth_cmd.add_mutually_exclusive_group()
    auth_mode.add_argument("--status", action="store_true", help="Check authentication status")
    auth_mode.add_argument("--logout", action="store_true", help="Remove stored credentials")
    auth_cmd.add_argument(
        "--no-browser", action="store_true", help="Print the login URL without opening it"
    )

    init_cmd = sub.add_parser(
        "init", parents=[common], help="Create a config file from your Google calendars"
    )
    init_cmd.add_argument("--force", action="store_true", help="Overwrite an existing config file")
    init_cmd.add_argument(
        "--all", action="store_true", help="Enable all calendars (default: primary only)"
    )
    init_cmd.add_argument(
        "--local", action="store_true", help="Create ./gcal-cli.toml in the current directory"
    )
    return parser


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def configure_logging(verbose: bool, settings: GcalSettings) -> None:
    level = logging.DEBUG if verbose else getattr(
        logging, settings.log_level.upper(), logging.WARNING
    )
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def _range_input(args: argparse.Namespace) -> DateRangeInput:
    return DateRangeInput(today=args.today, days=args.days, from_=args.from_, to=args.to)


def _filters(args: argparse.Namespace) -> FilterOptions:
    return FilterOptions(
        busy=args.busy,
        free=args.free,
        confirmed=args.confirmed,
        include_tentative=args.include_tentative,
    )


def _event_input(args: argparse.Namespace) -> EventOptions:
    return EventOptions(
        title=args.title,
        start=args.start,
        end=args.end,
        duration=args.duration,
        description=args.description,
        busy=args.busy,
        free=args.free,
    )


def _handler(ctx: CommandContext, args: argparse.Namespace, settings: GcalSettings):
    if args.command == "auth":

        def login():
            return run_oauth_flow(settings.user_email, settings, open_browser=not args.no_browser)

        return handle_auth(ctx, settings, status=args.status, logout=args.logout, login=login)
    if args.command == "init":
        options = InitOptions(force=args.force, all=args.all, local=args.local)
        return handle_init(
            ctx, options, request_auth=lambda: run_oauth_flow(settings.user_email, settings)
        )
    if args.command == "list":
        return handle_list(ctx, _range_input(args), _filters(args))
    if args.command == "search":
        return handle_search(ctx, args.query, _range_input(args), _filters(args))
    if args.command == "show":
        return handle_show(ctx, args.event_id)
    if args.command == "add":
        return handle_add(ctx, _event_input(args))
    if args.command == "update":
        return handle_update(ctx, args.event_id, _event_input(args))
    if args.command == "delete":
        return handle_delete(ctx, args.event_id, dry_run=args.dry_run)
    return handle_calendars(ctx)


def build_context(
    args: argparse.Namespace,
    settings: GcalSettings,
    service: Optional[CalendarService] = None,
) -> CommandContext:
    """Load config and resolve the timezone, output format and calendars."""
    config = load_config(settings)
    timezone = resolve_timezone(args.timezone, config.timezone)
    return CommandContext(
        service=service or CalendarService(settings.user_email, settings=settings),
        calendars=select_calendars(args.calendar, config),
        timezone=timezone,
        output_format=args.format or config.default_format,
        quiet=args.quiet,
        config_calendars=list(config.calendars),
    )


def build_setup_context(
    args: argparse.Namespace,
    settings: GcalSettings,
    service: Optional[CalendarService] = None,
) -> CommandContext:
    """Context for ``auth`` and ``init``, which must work without a config file."""
    return CommandContext(
        service=service or CalendarService(settings.user_email, settings=settings),
        calendars=[],
        timezone=resolve_timezone(args.timezone),
        output_format=args.format or "text",
        quiet=args.quiet,
    )


def run_cli(
    argv: Optional[Sequence[str]] = None,
    *,
    settings: Optional[GcalSettings] = None,
    service: Optional[CalendarService] = None,
) -> int:
    """Parse *argv*, run the command and return the exit code."""
    args = build_parser().parse_args(argv)
    settings = settings or GcalSettings()
    configure_logging(args.verbose, settings)

    try:
        if args.command in SETUP_COMMANDS:
            ctx = build_setup_context(args, settings, service)
        else:
            ctx = build_context(args, settings, service)
    except GcalError as exc:
        return write_error(exc, args.format or "text")

    logger.debug("Running %s in %s", args.command, ctx.timezone)
    result: CommandResult = asyncio.run(run_command(ctx, _handler(ctx, args, settings)))
    return int(result.exit_code)


def main() -> None:  # pragma: no cover - CLI helper
    try:
        code = run_cli()
    except KeyboardInterrupt:
        code = ExitCode.GENERAL
    sys.exit(int(code))


if __name__ == "__main__":  # pragma: no cover
    main()


__all__ = [
    "GcalArgumentParser",
    "build_context",
    "build_parser",
    "build_setup_context",
    "configure_logging",
    "main",
    "run_cli",
]
