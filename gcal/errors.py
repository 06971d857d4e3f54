"""Error types and exit-code mapping for the gcal command surface.

Every error raised by the temporal resolution engine is a
``TemporalValidationError``: a caller mistake that is reported to the user,
never a crash.  Errors raised while talking to Google are ``ApiError``.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Literal

ErrorCode = Literal[
    "AUTH_REQUIRED",
    "NOT_FOUND",
    "INVALID_ARGS",
    "API_ERROR",
    "CONFIG_ERROR",
]


class ExitCode(IntEnum):
    SUCCESS = 0
    GENERAL = 1
    AUTH = 2
    ARGUMENT = 3


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class GcalError(RuntimeError):
    """Base class for errors surfaced to the user."""

    code: ErrorCode = "API_ERROR"

    def __init__(self, message: str, *, code: ErrorCode | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


# ---------------------------------------------------------------------------
# Temporal validation
# ---------------------------------------------------------------------------


class TemporalValidationError(GcalError, ValueError):
    """Raised when user supplied date, time or duration input is unusable."""

    code: ErrorCode = "INVALID_ARGS"


class InvalidDuration(TemporalValidationError):
    """Duration string does not match the ``1d2h30m`` grammar."""


class ZeroDuration(TemporalValidationError):
    """Duration string is well formed but adds up to nothing."""


class DayUnitDurationRequired(TemporalValidationError):
    """Duration has hour or minute parts where whole days are needed."""


class TypeMismatch(TemporalValidationError):
    """Start and end disagree on being all-day or timed."""


class MutuallyExclusiveOptions(TemporalValidationError):
    """Both an end and a duration were supplied."""


class InvalidTimezone(TemporalValidationError):
    """Timezone name is not in the IANA database."""


class InvalidRangeLength(TemporalValidationError):
    """Date range would be empty or negative."""


class InvalidDateTime(TemporalValidationError):
    """Date or datetime string cannot be parsed."""


# ---------------------------------------------------------------------------
# Remote API and configuration
# ---------------------------------------------------------------------------


class ApiError(GcalError):
    """Raised when the Google Calendar API call fails."""


class PaginationLimitExceeded(ApiError):
    """Raised when a list endpoint keeps returning page tokens."""

    code: ErrorCode = "API_ERROR"


class ConfigError(GcalError):
    """Raised when the config file cannot be read or validated."""

    code: ErrorCode = "CONFIG_ERROR"


_EXIT_CODES: dict[str, ExitCode] = {
    "AUTH_REQUIRED": ExitCode.AUTH,
    "INVALID_ARGS": ExitCode.ARGUMENT,
    "NOT_FOUND": ExitCode.GENERAL,
    "API_ERROR": ExitCode.GENERAL,
    "CONFIG_ERROR": ExitCode.GENERAL,
}


def error_code_to_exit_code(code: str) -> ExitCode:
    """Return the process exit code for an error code."""
    return _EXIT_CODES.get(code, ExitCode.GENERAL)


__all__ = [
    "ApiError",
    "ConfigError",
    "DayUnitDurationRequired",
    "ErrorCode",
    "ExitCode",
    "GcalError",
    "InvalidDateTime",
    "InvalidDuration",
    "InvalidRangeLength",
    "InvalidTimezone",
    "MutuallyExclusiveOptions",
    "PaginationLimitExceeded",
    "TemporalValidationError",
    "TypeMismatch",
    "ZeroDuration",
    "error_code_to_exit_code",
]
