"""Configuration: environment settings and the TOML config file.

Environment (or ``.env``) values are loaded through pydantic-settings.  The
config file is searched at ``$GCAL_CLI_CONFIG``, ``./gcal-cli.toml`` and
``~/.config/gcal-cli/config.toml``, in that order::

    timezone = "Asia/Tokyo"
    default_format = "text"

    [[calendars]]
    id = "primary"
    name = "Main Calendar"
    enabled = true
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from gcal.errors import ConfigError

PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_FILENAME = "gcal-cli.toml"

OutputFormat = Literal["text", "json"]


class GcalSettings(BaseSettings):
    """Load runtime settings from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    config_path: Optional[Path] = Field(default=None, validation_alias="GCAL_CLI_CONFIG")
    user_email: str = Field(default="default", validation_alias="GCAL_USER_EMAIL")
    credentials_dir: Path = Field(
        default_factory=lambda: Path.home() / ".config" / "gcal-cli",
        validation_alias="GCAL_CREDENTIALS_DIR",
    )
    token_dir: Optional[Path] = Field(default=None, validation_alias="GCAL_TOKEN_DIR")
    log_level: str = Field(default="WARNING", validation_alias="GCAL_LOG_LEVEL")
    google_client_id: Optional[str] = Field(default=None, validation_alias="GOOGLE_CLIENT_ID")
    google_client_secret: Optional[str] = Field(
        default=None, validation_alias="GOOGLE_CLIENT_SECRET"
    )

    @property
    def resolved_token_dir(self) -> Path:
        return self.token_dir or self.credentials_dir / "tokens"


class CalendarConfig(BaseModel):
    """A calendar entry from the config file."""

    id: str
    name: str = ""
    enabled: bool = True

    @property
    def label(self) -> str:
        return self.name or self.id


class AppConfig(BaseModel):
    """Parsed config file contents."""

    timezone: Optional[str] = None
    default_format: OutputFormat = "text"
    calendars: list[CalendarConfig] = Field(
        default_factory=lambda: [CalendarConfig(id="primary", name="Primary")]
    )


def default_config_path() -> Path:
    return Path.home() / ".config" / "gcal-cli" / "config.toml"


def local_config_path() -> Path:
    return Path.cwd() / CONFIG_FILENAME


def find_config_path(settings: Optional[GcalSettings] = None) -> Optional[Path]:
    """Return the first existing config file, or None."""
    settings = settings or GcalSettings()
    candidates: list[Path] = []
    if settings.config_path:
        candidates.append(settings.config_path.expanduser())
    candidates.append(local_config_path())
    candidates.append(default_config_path())

    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def parse_config(text: str, *, source: str = "<config>") -> AppConfig:
    """Parse TOML config text into an AppConfig."""
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {source}: {exc}") from exc

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {source}: {exc}") from exc


def load_config(settings: Optional[GcalSettings] = None) -> AppConfig:
    """Load the config file, or return defaults when none exists."""
    path = find_config_path(settings)
    if path is None:
        return AppConfig()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    return parse_config(text, source=str(path))


def _toml_string(value: str) -> str:
    # JSON string escapes are valid TOML basic-string escapes.
    return json.dumps(value, ensure_ascii=False)


def generate_config_toml(calendars: list[CalendarConfig], timezone: str) -> str:
    """Render a config file that :func:`parse_config` reads back."""
    lines = [
        "# gcal-cli configuration",
        f"timezone = {_toml_string(timezone)}",
        'default_format = "text"',
    ]
    for calendar in calendars:
        lines += [
            "",
            "[[calendars]]",
            f"id = {_toml_string(calendar.id)}",
            f"name = {_toml_string(calendar.name)}",
            f"enabled = {'true' if calendar.enabled else 'false'}",
        ]
    return "\n".join(lines) + "\n"


def get_enabled_calendars(calendars: list[CalendarConfig]) -> list[CalendarConfig]:
    return [calendar for calendar in calendars if calendar.enabled]


def select_calendars(
    cli_calendars: Optional[list[str]], config: AppConfig
) -> list[CalendarConfig]:
    """Pick the calendars a command should operate on.

    Calendars named on the command line win, even when disabled in the
    config; unknown IDs are used as given.  Otherwise every enabled
    calendar is used, falling back to ``primary``.
    """
    if cli_calendars:
        known = {calendar.id: calendar for calendar in config.calendars}
        return [
            known.get(cal_id, CalendarConfig(id=cal_id, name=cal_id))
            for cal_id in cli_calendars
        ]

    enabled = get_enabled_calendars(config.calendars)
    if enabled:
        return enabled
    return [CalendarConfig(id="primary", name="Primary")]


__all__ = [
    "AppConfig",
    "CalendarConfig",
    "GcalSettings",
    "OutputFormat",
    "default_config_path",
    "find_config_path",
    "generate_config_toml",
    "get_enabled_calendars",
    "load_config",
    "local_config_path",
    "parse_config",
    "select_calendars",
]
