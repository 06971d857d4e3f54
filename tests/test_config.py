"""Tests for gcal.config: settings, config file discovery and calendar selection."""

from __future__ import annotations

from pathlib import Path

import pytest

from gcal.config import (
    AppConfig,
    CalendarConfig,
    GcalSettings,
    default_config_path,
    find_config_path,
    generate_config_toml,
    get_enabled_calendars,
    load_config,
    local_config_path,
    parse_config,
    select_calendars,
)
from gcal.errors import ConfigError

SAMPLE = """
timezone = "Asia/Tokyo"
default_format = "json"

[[calendars]]
id = "primary"
name = "Main Calendar"
enabled = true

[[calendars]]
id = "family@group.calendar.google.com"
name = "Family"
enabled = false
"""


@pytest.fixture
def isolated_home(monkeypatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    monkeypatch.delenv("GCAL_CLI_CONFIG", raising=False)
    return home


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseConfig:
    def test_full_file(self):
        config = parse_config(SAMPLE)
        assert config.timezone == "Asia/Tokyo"
        assert config.default_format == "json"
        assert [calendar.id for calendar in config.calendars] == [
            "primary",
            "family@group.calendar.google.com",
        ]
        assert config.calendars[1].enabled is False

    def test_empty_file_uses_defaults(self):
        config = parse_config("")
        assert config.timezone is None
        assert config.default_format == "text"
        assert config.calendars == [CalendarConfig(id="primary", name="Primary")]

    def test_invalid_toml(self):
        with pytest.raises(ConfigError) as exc_info:
            parse_config("timezone = ", source="broken.toml")
        assert "broken.toml" in str(exc_info.value)
        assert exc_info.value.code == "CONFIG_ERROR"

    def test_invalid_values(self):
        with pytest.raises(ConfigError):
            parse_config('default_format = "xml"')

    def test_calendar_requires_id(self):
        with pytest.raises(ConfigError):
            parse_config('[[calendars]]\nname = "No id"\n')


class TestGenerateConfig:
    def test_reads_back(self):
        calendars = [
            CalendarConfig(id="me@example.com", name="Me", enabled=True),
            CalendarConfig(id="team@group.calendar.google.com", name='Team "A" \\ B', enabled=False),
        ]

        text = generate_config_toml(calendars, "Asia/Tokyo")

        assert text.startswith("# gcal-cli configuration\n")
        config = parse_config(text)
        assert config.timezone == "Asia/Tokyo"
        assert config.default_format == "text"
        assert config.calendars == calendars

    def test_paths(self, isolated_home):
        assert default_config_path() == isolated_home / ".config" / "gcal-cli" / "config.toml"
        assert local_config_path() == Path.cwd() / "gcal-cli.toml"


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestDiscovery:
    def test_env_var_wins(self, isolated_home, tmp_path, monkeypatch):
        explicit = tmp_path / "explicit.toml"
        explicit.write_text('timezone = "Europe/Paris"\n', encoding="utf-8")
        Path("gcal-cli.toml").write_text('timezone = "Asia/Tokyo"\n', encoding="utf-8")
        monkeypatch.setenv("GCAL_CLI_CONFIG", str(explicit))

        assert find_config_path(GcalSettings()) == explicit
        assert load_config(GcalSettings()).timezone == "Europe/Paris"

    def test_working_directory_before_home(self, isolated_home):
        Path("gcal-cli.toml").write_text('timezone = "Asia/Tokyo"\n', encoding="utf-8")
        home_config = isolated_home / ".config" / "gcal-cli" / "config.toml"
        home_config.parent.mkdir(parents=True)
        home_config.write_text('timezone = "UTC"\n', encoding="utf-8")

        assert load_config(GcalSettings()).timezone == "Asia/Tokyo"

    def test_home_config(self, isolated_home):
        home_config = isolated_home / ".config" / "gcal-cli" / "config.toml"
        home_config.parent.mkdir(parents=True)
        home_config.write_text('timezone = "UTC"\n', encoding="utf-8")

        assert find_config_path(GcalSettings()) == home_config

    def test_missing_file_gives_defaults(self, isolated_home):
        assert find_config_path(GcalSettings()) is None
        assert load_config(GcalSettings()) == AppConfig()


class TestSettings:
    def test_env_aliases(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GCAL_USER_EMAIL", "me@example.com")
        monkeypatch.setenv("GCAL_TOKEN_DIR", str(tmp_path / "tokens"))
        monkeypatch.setenv("GCAL_LOG_LEVEL", "DEBUG")
        settings = GcalSettings()
        assert settings.user_email == "me@example.com"
        assert settings.resolved_token_dir == tmp_path / "tokens"
        assert settings.log_level == "DEBUG"

    def test_token_dir_defaults_under_credentials_dir(self, monkeypatch, tmp_path):
        monkeypatch.delenv("GCAL_TOKEN_DIR", raising=False)
        monkeypatch.setenv("GCAL_CREDENTIALS_DIR", str(tmp_path))
        assert GcalSettings().resolved_token_dir == tmp_path / "tokens"


# ---------------------------------------------------------------------------
# Calendar selection
# ---------------------------------------------------------------------------


class TestSelectCalendars:
    CONFIG = parse_config(SAMPLE)

    def test_enabled_calendars_by_default(self):
        selected = select_calendars(None, self.CONFIG)
        assert [calendar.id for calendar in selected] == ["primary"]

    def test_cli_ids_win_even_when_disabled(self):
        selected = select_calendars(["family@group.calendar.google.com"], self.CONFIG)
        assert selected[0].name == "Family"

    def test_unknown_cli_id_is_used_as_given(self):
        selected = select_calendars(["other@example.com"], self.CONFIG)
        assert selected == [CalendarConfig(id="other@example.com", name="other@example.com")]

    def test_all_disabled_falls_back_to_primary(self):
        config = AppConfig(calendars=[CalendarConfig(id="x", enabled=False)])
        assert [calendar.id for calendar in select_calendars(None, config)] == ["primary"]

    def test_get_enabled(self):
        assert len(get_enabled_calendars(self.CONFIG.calendars)) == 1

    def test_label_falls_back_to_id(self):
        assert CalendarConfig(id="abc").label == "abc"
