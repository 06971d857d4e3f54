"""Tests for gcal.timezones: effective zone selection."""

from __future__ import annotations

from pathlib import Path

import pytest

from gcal import timezones
from gcal.errors import InvalidTimezone
from gcal.timezones import (
    get_zone,
    is_valid_timezone,
    resolve_timezone,
    system_timezone_name,
)


class TestResolveTimezone:
    def test_explicit_wins(self, monkeypatch):
        monkeypatch.setenv("TZ", "Europe/Berlin")
        assert resolve_timezone("Asia/Tokyo", "America/New_York") == "Asia/Tokyo"

    def test_configured_beats_system(self, monkeypatch):
        monkeypatch.setenv("TZ", "Europe/Berlin")
        assert resolve_timezone(None, "America/New_York") == "America/New_York"

    def test_falls_back_to_system(self, monkeypatch):
        monkeypatch.setenv("TZ", "Europe/Berlin")
        assert resolve_timezone() == "Europe/Berlin"

    def test_invalid_explicit_names_the_zone(self):
        with pytest.raises(InvalidTimezone) as exc_info:
            resolve_timezone("Invalid/Zone", "Asia/Tokyo")
        assert "Invalid/Zone" in str(exc_info.value)

    def test_invalid_configured(self):
        with pytest.raises(InvalidTimezone):
            resolve_timezone(None, "Not/AZone")

    def test_empty_explicit_is_invalid(self):
        with pytest.raises(InvalidTimezone):
            resolve_timezone("", "Asia/Tokyo")


class TestSystemTimezone:
    def test_tz_env_with_colon_prefix(self, monkeypatch):
        monkeypatch.setenv("TZ", ":Asia/Tokyo")
        assert system_timezone_name() == "Asia/Tokyo"

    def test_posix_tz_env_falls_through_to_etc_timezone(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("TZ", "JST-9")
        etc_timezone = tmp_path / "timezone"
        etc_timezone.write_text("Asia/Tokyo\n", encoding="utf-8")
        monkeypatch.setattr(timezones, "_ETC_TIMEZONE", etc_timezone)
        assert system_timezone_name() == "Asia/Tokyo"
        assert resolve_timezone() == "Asia/Tokyo"

    def test_etc_timezone_file(self, monkeypatch, tmp_path: Path):
        monkeypatch.delenv("TZ", raising=False)
        etc_timezone = tmp_path / "timezone"
        etc_timezone.write_text("Europe/Paris\n", encoding="utf-8")
        monkeypatch.setattr(timezones, "_ETC_TIMEZONE", etc_timezone)
        assert system_timezone_name() == "Europe/Paris"

    def test_localtime_symlink(self, monkeypatch, tmp_path: Path):
        monkeypatch.delenv("TZ", raising=False)
        monkeypatch.setattr(timezones, "_ETC_TIMEZONE", tmp_path / "missing")
        target = tmp_path / "zoneinfo" / "America" / "Chicago"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"TZif")
        link = tmp_path / "localtime"
        link.symlink_to(target)
        monkeypatch.setattr(timezones, "_ETC_LOCALTIME", link)
        assert system_timezone_name() == "America/Chicago"

    def test_defaults_to_utc(self, monkeypatch, tmp_path: Path):
        monkeypatch.delenv("TZ", raising=False)
        monkeypatch.setattr(timezones, "_ETC_TIMEZONE", tmp_path / "missing")
        monkeypatch.setattr(timezones, "_ETC_LOCALTIME", tmp_path / "missing-localtime")
        assert system_timezone_name() == "UTC"


class TestValidation:
    @pytest.mark.parametrize("name", ["UTC", "Asia/Tokyo", "America/Argentina/Buenos_Aires"])
    def test_valid(self, name):
        assert is_valid_timezone(name)
        assert get_zone(name).key == name

    @pytest.mark.parametrize("name", ["", "Foo/Bar", "../etc/passwd", "Asia/Tokyo "])
    def test_invalid(self, name):
        assert not is_valid_timezone(name)
