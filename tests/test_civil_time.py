"""Tests for civil-day normalisation."""

from datetime import datetime, timedelta, timezone

import pytest

from carebook import civil_time
from carebook.errors import InvalidTemporalInput


class TestCivilDayStart:
    def test_midnight_uses_fixed_offset(self):
        start = civil_time.civil_day_start("2030-01-15", offset_minutes=330)

        assert start.utcoffset() == timedelta(minutes=330)
        assert start.astimezone(timezone.utc) == datetime(2030, 1, 14, 18, 30, tzinfo=timezone.utc)

    def test_instant_combines_date_and_time(self):
        instant = civil_time.civil_instant("2030-01-15", "10:30", offset_minutes=0)

        assert instant == datetime(2030, 1, 15, 10, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["", "2030-02-30", "15/01/2030", "tomorrow"])
    def test_invalid_dates_rejected(self, value):
        with pytest.raises(InvalidTemporalInput):
            civil_time.civil_day_start(value)

    @pytest.mark.parametrize("value", ["25:00", "10:60", "10", "10:30:00", "ab:cd"])
    def test_invalid_times_rejected(self, value):
        with pytest.raises(InvalidTemporalInput):
            civil_time.civil_instant("2030-01-15", value)

    def test_single_digit_hour_normalises(self):
        assert civil_time.format_time_of_day(civil_time.parse_time_of_day("9:05")) == "09:05"


class TestDayWindow:
    def test_window_spans_one_civil_day(self):
        window = civil_time.day_window("2030-01-15", offset_minutes=330)

        assert window.instant_at("00:00") == window.start
        assert window.instant_at("23:59") - window.start < timedelta(hours=24)

    def test_window_uses_configured_offset_by_default(self, monkeypatch):
        monkeypatch.setattr(civil_time.settings, "civil_utc_offset_minutes", 0)

        window = civil_time.day_window("2030-01-15")

        assert window.offset_minutes == 0
        assert window.instant_at("10:00") == datetime(2030, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_instant_at_matches_civil_instant(self):
        window = civil_time.day_window("2030-01-15", offset_minutes=330)

        assert window.instant_at("13:45") == civil_time.civil_instant(
            "2030-01-15", "13:45", offset_minutes=330
        )

    def test_utc_iso_round_trip_preserves_instant(self):
        instant = civil_time.civil_instant("2030-01-15", "10:00")

        assert civil_time.from_utc_iso(civil_time.to_utc_iso(instant)) == instant
