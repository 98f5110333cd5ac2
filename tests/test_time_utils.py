"""Tests for drop_tracker.utils.time_utils — activity date parsing and ISO helpers."""

from __future__ import annotations

import locale
from datetime import datetime, timedelta, timezone

import pytest

from drop_tracker.utils.time_utils import from_iso, parse_activity_date, to_iso


@pytest.fixture
def german_time_locale():
    previous = locale.setlocale(locale.LC_TIME)
    for name in ("de_DE.UTF-8", "de_DE.utf8", "de_DE"):
        try:
            locale.setlocale(locale.LC_TIME, name)
            break
        except locale.Error:
            continue
    else:
        pytest.skip("no German locale installed")
    yield
    locale.setlocale(locale.LC_TIME, previous)


class TestParseActivityDate:
    def test_runemetrics_form(self):
        assert parse_activity_date("01-Dec-2024 10:05") == datetime(
            2024, 12, 1, 10, 5, tzinfo=timezone.utc
        )

    def test_month_case_ignored(self):
        expected = datetime(2024, 2, 1, 10, 0, tzinfo=timezone.utc)
        assert parse_activity_date("01-FEB-2024 10:00") == expected
        assert parse_activity_date("1-feb-2024 10:00") == expected

    def test_english_months_under_other_locale(self, german_time_locale):
        # "Dec" is "Dez" in German; the feed is always English.
        assert parse_activity_date("01-Dec-2024 10:00") == datetime(
            2024, 12, 1, 10, 0, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize(
        "raw",
        ["31-Feb-2024 10:00", "01-Foo-2024 10:00", "01-Feb-2024 25:00", "01-Feb-2024", "", "  "],
    )
    def test_invalid_returns_none(self, raw):
        assert parse_activity_date(raw) is None

    def test_iso_with_z(self):
        assert parse_activity_date("2024-02-01T10:00:00Z") == datetime(
            2024, 2, 1, 10, 0, tzinfo=timezone.utc
        )


class TestIsoHelpers:
    def test_offset_normalized_to_utc(self):
        value = datetime(2024, 2, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_iso(value) == "2024-02-01T10:00:00+00:00"

    def test_from_iso_inverts_to_iso(self):
        value = datetime(2024, 2, 1, 10, 0, 17, tzinfo=timezone.utc)
        assert from_iso(to_iso(value)) == value
