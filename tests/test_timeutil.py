"""
Tests for timestamp normalization and usage-day bucketing.
"""
from datetime import datetime, date, timezone as dt_timezone
import pytest
import pytz

from stockpulse.core.timeutil import (
    day_of_week,
    days_between,
    to_db,
    to_utc,
    usage_date,
)


class TestToUtc:
    """Every representation normalizes to the same aware UTC instant."""

    def test_equivalent_representations(self):
        expected = datetime(2024, 1, 2, 3, 0, tzinfo=pytz.UTC)

        assert to_utc(datetime(2024, 1, 2, 3, 0)) == expected
        assert to_utc(datetime(2024, 1, 2, 3, 0, tzinfo=dt_timezone.utc)) == expected
        assert to_utc("2024-01-02T03:00:00Z") == expected
        assert to_utc("2024-01-02T04:00:00+01:00") == expected
        assert to_utc(expected.timestamp()) == expected
        assert to_utc(int(expected.timestamp())) == expected

    def test_result_is_aware(self):
        assert to_utc(datetime(2024, 1, 2)).tzinfo is not None

    def test_date_is_midnight_utc(self):
        assert to_utc(date(2024, 1, 2)) == datetime(2024, 1, 2, tzinfo=pytz.UTC)

    def test_rejects_bool(self):
        with pytest.raises(TypeError):
            to_utc(True)

    def test_rejects_unknown_type(self):
        with pytest.raises(TypeError):
            to_utc([2024, 1, 2])

    def test_to_db_is_naive_utc(self):
        stored = to_db("2024-01-02T04:00:00+01:00")
        assert stored.tzinfo is None
        assert stored == datetime(2024, 1, 2, 3, 0)


class TestUsageDate:

    def test_utc_bucket(self):
        assert usage_date("2024-01-02T03:00:00Z") == date(2024, 1, 2)

    def test_configured_timezone_bucket(self):
        assert usage_date("2024-01-02T03:00:00Z", "America/New_York") == date(2024, 1, 1)


class TestDayOfWeek:

    def test_sunday_is_zero(self):
        assert day_of_week(date(2024, 3, 17)) == 0  # Sunday

    def test_saturday_is_six(self):
        assert day_of_week(date(2024, 3, 16)) == 6

    def test_friday(self):
        assert day_of_week(date(2024, 3, 15)) == 5


class TestDaysBetween:

    def test_floors_partial_days(self):
        assert days_between("2024-01-01T00:00:00Z", "2024-01-03T23:00:00Z") == 2

    def test_never_negative(self):
        assert days_between("2024-01-03T00:00:00Z", "2024-01-01T00:00:00Z") == 0
