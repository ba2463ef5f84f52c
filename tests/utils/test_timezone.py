"""Tests for utils/timezone.py - UTC storage, local business days."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from utils.timezone import local_day_bounds, now_utc, to_local, to_utc


class TestNowUtc:

    def test_is_aware_utc(self):
        result = now_utc()
        assert result.tzinfo == timezone.utc


class TestToUtc:

    def test_raises_on_naive(self):
        with pytest.raises(ValueError, match="naive"):
            to_utc(datetime(2026, 1, 1, 12, 0, 0))

    def test_converts_kuwait_time(self):
        """Kuwait is UTC+3 all year."""
        kuwait = datetime(2026, 3, 1, 12, 0, 0, tzinfo=ZoneInfo("Asia/Kuwait"))
        result = to_utc(kuwait)
        assert result.tzinfo == timezone.utc
        assert result.hour == 9


class TestToLocal:

    def test_converts_correctly(self):
        utc_time = datetime(2026, 3, 1, 22, 30, 0, tzinfo=timezone.utc)
        result = to_local(utc_time, "Asia/Kuwait")
        assert result.day == 2
        assert result.hour == 1

    def test_raises_on_naive(self):
        with pytest.raises(ValueError, match="naive"):
            to_local(datetime(2026, 1, 1), "Asia/Kuwait")

    def test_raises_on_invalid_timezone(self):
        with pytest.raises(ValueError, match="Unknown timezone"):
            to_local(now_utc(), "Not/A/Timezone")


class TestLocalDayBounds:

    def test_kuwait_day_starts_at_21_utc_the_evening_before(self):
        start, end = local_day_bounds(date(2026, 3, 2), "Asia/Kuwait")

        assert start == datetime(2026, 3, 1, 21, 0, tzinfo=timezone.utc)
        assert end == datetime(2026, 3, 2, 21, 0, tzinfo=timezone.utc)

    def test_bounds_are_utc(self):
        start, end = local_day_bounds(date(2026, 3, 2), "Asia/Kuwait")
        assert start.tzinfo == timezone.utc
        assert end.tzinfo == timezone.utc

    def test_dst_day_is_23_hours(self):
        """Spring-forward day in a DST zone is one hour short."""
        start, end = local_day_bounds(date(2026, 3, 8), "America/Chicago")
        assert (end - start).total_seconds() == 23 * 3600

    def test_invalid_timezone_raises(self):
        with pytest.raises(ValueError, match="Unknown timezone"):
            local_day_bounds(date(2026, 3, 2), "Not/A/Timezone")
