"""
Tests for mentorflow/utils/datetime_utils.py

Timestamps are naive UTC throughout; these tests pin that convention and the
day arithmetic used by the review queue and dashboards.
"""

import pytest
from datetime import datetime, timedelta, timezone
from mentorflow.utils.datetime_utils import (
    get_now,
    to_naive_utc,
    days_between,
    add_days,
)


class TestGetNow:
    """Tests for get_now function."""

    def test_returns_naive_datetime(self):
        """Stored timestamps carry no tzinfo."""
        assert get_now().tzinfo is None

    def test_is_utc(self):
        """Naive result matches the current UTC wall clock."""
        expected = datetime.now(timezone.utc).replace(tzinfo=None)
        assert abs((get_now() - expected).total_seconds()) < 5


class TestToNaiveUtc:
    """Tests for to_naive_utc function."""

    def test_naive_input_unchanged(self):
        dt = datetime(2026, 3, 1, 12, 0)
        assert to_naive_utc(dt) == dt

    def test_aware_input_converted(self):
        """An aware datetime is shifted to UTC, then stripped."""
        plus_two = timezone(timedelta(hours=2))
        dt = datetime(2026, 3, 1, 12, 0, tzinfo=plus_two)
        assert to_naive_utc(dt) == datetime(2026, 3, 1, 10, 0)


class TestDaysBetween:
    """Tests for days_between function."""

    def test_whole_days_only(self):
        start = datetime(2026, 3, 1, 9, 0)
        assert days_between(start, start + timedelta(days=2, hours=23)) == 2

    def test_never_negative(self):
        start = datetime(2026, 3, 5)
        assert days_between(start, datetime(2026, 3, 1)) == 0

    def test_none_start(self):
        assert days_between(None) == 0

    def test_defaults_to_now(self):
        start = get_now() - timedelta(days=4, hours=1)
        assert days_between(start) == 4

    def test_mixed_aware_and_naive(self):
        start = datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)
        assert days_between(start, datetime(2026, 3, 4, 0, 0)) == 3


class TestAddDays:
    """Tests for add_days function."""

    @pytest.mark.parametrize("days", [0, 1, 14])
    def test_adds_days(self, days):
        dt = datetime(2026, 1, 31)
        assert add_days(dt, days) == dt + timedelta(days=days)
