"""Tests for crontab schedule parsing and due computation."""

import sys
from datetime import UTC, datetime

import pytest

sys.path.insert(0, "src")

from ghostwatch.errors import ConfigurationError
from ghostwatch.rules.schedule import is_due, next_fire_after, parse_schedule, validate_schedule


class TestParseSchedule:
    """Tests for parse_schedule / validate_schedule."""

    def test_valid_expression(self):
        trigger = parse_schedule("*/15 * * * *")
        assert trigger is not None

    @pytest.mark.parametrize("expression", [None, "", "   "])
    def test_empty_schedule_rejected(self, expression):
        with pytest.raises(ConfigurationError) as exc:
            validate_schedule(expression)
        assert exc.value.field == "schedule"

    @pytest.mark.parametrize("expression", ["not a cron", "61 * * * *", "* * *"])
    def test_malformed_schedule_rejected(self, expression):
        with pytest.raises(ConfigurationError):
            validate_schedule(expression)


class TestDueComputation:
    """Tests for next_fire_after and is_due."""

    def test_next_fire_is_strictly_after(self):
        anchor = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        assert next_fire_after("0 * * * *", anchor) == datetime(2026, 1, 1, 13, 0, tzinfo=UTC)

    def test_due_when_fire_time_passed(self):
        anchor = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        assert is_due("0 * * * *", anchor, datetime(2026, 1, 1, 13, 0, tzinfo=UTC)) is True
        assert is_due("0 * * * *", anchor, datetime(2026, 1, 1, 12, 59, tzinfo=UTC)) is False

    def test_many_missed_periods_still_due_once(self):
        anchor = datetime(2026, 1, 1, 0, 0, tzinfo=UTC)
        now = datetime(2026, 1, 3, 0, 0, tzinfo=UTC)
        assert is_due("*/5 * * * *", anchor, now) is True
        # After running at `now`, nothing is due until the next period
        assert is_due("*/5 * * * *", now, now) is False
