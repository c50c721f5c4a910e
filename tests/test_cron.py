"""Tests for crontab parsing and next-occurrence computation."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from schoolbell.errors import CronExpressionError
from schoolbell.scheduler.cron import (
    _translate_day_of_week,
    build_cron_expression,
    next_occurrence,
    parse_cron,
)

TZ = "Europe/Copenhagen"
CPH = ZoneInfo(TZ)


class TestTranslateDayOfWeek:
    def test_wildcard(self):
        assert _translate_day_of_week("*") == "*"

    def test_sunday_is_zero_and_seven(self):
        assert _translate_day_of_week("0") == "sun"
        assert _translate_day_of_week("7") == "sun"

    def test_wednesday(self):
        assert _translate_day_of_week("3") == "wed"

    def test_range(self):
        assert _translate_day_of_week("1-5") == "mon,tue,wed,thu,fri"

    def test_list(self):
        assert _translate_day_of_week("0,6") == "sun,sat"

    def test_step(self):
        assert _translate_day_of_week("*/2") == "sun,tue,thu,sat"

    def test_names_pass_through(self):
        assert _translate_day_of_week("MON-FRI") == "mon-fri"

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            _translate_day_of_week("8")


class TestParseCron:
    def test_rejects_wrong_field_count(self):
        with pytest.raises(CronExpressionError):
            parse_cron("0 16 * *", TZ)

    def test_rejects_garbage(self):
        with pytest.raises(CronExpressionError):
            parse_cron("61 25 * * *", TZ)

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_cron("not a cron", TZ)


class TestNextOccurrence:
    def test_weekly_wednesday(self):
        # 2025-06-02 is a Monday
        after = datetime(2025, 6, 2, 12, 0, tzinfo=CPH)
        nxt = next_occurrence("30 7 * * 3", after, TZ)
        assert nxt == datetime(2025, 6, 4, 7, 30, tzinfo=CPH)

    def test_sunday_afternoon(self):
        after = datetime(2025, 6, 2, 12, 0, tzinfo=CPH)
        nxt = next_occurrence("0 16 * * 0", after, TZ)
        assert nxt == datetime(2025, 6, 8, 16, 0, tzinfo=CPH)

    def test_strictly_after(self):
        at = datetime(2025, 6, 4, 7, 30, tzinfo=CPH)
        nxt = next_occurrence("30 7 * * 3", at, TZ)
        assert nxt == datetime(2025, 6, 11, 7, 30, tzinfo=CPH)

    def test_daily(self):
        after = datetime(2025, 6, 4, 7, 31, tzinfo=CPH)
        nxt = next_occurrence("45 6 * * *", after, TZ)
        assert nxt == datetime(2025, 6, 5, 6, 45, tzinfo=CPH)


class TestBuildCronExpression:
    def test_daily(self):
        assert build_cron_expression("daily", 6, 45) == "45 6 * * *"

    def test_weekly(self):
        assert build_cron_expression("weekly", 7, 30, day_of_week=3) == "30 7 * * 3"

    def test_weekly_bad_day(self):
        with pytest.raises(ValueError):
            build_cron_expression("weekly", 7, 30, day_of_week=7)

    def test_unsupported_recurrence(self):
        with pytest.raises(ValueError, match="Unsupported"):
            build_cron_expression("monthly", 7, 30)
