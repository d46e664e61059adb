"""Tests for cron next-run computation, descriptions and active windows."""
from __future__ import annotations

from datetime import datetime

import pytest

from alertpilot.models import ActiveWindow
from alertpilot.scheduling.cron import CronSchedule, cron_weekday, describe, next_run
from alertpilot.scheduling.window import in_active_window


# ---------------------------------------------------------------------------
# next_run
# ---------------------------------------------------------------------------

class TestNextRun:
    def test_daily_later_today(self) -> None:
        assert next_run("0 9 * * *", datetime(2024, 1, 1, 8, 0)) == datetime(2024, 1, 1, 9, 0)

    def test_daily_rolls_to_tomorrow(self) -> None:
        assert next_run("0 9 * * *", datetime(2024, 1, 1, 10, 0)) == datetime(2024, 1, 2, 9, 0)

    def test_exact_match_is_not_returned(self) -> None:
        assert next_run("0 9 * * *", datetime(2024, 1, 1, 9, 0)) == datetime(2024, 1, 2, 9, 0)

    def test_weekly_monday(self) -> None:
        # 2024-01-01 is a Monday
        assert next_run("0 9 * * 1", datetime(2024, 1, 1, 10, 0)) == datetime(2024, 1, 8, 9, 0)
        assert next_run("0 9 * * 1", datetime(2024, 1, 3, 10, 0)) == datetime(2024, 1, 8, 9, 0)

    def test_monthly_first(self) -> None:
        assert next_run("0 9 1 * *", datetime(2024, 1, 15, 0, 0)) == datetime(2024, 2, 1, 9, 0)

    def test_quarterly(self) -> None:
        expr = "0 9 1 1,4,7,10 *"
        assert next_run(expr, datetime(2024, 2, 10, 0, 0)) == datetime(2024, 4, 1, 9, 0)
        assert next_run(expr, datetime(2024, 10, 1, 9, 0)) == datetime(2025, 1, 1, 9, 0)

    def test_step_minutes(self) -> None:
        assert next_run("*/15 * * * *", datetime(2024, 1, 1, 10, 7)) == datetime(2024, 1, 1, 10, 15)
        assert next_run("*/15 * * * *", datetime(2024, 1, 1, 10, 50)) == datetime(2024, 1, 1, 11, 0)

    def test_seconds_are_truncated(self) -> None:
        result = next_run("* * * * *", datetime(2024, 1, 1, 10, 0, 42, 123))
        assert result == datetime(2024, 1, 1, 10, 1)

    def test_sunday_as_seven(self) -> None:
        # 2024-01-07 is a Sunday
        assert next_run("0 0 * * 7", datetime(2024, 1, 1, 0, 0)) == datetime(2024, 1, 7, 0, 0)
        assert next_run("0 0 * * 0", datetime(2024, 1, 1, 0, 0)) == datetime(2024, 1, 7, 0, 0)

    def test_day_names_and_ranges(self) -> None:
        # Friday 2024-01-05 18:00 -> next weekday morning is Monday
        assert next_run("30 8 * * MON-FRI", datetime(2024, 1, 5, 18, 0)) == datetime(2024, 1, 8, 8, 30)

    def test_dom_or_dow_when_both_restricted(self) -> None:
        # the 15th OR any Monday; Monday 2024-01-08 comes first
        assert next_run("0 9 15 * 1", datetime(2024, 1, 2, 0, 0)) == datetime(2024, 1, 8, 9, 0)

    def test_step_star_day_field_is_unrestricted(self) -> None:
        # odd days AND Monday: Jan 8 is even, Jan 15 is the first odd Monday
        assert next_run("0 9 */2 * 1", datetime(2024, 1, 2, 0, 0)) == datetime(2024, 1, 15, 9, 0)
        assert not CronSchedule.parse("0 9 */2 * 1").day_restricted

    def test_leap_day(self) -> None:
        assert next_run("0 0 29 2 *", datetime(2024, 3, 1, 0, 0)) == datetime(2028, 2, 29, 0, 0)

    @pytest.mark.parametrize("expr", ["not a cron", "0 9 * *", "61 9 * * *", "0 9 * * 1/0", ""])
    def test_unparseable_falls_back_to_daily_nine(self, expr: str) -> None:
        assert next_run(expr, datetime(2024, 1, 1, 10, 0)) == datetime(2024, 1, 2, 9, 0)
        assert next_run(expr, datetime(2024, 1, 1, 8, 0)) == datetime(2024, 1, 1, 9, 0)

    def test_never_firing_falls_back_to_daily_nine(self) -> None:
        assert next_run("0 9 30 2 *", datetime(2024, 1, 1, 10, 0)) == datetime(2024, 1, 2, 9, 0)

    @pytest.mark.parametrize("expr", [
        "0 9 * * *", "0 9 * * 1", "0 9 1 * *", "0 9 1 1,4,7,10 *", "*/5 * * * *", "garbage",
    ])
    def test_always_strictly_future(self, expr: str) -> None:
        now = datetime(2024, 12, 31, 23, 59, 30)
        assert next_run(expr, now) > now

    def test_deterministic(self) -> None:
        now = datetime(2024, 5, 5, 5, 5)
        assert next_run("7 */3 * * *", now) == next_run("7 */3 * * *", now)


class TestCronSchedule:
    def test_parse_step_from_value(self) -> None:
        sched = CronSchedule.parse("5/20 * * * *")
        assert sched.minutes == frozenset({5, 25, 45})

    def test_parse_range_with_step(self) -> None:
        sched = CronSchedule.parse("0 8-18/5 * * *")
        assert sched.hours == frozenset({8, 13, 18})

    def test_parse_month_names(self) -> None:
        sched = CronSchedule.parse("0 0 1 JAN,jul *")
        assert sched.months == frozenset({1, 7})

    def test_rejects_wrong_field_count(self) -> None:
        with pytest.raises(ValueError):
            CronSchedule.parse("0 9 * * * *")

    def test_cron_weekday_sunday_is_zero(self) -> None:
        assert cron_weekday(datetime(2024, 1, 7)) == 0
        assert cron_weekday(datetime(2024, 1, 1)) == 1


class TestDescribe:
    def test_presets(self) -> None:
        assert describe("0 9 * * *") == "Daily at 9:00 AM"
        assert describe("0 9 * * 1") == "Weekly on Monday at 9:00 AM"
        assert describe("0 9 1 * *") == "Monthly on the 1st at 9:00 AM"
        assert describe("0 9 1 1,4,7,10 *").startswith("Quarterly")

    def test_whitespace_insensitive(self) -> None:
        assert describe("  0  9 * *   * ") == "Daily at 9:00 AM"

    def test_custom(self) -> None:
        assert describe("*/5 * * * *") == "Custom schedule"


# ---------------------------------------------------------------------------
# Active windows
# ---------------------------------------------------------------------------

class TestActiveWindow:
    def test_no_window_is_always_active(self) -> None:
        assert in_active_window(None, datetime(2024, 1, 1, 3, 0))

    def test_disabled_window_is_always_active(self) -> None:
        window = ActiveWindow(enabled=False, start_time="09:00", end_time="10:00", days_of_week=[])
        assert in_active_window(window, datetime(2024, 1, 1, 3, 0))

    def test_business_hours(self) -> None:
        window = ActiveWindow(start_time="09:00", end_time="17:00", days_of_week=[1, 2, 3, 4, 5])
        assert in_active_window(window, datetime(2024, 1, 1, 9, 0))
        assert in_active_window(window, datetime(2024, 1, 1, 17, 0))
        assert not in_active_window(window, datetime(2024, 1, 1, 17, 1))
        assert not in_active_window(window, datetime(2024, 1, 1, 8, 59))

    def test_day_not_listed(self) -> None:
        window = ActiveWindow(start_time="00:00", end_time="23:59", days_of_week=[1, 2, 3, 4, 5])
        # Sunday
        assert not in_active_window(window, datetime(2024, 1, 7, 12, 0))

    def test_overnight_window(self) -> None:
        # Monday night shift 22:00 -> 06:00
        window = ActiveWindow(start_time="22:00", end_time="06:00", days_of_week=[1])
        assert in_active_window(window, datetime(2024, 1, 1, 23, 0))
        assert in_active_window(window, datetime(2024, 1, 2, 5, 59))
        assert not in_active_window(window, datetime(2024, 1, 2, 12, 0))
        assert not in_active_window(window, datetime(2024, 1, 1, 5, 0))
        assert not in_active_window(window, datetime(2024, 1, 2, 23, 0))

    def test_single_minute_window(self) -> None:
        window = ActiveWindow(start_time="12:00", end_time="12:00")
        assert in_active_window(window, datetime(2024, 1, 1, 12, 0, 59))
        assert not in_active_window(window, datetime(2024, 1, 1, 12, 1))
