"""Tests for exception rule parsing, occurrence matching and selection."""

import logging
from datetime import date

import pytest

from core.opsmanifest.exception_rules import (
    DateRangeDailyRule,
    FixedYearlyRule,
    IntervalRule,
    NthWeekdayRule,
    SingleDateRule,
    WeeklyDaysRule,
    rule_from_dict,
    select_rule,
)
from core.opsmanifest.exceptions import RuleError


class TestRuleFromDict:
    """Building rule variants from config mappings."""

    def test_single_date(self):
        rule = rule_from_dict({"name": "Grand Opening", "rule_type": "single_date", "date": "2026-05-01"})
        assert isinstance(rule, SingleDateRule)
        assert rule.on_date == date(2026, 5, 1)

    def test_camel_case_keys(self):
        rule = rule_from_dict({
            "name": "Late Night",
            "ruleType": "weekly_days",
            "days": ["Friday", "saturday"],
            "closeTime": "23:30",
        })
        assert isinstance(rule, WeeklyDaysRule)
        assert rule.days == ("friday", "saturday")
        assert rule.close_time == "23:30"

    def test_closed_flag_is_tristate(self):
        open_rule = rule_from_dict({"name": "x", "rule_type": "fixed_yearly", "month": 7, "day": 4})
        closed_rule = rule_from_dict({"name": "y", "rule_type": "fixed_yearly", "month": 7, "day": 4, "is_closed": True})
        assert open_rule.is_closed is None
        assert closed_rule.is_closed is True

    def test_date_range_accepts_start_and_end_date(self):
        rule = rule_from_dict({
            "name": "Remodel",
            "rule_type": "date_range_daily",
            "start_date": "2026-03-10",
            "end_date": "2026-03-14",
            "middle_days": {"open": "06:00"},
        })
        assert isinstance(rule, DateRangeDailyRule)
        assert rule.effective_from_date == date(2026, 3, 10)
        assert rule.middle_days.open_time == "06:00"
        assert rule.middle_days.close_time is None
        assert rule.end_day.is_empty

    def test_date_range_accepts_flat_sub_schedule_keys(self):
        rule = rule_from_dict({
            "name": "Inventory",
            "ruleType": "date_range_daily",
            "effectiveFromDate": "2026-03-10",
            "effectiveToDate": "2026-03-14",
            "startDayOpen": "10:00",
            "startDayClose": "20:00",
            "middle_days_closed": True,
            "end_day_close": "18:00",
        })
        assert (rule.start_day.open_time, rule.start_day.close_time) == ("10:00", "20:00")
        assert rule.middle_days.is_closed is True
        assert rule.end_day.close_time == "18:00"
        assert rule.end_day.open_time is None

    @pytest.mark.parametrize(
        "data",
        [
            {"name": "a", "rule_type": "lunar"},
            {"name": "b", "rule_type": "single_date"},
            {"name": "c", "rule_type": "fixed_yearly", "month": 2, "day": 30},
            {"name": "d", "rule_type": "nth_weekday", "weekday": "monday", "nth": 5},
            {"name": "e", "rule_type": "nth_weekday", "weekday": "funday", "nth": 1},
            {"name": "f", "rule_type": "weekly_days", "days": []},
            {"name": "g", "rule_type": "date_range_daily", "effective_from_date": "2026-03-14",
             "effective_to_date": "2026-03-10"},
            {"name": "g2", "rule_type": "date_range_daily", "effective_from_date": "2026-03-10",
             "effective_to_date": "2026-03-14"},
            {"name": "h", "rule_type": "interval", "interval": 2, "unit": "months", "start_date": "2026-01-01"},
            {"name": "i", "rule_type": "interval", "interval": 2, "unit": "weeks"},
            {"name": "j", "rule_type": "single_date", "date": "2026-05-01", "open_time": "25:00"},
        ],
    )
    def test_invalid_rules(self, data):
        with pytest.raises(RuleError):
            rule_from_dict(data)


class TestOccurrence:
    """Which dates each rule type occurs on."""

    def test_fixed_yearly(self):
        rule = FixedYearlyRule(rule_id="xmas", name="Christmas", month=12, day=25)
        assert rule.occurs_on(date(2026, 12, 25))
        assert rule.occurs_on(date(2031, 12, 25))
        assert not rule.occurs_on(date(2026, 12, 24))

    def test_nth_weekday(self):
        # Thanksgiving: 4th Thursday of November
        rule = NthWeekdayRule(rule_id="tg", name="Thanksgiving", weekday="thursday", nth=4, month=11)
        assert rule.occurs_on(date(2026, 11, 26))
        assert not rule.occurs_on(date(2026, 11, 19))
        assert not rule.occurs_on(date(2026, 10, 22))

    def test_last_weekday(self):
        # Memorial Day: last Monday of May
        rule = NthWeekdayRule(rule_id="md", name="Memorial Day", weekday="monday", nth=-1, month=5)
        assert rule.occurs_on(date(2026, 5, 25))
        assert not rule.occurs_on(date(2026, 5, 18))

    def test_nth_weekday_every_month(self):
        rule = NthWeekdayRule(rule_id="inv", name="Inventory", weekday="sunday", nth=1)
        assert rule.occurs_on(date(2026, 3, 1))
        assert rule.occurs_on(date(2026, 2, 1))
        assert not rule.occurs_on(date(2026, 3, 8))

    def test_weekly_days(self):
        rule = WeeklyDaysRule(rule_id="wk", name="Weekend", days=("saturday", "sunday"))
        assert rule.occurs_on(date(2026, 3, 14))
        assert not rule.occurs_on(date(2026, 3, 13))

    def test_weekly_days_honours_effective_window(self):
        rule = WeeklyDaysRule(
            rule_id="summer",
            name="Summer Fridays",
            days=("friday",),
            effective_from_date=date(2026, 6, 1),
            effective_to_date=date(2026, 8, 31),
        )
        assert rule.occurs_on(date(2026, 6, 5))
        assert not rule.occurs_on(date(2026, 5, 29))
        assert not rule.occurs_on(date(2026, 9, 4))

    def test_interval_weeks(self):
        rule = IntervalRule(rule_id="bi", name="Biweekly", interval=2, unit="weeks", start_date=date(2026, 3, 2))
        assert rule.occurs_on(date(2026, 3, 2))
        assert rule.occurs_on(date(2026, 3, 16))
        assert not rule.occurs_on(date(2026, 3, 9))
        assert not rule.occurs_on(date(2026, 2, 16))

    def test_interval_days(self):
        rule = IntervalRule(rule_id="d3", name="Every 3 days", interval=3, unit="days", start_date=date(2026, 3, 1))
        assert rule.occurs_on(date(2026, 3, 4))
        assert not rule.occurs_on(date(2026, 3, 5))

    def test_date_range(self):
        rule = DateRangeDailyRule(
            rule_id="r",
            name="Remodel",
            effective_from_date=date(2026, 3, 10),
            effective_to_date=date(2026, 3, 14),
        )
        assert not rule.occurs_on(date(2026, 3, 9))
        assert all(rule.occurs_on(date(2026, 3, d)) for d in range(10, 15))
        assert not rule.occurs_on(date(2026, 3, 15))


class TestSelectRule:
    """At most one rule applies per date."""

    def test_no_match(self):
        rule = FixedYearlyRule(rule_id="xmas", name="Christmas", month=12, day=25)
        assert select_rule([rule], date(2026, 3, 9)) is None

    def test_first_encountered_wins(self, caplog):
        first = SingleDateRule(rule_id="a", name="Early Close", on_date=date(2026, 12, 24), close_time="17:00")
        second = FixedYearlyRule(rule_id="b", name="Christmas Eve", month=12, day=24, is_closed=True)

        with caplog.at_level(logging.WARNING):
            chosen = select_rule([first, second], date(2026, 12, 24))

        assert chosen is first
        assert "Christmas Eve" in caplog.text

    def test_order_decides(self):
        first = SingleDateRule(rule_id="a", name="Early Close", on_date=date(2026, 12, 24))
        second = FixedYearlyRule(rule_id="b", name="Christmas Eve", month=12, day=24)
        assert select_rule([second, first], date(2026, 12, 24)) is second
