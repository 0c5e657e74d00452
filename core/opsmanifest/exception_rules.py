"""
Store Hours Exception Rules

One dataclass per rule type. Every rule knows which dates it occurs on;
the hours resolver decides what an occurring rule does to the day.

Rule types:
- single_date: one specific date
- fixed_yearly: same month/day every year
- nth_weekday: nth (or last, nth=-1) weekday of a month
- weekly_days: listed weekdays every week
- date_range_daily: every day in [effective_from_date, effective_to_date],
  with separate start-day, middle-days and end-day hours
- interval: every N days or weeks from a start date
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional

from .exceptions import RuleError
from .settings import _convert_keys
from .time_utils import WEEKDAY_NAMES, normalize_clock, weekday_name

logger = logging.getLogger(__name__)


def _to_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as e:
        raise RuleError(f"Invalid date: {value!r}") from e


def _check_clock(value, label: str) -> Optional[str]:
    try:
        return normalize_clock(value)
    except ValueError as e:
        raise RuleError(f"Invalid {label}: {value!r}") from e


@dataclass(frozen=True)
class SubSchedule:
    """Hours for one part of a date_range_daily rule. Unset fields fall back to the baseline."""

    open_time: Optional[str] = None
    close_time: Optional[str] = None
    is_closed: Optional[bool] = None

    @property
    def is_empty(self) -> bool:
        return self.open_time is None and self.close_time is None and self.is_closed is None


@dataclass(frozen=True)
class ExceptionRule:
    """Fields shared by every rule type."""

    rule_id: str
    name: str
    effective_from_date: Optional[date] = None
    effective_to_date: Optional[date] = None
    is_closed: Optional[bool] = None
    open_time: Optional[str] = None
    close_time: Optional[str] = None

    rule_type = "base"

    def in_effect(self, day: date) -> bool:
        """True when the day falls inside the rule's effective window."""
        if self.effective_from_date and day < self.effective_from_date:
            return False
        if self.effective_to_date and day > self.effective_to_date:
            return False
        return True

    def occurs_on(self, day: date) -> bool:
        return self.in_effect(day) and self._matches(day)

    def _matches(self, day: date) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class SingleDateRule(ExceptionRule):
    on_date: Optional[date] = None

    rule_type = "single_date"

    def _matches(self, day: date) -> bool:
        return day == (self.on_date or self.effective_from_date)


@dataclass(frozen=True)
class FixedYearlyRule(ExceptionRule):
    month: int = 1
    day: int = 1

    rule_type = "fixed_yearly"

    def _matches(self, day: date) -> bool:
        return day.month == self.month and day.day == self.day


@dataclass(frozen=True)
class NthWeekdayRule(ExceptionRule):
    weekday: str = "monday"
    nth: int = 1  # 1-4, or -1 for the last occurrence
    month: Optional[int] = None  # None means every month

    rule_type = "nth_weekday"

    def _matches(self, day: date) -> bool:
        if self.month is not None and day.month != self.month:
            return False
        if weekday_name(day) != self.weekday:
            return False
        if self.nth == -1:
            days_in_month = calendar.monthrange(day.year, day.month)[1]
            return day.day + 7 > days_in_month
        return (day.day - 1) // 7 + 1 == self.nth


@dataclass(frozen=True)
class WeeklyDaysRule(ExceptionRule):
    days: tuple = ()

    rule_type = "weekly_days"

    def _matches(self, day: date) -> bool:
        return weekday_name(day) in self.days


@dataclass(frozen=True)
class DateRangeDailyRule(ExceptionRule):
    start_day: SubSchedule = field(default_factory=SubSchedule)
    middle_days: SubSchedule = field(default_factory=SubSchedule)
    end_day: SubSchedule = field(default_factory=SubSchedule)

    rule_type = "date_range_daily"

    def _matches(self, day: date) -> bool:
        # The effective window is the range itself
        return self.effective_from_date is not None and self.effective_to_date is not None

    def sub_schedule_for(self, day: date) -> SubSchedule:
        """Start-day hours on the first date, end-day hours on the last, middle-days otherwise."""
        if day == self.effective_from_date:
            return self.start_day
        if day == self.effective_to_date:
            return self.end_day
        return self.middle_days


@dataclass(frozen=True)
class IntervalRule(ExceptionRule):
    interval: int = 1
    unit: str = "weeks"  # "days" or "weeks"
    start_date: Optional[date] = None

    rule_type = "interval"

    def _matches(self, day: date) -> bool:
        start = self.start_date or self.effective_from_date
        if start is None or day < start:
            return False
        period = timedelta(weeks=self.interval) if self.unit == "weeks" else timedelta(days=self.interval)
        return (day - start).days % period.days == 0


RULE_TYPES = {
    cls.rule_type: cls
    for cls in (
        SingleDateRule,
        FixedYearlyRule,
        NthWeekdayRule,
        WeeklyDaysRule,
        DateRangeDailyRule,
        IntervalRule,
    )
}


def _sub_schedule(data: dict, prefix: str, label: str) -> SubSchedule:
    """Sub-schedule from a nested mapping or flat prefixed keys (start_day_open, ...)."""
    nested = _convert_keys(data.get(prefix) or {})
    flat = {key[len(prefix) + 1:]: value for key, value in data.items() if key.startswith(prefix + "_")}
    converted = {**flat, **nested}
    closed = converted.get("is_closed", converted.get("closed"))
    return SubSchedule(
        open_time=_check_clock(converted.get("open_time", converted.get("open")), f"{label} open time"),
        close_time=_check_clock(converted.get("close_time", converted.get("close")), f"{label} close time"),
        is_closed=None if closed is None else bool(closed),
    )


def rule_from_dict(data: dict) -> ExceptionRule:
    """Build the rule variant named by the mapping's rule_type.

    Args:
        data: Rule mapping (camelCase or snake_case keys)

    Returns:
        The matching ExceptionRule subclass instance

    Raises:
        RuleError: If the rule type is unknown or its parameters are invalid
    """
    converted = _convert_keys(data)
    rule_type = converted.get("rule_type")
    cls = RULE_TYPES.get(rule_type)
    if cls is None:
        raise RuleError(f"Unknown rule type: {rule_type!r}")

    closed = converted.get("is_closed")
    common = {
        "rule_id": str(converted.get("rule_id") or converted.get("id") or converted.get("name", "")),
        "name": converted.get("name", ""),
        "effective_from_date": _to_date(converted.get("effective_from_date")),
        "effective_to_date": _to_date(converted.get("effective_to_date")),
        "is_closed": None if closed is None else bool(closed),
        "open_time": _check_clock(converted.get("open_time"), "open time"),
        "close_time": _check_clock(converted.get("close_time"), "close time"),
    }

    if cls is SingleDateRule:
        single = _to_date(converted.get("date")) or common["effective_from_date"]
        if single is None:
            raise RuleError(f"Rule {common['name']!r}: single_date needs a date")
        return SingleDateRule(on_date=single, **common)

    if cls is FixedYearlyRule:
        month, day = converted.get("month"), converted.get("day")
        try:
            date(2000, int(month), int(day))  # leap year, so Feb 29 is accepted
        except (TypeError, ValueError) as e:
            raise RuleError(f"Rule {common['name']!r}: invalid month/day {month}/{day}") from e
        return FixedYearlyRule(month=int(month), day=int(day), **common)

    if cls is NthWeekdayRule:
        weekday = str(converted.get("weekday", "")).lower()
        nth = int(converted.get("nth", 1))
        month = converted.get("month")
        if weekday not in WEEKDAY_NAMES:
            raise RuleError(f"Rule {common['name']!r}: unknown weekday {weekday!r}")
        if nth not in (-1, 1, 2, 3, 4):
            raise RuleError(f"Rule {common['name']!r}: nth must be 1-4 or -1, got {nth}")
        if month is not None and not 1 <= int(month) <= 12:
            raise RuleError(f"Rule {common['name']!r}: invalid month {month}")
        return NthWeekdayRule(
            weekday=weekday,
            nth=nth,
            month=None if month is None else int(month),
            **common,
        )

    if cls is WeeklyDaysRule:
        days = tuple(str(d).lower() for d in converted.get("days") or ())
        unknown = [d for d in days if d not in WEEKDAY_NAMES]
        if not days or unknown:
            raise RuleError(f"Rule {common['name']!r}: invalid days {list(days)}")
        return WeeklyDaysRule(days=days, **common)

    if cls is DateRangeDailyRule:
        common["effective_from_date"] = common["effective_from_date"] or _to_date(converted.get("start_date"))
        common["effective_to_date"] = common["effective_to_date"] or _to_date(converted.get("end_date"))
        if common["effective_from_date"] is None or common["effective_to_date"] is None:
            raise RuleError(f"Rule {common['name']!r}: date_range_daily needs a start and end date")
        if common["effective_to_date"] < common["effective_from_date"]:
            raise RuleError(f"Rule {common['name']!r}: range ends before it starts")
        schedules = {
            "start_day": _sub_schedule(converted, "start_day", "start-day"),
            "middle_days": _sub_schedule(converted, "middle_days", "middle-days"),
            "end_day": _sub_schedule(converted, "end_day", "end-day"),
        }
        if all(s.is_empty for s in schedules.values()):
            raise RuleError(f"Rule {common['name']!r}: date_range_daily sets no start, middle or end day hours")
        return DateRangeDailyRule(**schedules, **common)

    # interval
    unit = converted.get("unit", "weeks")
    interval = int(converted.get("interval", 1))
    if unit not in ("days", "weeks") or interval < 1:
        raise RuleError(f"Rule {common['name']!r}: invalid interval {interval} {unit}")
    start = _to_date(converted.get("start_date")) or common["effective_from_date"]
    if start is None:
        raise RuleError(f"Rule {common['name']!r}: interval needs a start date")
    return IntervalRule(interval=interval, unit=unit, start_date=start, **common)


def select_rule(rules: Iterable[ExceptionRule], day: date) -> Optional[ExceptionRule]:
    """Return the first rule that occurs on the day, in the order given.

    At most one exception applies per site and date. When several match,
    the first one wins and the others are reported in the log.
    """
    matching = [rule for rule in rules if rule.occurs_on(day)]
    if not matching:
        return None
    if len(matching) > 1:
        ignored = ", ".join(repr(rule.name) for rule in matching[1:])
        logger.warning(f"{len(matching)} exception rules match {day}; using {matching[0].name!r}, ignoring {ignored}")
    return matching[0]
