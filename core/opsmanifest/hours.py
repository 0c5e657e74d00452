"""
Store Hours Resolution

Combines a site's recurring weekly hours with the (at most one) exception
rule active on a date to produce the day's effective open/close/closed state.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from .exception_rules import DateRangeDailyRule, ExceptionRule, select_rule
from .models import ResolvedHours
from .settings import WeeklyHours
from .time_utils import weekday_name

logger = logging.getLogger(__name__)


def baseline_hours(weekly_hours: Iterable[WeeklyHours], day: date) -> ResolvedHours:
    """Weekly hours for the date's weekday.

    A weekday with no row resolves to unknown hours (neither open nor closed).
    """
    name = weekday_name(day)
    row = next((h for h in weekly_hours if h.day_of_week == name), None)
    if row is None:
        logger.debug(f"No weekly hours for {name}")
        return ResolvedHours(open_time=None, close_time=None, is_closed=False, source="missing")
    if row.is_closed:
        return ResolvedHours(open_time=None, close_time=None, is_closed=True, source="weekly")
    return ResolvedHours(
        open_time=row.open_time,
        close_time=row.close_time,
        is_closed=False,
        source="weekly",
    )


def apply_exception(baseline: ResolvedHours, rule: Optional[ExceptionRule], day: date) -> ResolvedHours:
    """Apply an exception rule on top of baseline hours.

    Args:
        baseline: Weekly hours for the date
        rule: Rule occurring on the date, or None
        day: Target date (selects the date_range_daily sub-schedule)

    Returns:
        Effective hours for the date
    """
    if rule is None:
        return baseline

    if isinstance(rule, DateRangeDailyRule):
        sub = rule.sub_schedule_for(day)
        open_time, close_time, is_closed = sub.open_time, sub.close_time, sub.is_closed
    else:
        open_time, close_time, is_closed = rule.open_time, rule.close_time, rule.is_closed

    if open_time is None and close_time is None and is_closed is None:
        # Nothing to override; the baseline stands
        logger.debug(f"Exception {rule.name!r} sets no hours on {day}, keeping baseline")
        return baseline

    if is_closed:
        return ResolvedHours(
            open_time=None,
            close_time=None,
            is_closed=True,
            source="exception",
            rule_name=rule.name,
        )

    # Unset fields fall back to the baseline individually
    return ResolvedHours(
        open_time=open_time if open_time is not None else baseline.open_time,
        close_time=close_time if close_time is not None else baseline.close_time,
        is_closed=False,
        source="exception",
        rule_name=rule.name,
    )


def resolve_hours(
    weekly_hours: Iterable[WeeklyHours],
    rules: Iterable[ExceptionRule],
    day: date,
) -> ResolvedHours:
    """Effective hours for a date: weekly baseline plus the first matching exception."""
    weekly_hours = list(weekly_hours)
    baseline = baseline_hours(weekly_hours, day)
    rule = select_rule(rules, day)
    resolved = apply_exception(baseline, rule, day)

    if rule is not None:
        logger.info(
            f"{day}: exception {rule.name!r} ({rule.rule_type}) -> "
            f"{'closed' if resolved.is_closed else f'{resolved.open_time}-{resolved.close_time}'}"
        )
    return resolved
