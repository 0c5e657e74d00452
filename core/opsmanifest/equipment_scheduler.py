"""
Equipment Scheduler

Turns an equipment entry plus the day's resolved hours (and sun times, for
exterior lighting) into on/off clock times.

Offsets are tri-state: None on the entry means "use the category default",
while an explicit 0 is a real zero-minute offset.
"""

import logging
from typing import Optional

from .exceptions import ScheduleError
from .models import EquipmentSchedule, ResolvedHours, SunTimes
from .settings import EquipmentEntry, SiteSettings
from .time_utils import minutes_to_clock, normalize_clock

logger = logging.getLogger(__name__)

SCHEDULED_CATEGORIES = ("store_hours", "employee_hours", "customer_hours", "exterior_lux")
UNSCHEDULED_CATEGORIES = ("always_on", "hvac_zone")

# Lux sensitivity levels: lights come on below on_below_lux and go off above off_above_lux
LUX_TIERS = {
    1: {"name": "Very Late", "on_below_lux": 50, "off_above_lux": 100},
    2: {"name": "Late", "on_below_lux": 150, "off_above_lux": 300},
    3: {"name": "Default", "on_below_lux": 400, "off_above_lux": 800},
    4: {"name": "Early", "on_below_lux": 1000, "off_above_lux": 1500},
    5: {"name": "Very Early", "on_below_lux": 2000, "off_above_lux": 3000},
}


def lux_tier(level: int) -> dict:
    """Tier metadata for a sensitivity level, clamped to 1..5."""
    level = min(max(int(level), 1), 5)
    return {"level": level, **LUX_TIERS[level]}


def _default_offsets(category: str, site: SiteSettings) -> tuple[int, int]:
    """Category default (on, off) offsets in minutes."""
    if category == "store_hours":
        return 0, site.post_close_minutes
    if category == "customer_hours":
        return -site.customer_pre_open_minutes, site.post_close_minutes
    # employee_hours and exterior_lux
    return -site.employee_pre_open_minutes, site.post_close_minutes


def _resolve_offset(value: Optional[int], default: int) -> tuple[int, str]:
    if value is None:
        return default, "category_default"
    return int(value), "entry"


def _sun_event(primary: Optional[int], fallback: Optional[int], primary_name: str, fallback_name: str):
    if primary is not None:
        return minutes_to_clock(primary), primary_name
    if fallback is not None:
        return minutes_to_clock(fallback), fallback_name
    return None, None


def schedule_equipment(
    entry: EquipmentEntry,
    hours: ResolvedHours,
    site: SiteSettings,
    sun_times: Optional[SunTimes] = None,
    snapshot: Optional[dict] = None,
) -> Optional[EquipmentSchedule]:
    """Compute the schedule for one equipment entry.

    Args:
        entry: Equipment or lighting entry
        hours: Resolved hours for the date
        site: Site defaults (pre-open, post-close, lux sensitivity)
        sun_times: Sun events for the date, used by exterior_lux
        snapshot: Precomputed {"on_time", "off_time"} for this equipment, if any

    Returns:
        The schedule, or None when the entry gets no entry for the day
        (closed or unknown hours, or a category scheduled elsewhere)

    Raises:
        ScheduleError: If the schedule category is not recognised
    """
    category = entry.schedule_category
    if category in UNSCHEDULED_CATEGORIES:
        return None
    if category not in SCHEDULED_CATEGORIES:
        raise ScheduleError(f"Equipment {entry.id}: unknown schedule category {category!r}")

    if not hours.is_open_day:
        return None

    open_minutes = hours.open_minutes
    close_minutes = hours.close_minutes

    default_on, default_off = _default_offsets(category, site)
    on_offset, on_source = _resolve_offset(entry.on_offset_minutes, default_on)
    off_offset, off_source = _resolve_offset(entry.off_offset_minutes, default_off)

    common = {
        "equipment_id": entry.id,
        "name": entry.name,
        "schedule_category": category,
        "on_offset_minutes": on_offset,
        "off_offset_minutes": off_offset,
        "offset_sources": {"on": on_source, "off": off_source},
        "entity_id": entry.entity_id,
        "group": entry.group,
        "zone_type": entry.zone_type,
    }

    if category == "exterior_lux":
        sun = sun_times or SunTimes()
        morning_off, morning_trigger = _sun_event(sun.civil_dawn, sun.sunrise, "civil_dawn", "sunrise")
        evening_on, evening_trigger = _sun_event(sun.civil_dusk, sun.sunset, "civil_dusk", "sunset")
        sensitivity = entry.lux_sensitivity if entry.lux_sensitivity is not None else site.default_lux_sensitivity
        tier = lux_tier(sensitivity)
        if tier["level"] != int(sensitivity):
            logger.warning(f"Equipment {entry.id}: lux sensitivity {sensitivity} out of range, using {tier['level']}")
        morning_on = minutes_to_clock(open_minutes + on_offset)
        evening_off = minutes_to_clock(close_minutes + off_offset)

        if sun_times is None:
            logger.debug(f"Equipment {entry.id}: no sun times, sun-driven transitions left unset")

        return EquipmentSchedule(
            schedule_source=category,
            on_time=morning_on,
            off_time=evening_off,
            morning_on_time=morning_on,
            morning_on_condition="lux_below_threshold",
            morning_off_time=morning_off,
            morning_off_trigger=morning_trigger,
            evening_on_time=evening_on,
            evening_on_trigger=evening_trigger,
            evening_off_time=evening_off,
            lux_sensitivity=tier["level"],
            lux_tier=tier,
            **common,
        )

    if (
        category == "store_hours"
        and snapshot
        and entry.on_offset_minutes is None
        and entry.off_offset_minutes is None
    ):
        return EquipmentSchedule(
            schedule_source="schedule_snapshot",
            on_time=normalize_clock(snapshot.get("on_time")),
            off_time=normalize_clock(snapshot.get("off_time")),
            **common,
        )

    return EquipmentSchedule(
        schedule_source=category,
        on_time=minutes_to_clock(open_minutes + on_offset),
        off_time=minutes_to_clock(close_minutes + off_offset),
        **common,
    )
