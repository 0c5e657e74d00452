"""
Thermostat Directive Engine

Evaluates an ordered list of (predicate, action) rules top-down and stops at
the first match. Guardrails dominate manager overrides, which dominate the
ordinary heat/cool comparison.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .models import ThermostatReading
from .setpoint_resolver import ResolvedSetpoints

logger = logging.getLogger(__name__)


class DirectiveAction(str, Enum):
    """Which branch produced a directive."""

    NO_ZONE = "no_zone"
    FREEZE_GUARDRAIL = "freeze_guardrail"
    OVERHEAT_GUARDRAIL = "overheat_guardrail"
    OVERRIDE_ACTIVE_COOL = "override_active_cool"
    OVERRIDE_ACTIVE_HEAT = "override_active_heat"
    OVERRIDE_EXCEEDED_COOL = "override_exceeded_cool"
    OVERRIDE_EXCEEDED_HEAT = "override_exceeded_heat"
    HEAT = "heat"
    COOL = "cool"
    IN_RANGE = "in_range"
    HOLD_BAND = "hold_band"


@dataclass(frozen=True)
class Directive:
    """One thermostat instruction and the branch that produced it."""

    action: DirectiveAction
    message: str
    target_setpoint: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "message": self.message,
            "target_setpoint": self.target_setpoint,
        }


@dataclass(frozen=True)
class DirectiveContext:
    """Inputs to the rules, with the phase's heat/cool pair already chosen."""

    has_zone: bool
    occupied: bool
    temperature: Optional[float]
    actual_setpoint: Optional[float]
    heat: Optional[float]
    cool: Optional[float]
    guardrail_min: Optional[float]
    guardrail_max: Optional[float]
    offset_up: float
    offset_down: float

    @property
    def override_known(self) -> bool:
        return self.occupied and self.temperature is not None and self.actual_setpoint is not None


def _fmt(value: float) -> str:
    return f"{value:g}°F"


def _no_zone(ctx: DirectiveContext) -> Directive:
    return Directive(DirectiveAction.NO_ZONE, "No zone assigned")


def _freeze(ctx: DirectiveContext) -> Directive:
    return Directive(
        DirectiveAction.FREEZE_GUARDRAIL,
        f"Freeze guardrail: {_fmt(ctx.temperature)} at or below {_fmt(ctx.guardrail_min)}, force heat",
        ctx.guardrail_min,
    )


def _overheat(ctx: DirectiveContext) -> Directive:
    return Directive(
        DirectiveAction.OVERHEAT_GUARDRAIL,
        f"Overheat guardrail: {_fmt(ctx.temperature)} at or above {_fmt(ctx.guardrail_max)}, force cool",
        ctx.guardrail_max,
    )


def _override_active_cool(ctx: DirectiveContext) -> Directive:
    return Directive(
        DirectiveAction.OVERRIDE_ACTIVE_COOL,
        f"Manager override active: setpoint {_fmt(ctx.actual_setpoint)} within "
        f"+{ctx.offset_up:g}° of cool {_fmt(ctx.cool)}, no correction",
        ctx.actual_setpoint,
    )


def _override_active_heat(ctx: DirectiveContext) -> Directive:
    return Directive(
        DirectiveAction.OVERRIDE_ACTIVE_HEAT,
        f"Manager override active: setpoint {_fmt(ctx.actual_setpoint)} within "
        f"-{ctx.offset_down:g}° of heat {_fmt(ctx.heat)}, no correction",
        ctx.actual_setpoint,
    )


def _override_exceeded_cool(ctx: DirectiveContext) -> Directive:
    limit = ctx.cool + ctx.offset_up
    return Directive(
        DirectiveAction.OVERRIDE_EXCEEDED_COOL,
        f"Manager override exceeded: setpoint {_fmt(ctx.actual_setpoint)}, push to {_fmt(limit)}",
        limit,
    )


def _override_exceeded_heat(ctx: DirectiveContext) -> Directive:
    limit = ctx.heat - ctx.offset_down
    return Directive(
        DirectiveAction.OVERRIDE_EXCEEDED_HEAT,
        f"Manager override exceeded: setpoint {_fmt(ctx.actual_setpoint)}, push to {_fmt(limit)}",
        limit,
    )


def _heat(ctx: DirectiveContext) -> Directive:
    return Directive(DirectiveAction.HEAT, f"Heat to {_fmt(ctx.heat)}", ctx.heat)


def _cool(ctx: DirectiveContext) -> Directive:
    return Directive(DirectiveAction.COOL, f"Cool to {_fmt(ctx.cool)}", ctx.cool)


def _in_range(ctx: DirectiveContext) -> Directive:
    return Directive(DirectiveAction.IN_RANGE, "In range, no action")


def _hold_band(ctx: DirectiveContext) -> Directive:
    return Directive(
        DirectiveAction.HOLD_BAND,
        f"Hold {_fmt(ctx.heat)}-{_fmt(ctx.cool)} band (temperature unknown)",
    )


Rule = tuple[Callable[[DirectiveContext], bool], Callable[[DirectiveContext], Directive]]

# Order matters: the first matching predicate wins
RULES: tuple[Rule, ...] = (
    (lambda c: not c.has_zone, _no_zone),
    (
        lambda c: c.temperature is not None and c.guardrail_min is not None and c.temperature <= c.guardrail_min,
        _freeze,
    ),
    (
        lambda c: c.temperature is not None and c.guardrail_max is not None and c.temperature >= c.guardrail_max,
        _overheat,
    ),
    (
        lambda c: c.override_known
        and c.actual_setpoint > c.cool
        and c.actual_setpoint - c.cool <= c.offset_up,
        _override_active_cool,
    ),
    (
        lambda c: c.override_known
        and c.actual_setpoint < c.heat
        and c.heat - c.actual_setpoint <= c.offset_down,
        _override_active_heat,
    ),
    (lambda c: c.override_known and c.actual_setpoint > c.cool + c.offset_up, _override_exceeded_cool),
    (lambda c: c.override_known and c.actual_setpoint < c.heat - c.offset_down, _override_exceeded_heat),
    (lambda c: c.temperature is None, _hold_band),
    (lambda c: c.temperature < c.heat, _heat),
    (lambda c: c.temperature > c.cool, _cool),
    (lambda c: True, _in_range),
)


def evaluate_directive(
    setpoints: Optional[ResolvedSetpoints],
    reading: Optional[ThermostatReading],
    occupied: bool,
    has_zone: bool = True,
) -> Directive:
    """Produce the directive for one thermostat.

    Args:
        setpoints: The zone's resolved setpoints (None when there is no zone)
        reading: Current device reading, or None when unknown
        occupied: Whether the site is in its occupied phase
        has_zone: Whether the thermostat has a zone assigned

    Returns:
        The first matching Directive
    """
    reading = reading or ThermostatReading()
    if setpoints is None:
        has_zone = False
        heat = cool = guardrail_min = guardrail_max = None
        offset_up = offset_down = 0.0
    else:
        heat, cool = setpoints.band(occupied)
        guardrail_min, guardrail_max = setpoints.guardrail_min, setpoints.guardrail_max
        offset_up, offset_down = setpoints.manager_offset_up, setpoints.manager_offset_down

    ctx = DirectiveContext(
        has_zone=has_zone,
        occupied=occupied,
        temperature=reading.current_temperature,
        actual_setpoint=reading.current_setpoint,
        heat=heat,
        cool=cool,
        guardrail_min=guardrail_min,
        guardrail_max=guardrail_max,
        offset_up=offset_up,
        offset_down=offset_down,
    )

    for predicate, action in RULES:
        if predicate(ctx):
            return action(ctx)
    # The last rule always matches
    raise AssertionError("no directive rule matched")
