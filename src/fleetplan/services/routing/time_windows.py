"""Time window parsing and HARD/SOFT strictness evaluation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

STRICTNESS_LEVELS = ("HARD", "SOFT")
HARD_CONSTRAINT_VIOLATION = "HARD_CONSTRAINT_VIOLATION"

_TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")


@dataclass(slots=True)
class TimeWindowCheck:
    valid: bool
    can_assign: bool
    penalty: Optional[float] = None
    reason: Optional[str] = None
    warning: Optional[str] = None


def is_valid_time(value: str | None) -> bool:
    return bool(value) and bool(_TIME_PATTERN.match(value.strip()))


def time_to_minutes(value: str) -> int:
    """Minutes from midnight for an ``HH:MM`` (or ``HH:MM:SS``) string."""
    match = _TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(minutes: float) -> str:
    total = int(round(minutes))
    return f"{(total // 60) % 24:02d}:{total % 60:02d}"


def violates_time_window(
    arrival: float,
    window_start: float | None,
    window_end: float | None,
    tolerance: float | None = None,
) -> bool:
    """True when ``arrival`` falls outside the window.

    A start and end describe a range. A start with a tolerance describes an
    exact appointment that may be missed by at most ``tolerance`` either way.
    """
    if window_start is not None and window_end is not None:
        return arrival < window_start or arrival > window_end
    if window_start is not None and tolerance is not None:
        return arrival < window_start - tolerance or arrival > window_start + tolerance
    return False


def calculate_delay_penalty(delay_minutes: float, penalty_factor: float = 5) -> float:
    return delay_minutes * penalty_factor


def validate_time_window_strictness(
    strictness: str,
    arrival: float,
    window_start: float | None,
    window_end: float | None,
    tolerance: float | None = None,
    penalty_factor: float = 5,
) -> TimeWindowCheck:
    if not violates_time_window(arrival, window_start, window_end, tolerance):
        return TimeWindowCheck(valid=True, can_assign=True)

    if strictness == "HARD":
        return TimeWindowCheck(
            valid=False,
            can_assign=False,
            reason=HARD_CONSTRAINT_VIOLATION,
            warning="Assignment violates hard time window constraint",
        )

    reference = window_end if window_end is not None else window_start
    if reference is not None:
        delay = max(0.0, arrival - reference)
        penalty = calculate_delay_penalty(delay, penalty_factor)
        return TimeWindowCheck(
            valid=True,
            can_assign=True,
            penalty=penalty,
            warning=f"Time window violation: {delay:g} minutes late (penalty: {penalty:g})",
        )

    return TimeWindowCheck(valid=True, can_assign=True, warning="Time window constraint not clearly defined")


def calculate_compliance_rate(total_orders: int, on_time_orders: int) -> int:
    if total_orders == 0:
        return 100
    return round(on_time_orders / total_orders * 100)


def get_effective_strictness(order_strictness: str | None, preset_strictness: str) -> str:
    return order_strictness or preset_strictness


def is_strictness_overridden(order_strictness: str | None, preset_strictness: str) -> bool:
    return order_strictness is not None and order_strictness != preset_strictness
