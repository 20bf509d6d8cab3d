"""Shared numeric and geometry helpers for layout stages."""

from __future__ import annotations

import math
from typing import Any, Optional


FLUSH_TOLERANCE_M = 1e-9


def as_float(value: Any) -> Optional[float]:
    """Finite float from a JSON scalar, or None. Booleans are not numbers here."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def snap(value: float, increment: float) -> float:
    """Round to the nearest multiple of increment; halves go up like JS Math.round.

    Values whose step count is not representable (value / increment overflows)
    are returned unchanged.
    """
    if not increment > 0.0 or not math.isfinite(increment):
        return float(value)
    steps = float(value) / increment
    if not math.isfinite(steps):
        return float(value)
    return math.floor(steps + 0.5) * increment


def clamp(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, float(value)))


def is_flush(value: float, target: float) -> bool:
    return math.isclose(float(value), float(target), rel_tol=0.0, abs_tol=FLUSH_TOLERANCE_M)


def clamp_flush(value: float, increment: float, min_value: float, max_value: float) -> float:
    """Snap then clamp; a value resting on a bound (before or after snapping) keeps that bound."""
    if min_value > max_value:
        return clamp(snap(value, increment), min_value, max_value)
    for candidate in (value, clamp(snap(value, increment), min_value, max_value)):
        if is_flush(candidate, min_value):
            return float(min_value)
        if is_flush(candidate, max_value):
            return float(max_value)
    return clamp(snap(value, increment), min_value, max_value)


def room_bounds(room_extent: float, object_extent: float) -> tuple[float, float]:
    """Center-position range along one axis; inverted when the object is wider than the room."""
    half_room = float(room_extent) / 2.0
    half_object = float(object_extent) / 2.0
    return -half_room + half_object, half_room - half_object
