"""Stable serialization of layouts for regression snapshots."""

from __future__ import annotations

from typing import Any

from src.schema import LayoutResult


def _round_value(value: Any):
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return round(float(value), 6)
    if isinstance(value, (list, tuple)):
        return [_round_value(item) for item in value]
    if isinstance(value, dict):
        normalized: dict[str, Any] = {}
        for key in sorted(value):
            normalized[str(key)] = _round_value(value[key])
        return normalized
    return value


def layout_to_snapshot(layout: LayoutResult) -> dict[str, Any]:
    wire = layout.to_wire()
    return {
        "room": _round_value(wire.get("room", {})),
        "objects": [_round_value(item) for item in wire.get("objects", [])],
        "rationale": wire.get("rationale"),
    }
