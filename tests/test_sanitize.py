from __future__ import annotations

import math
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.diagnostics import ListDiagnosticsSink
from src.geom_utils import snap
from src.pipeline.sanitize import sanitize
from src.schema import LayoutResult, PlacedObject, Room, RotationDeg, SanitizeOptions, SizeM, Vec3


ROOM = Room(width_m=4.0, depth_m=3.5, height_m=2.7)
OPTIONS = SanitizeOptions(snap_increment=0.1, room_fallback=Room(width_m=2.0, depth_m=2.0, height_m=2.5))

COORDS = [-3.17, -2.0, -1.55, -1.25, -0.05, 0.0, 0.049, 0.05, 0.15, 0.375, 0.83, 1.2, 1.55, 1.62, 2.5, 7.0]
EXTREME_COORDS = [-1.7e308, -1e308, 1e308, 1.7e308]
SIZES = [
    None,
    SizeM(w=0.6, d=0.6, h=1.1),
    SizeM(w=1.6, d=0.7, h=0.75),
    SizeM(w=0.3, d=0.3, h=0.45),
    SizeM(w=3.9, d=3.4),
    SizeM(w=5.0, d=4.0, h=0.9),
    SizeM(h=0.5),
]


def _assert_close(actual: float, expected: float, eps: float = 1e-9) -> None:
    assert abs(float(actual) - float(expected)) <= eps


def _layout(*objects: PlacedObject, room: Room | None = ROOM) -> LayoutResult:
    return LayoutResult(room=room, objects=list(objects))


def _obj(x: float = 0.0, y: float = 0.0, z: float = 0.0, size: SizeM | None = None, **kwargs) -> PlacedObject:
    return PlacedObject(id=kwargs.pop("id", "o"), position_m=Vec3(x=x, y=y, z=z), size_m=size, **kwargs)


def _property_layouts(coords: list[float] = COORDS):
    for size in SIZES:
        for parent in (None, "desk1"):
            objects = [
                _obj(x, y, z, size=size, id=f"o{index}", parent=parent)
                for index, (x, y, z) in enumerate(zip(coords, list(reversed(coords)), coords[3:] + coords[:3]))
            ]
            yield _layout(*objects)


def test_snap_is_grid_multiple_within_half_increment():
    for increment in (0.1, 0.25, 0.5, 1.0):
        for value in COORDS:
            snapped = snap(value, increment)
            steps = snapped / increment
            assert abs(steps - round(steps)) < 1e-9
            assert abs(snapped - value) <= increment / 2 + 1e-12


def test_snap_halves_round_up():
    _assert_close(snap(0.25, 0.5), 0.5)
    _assert_close(snap(-0.25, 0.5), 0.0)


def test_snap_and_in_bounds_position():
    result = sanitize(_layout(_obj(-0.83, 0.0, 0.27, size=SizeM(w=1.0, d=1.0))), OPTIONS)
    position = result.objects[0].position_m
    _assert_close(position.x, -0.8)
    _assert_close(position.y, 0.0)
    _assert_close(position.z, 0.3)


def test_clamp_to_room_bounds():
    result = sanitize(_layout(_obj(3.0, 0.0, -9.0, size=SizeM(w=1.6, d=0.7, h=0.75))), OPTIONS)
    position = result.objects[0].position_m
    _assert_close(position.x, 2.0 - 0.8)
    _assert_close(position.z, -(1.75 - 0.35))


def test_unknown_size_clamps_center_to_walls():
    result = sanitize(_layout(_obj(5.0, 1.0, -5.0)), OPTIONS)
    position = result.objects[0].position_m
    _assert_close(position.x, 2.0)
    _assert_close(position.z, -1.75)
    _assert_close(position.y, 1.0)


def test_object_wider_than_room_collapses_to_lower_bound():
    sink = ListDiagnosticsSink()
    for x in (-4.0, 0.0, 4.0):
        result = sanitize(_layout(_obj(x, 0.0, 0.0, size=SizeM(w=5.0, d=1.0))), OPTIONS, diag=sink)
        # lo = -W/2 + w/2 = 0.5, hi = W/2 - w/2 = -0.5; max(lo, min(hi, x)) == lo
        _assert_close(result.objects[0].position_m.x, 0.5)
    assert "SANITIZE_OVERSIZE" in sink.codes()


def test_floor_rule_raises_unparented_objects():
    sink = ListDiagnosticsSink()
    result = sanitize(_layout(_obj(0.0, 0.0, 0.0, size=SizeM(w=1.6, d=0.7, h=0.75))), OPTIONS, diag=sink)
    _assert_close(result.objects[0].position_m.y, 0.375)
    assert "SANITIZE_FLOOR" in sink.codes()


def test_floor_rule_keeps_higher_resting_position():
    result = sanitize(_layout(_obj(0.0, 1.23, 0.0, size=SizeM(h=0.5))), OPTIONS)
    _assert_close(result.objects[0].position_m.y, 1.2)


def test_parented_and_unknown_height_objects_are_not_floor_forced():
    parented = _obj(0.0, -0.52, 0.0, size=SizeM(w=0.2, d=0.2, h=0.45), parent="desk1", anchor="top_center")
    no_height = _obj(0.0, -0.52, 0.0, size=SizeM(w=0.2, d=0.2), id="p")
    result = sanitize(_layout(parented, no_height), OPTIONS)
    _assert_close(result.objects[0].position_m.y, -0.5)
    _assert_close(result.objects[1].position_m.y, -0.5)
    assert result.objects[0].anchor == "top_center"


def test_missing_position_defaults_to_origin():
    result = sanitize(_layout(PlacedObject(id="rug", size_m=SizeM(w=2.0, d=1.5, h=0.02))), OPTIONS)
    position = result.objects[0].position_m
    _assert_close(position.x, 0.0)
    _assert_close(position.y, 0.01)
    _assert_close(position.z, 0.0)


def test_room_fallback_used_when_layout_has_no_room():
    result = sanitize(_layout(_obj(5.0, 0.0, 0.0), room=None), OPTIONS)
    assert result.room == OPTIONS.room_fallback
    _assert_close(result.objects[0].position_m.x, 1.0)


def test_rotation_and_other_fields_pass_through():
    obj = _obj(0.0, 0.0, 0.0, rotation_deg=RotationDeg(y=33.3), model="gltf:chair", label="chair")
    result = sanitize(_layout(obj), OPTIONS)
    out = result.objects[0]
    assert out.rotation_deg == RotationDeg(y=33.3)
    assert out.model == "gltf:chair"
    assert out.label == "chair"


def test_sanitize_does_not_mutate_input():
    layout = _layout(_obj(3.0, 0.0, 0.0, size=SizeM(w=1.0, d=1.0, h=1.0)))
    before = layout.model_dump()
    sanitize(layout, OPTIONS)
    assert layout.model_dump() == before


def test_idempotence():
    for layout in [*_property_layouts(), *_property_layouts(EXTREME_COORDS)]:
        once = sanitize(layout, OPTIONS)
        twice = sanitize(once, OPTIONS)
        assert twice == once


def test_idempotence_for_values_resting_on_bounds():
    # 0.375 is the floor rest height for h=0.75 and -1.55 the lower wall bound for w=0.9.
    layout = _layout(_obj(-1.55, 0.375, 0.0, size=SizeM(w=0.9, d=0.5, h=0.75)))
    once = sanitize(layout, OPTIONS)
    _assert_close(once.objects[0].position_m.x, -1.55)
    _assert_close(once.objects[0].position_m.y, 0.375)
    assert sanitize(once, OPTIONS) == once


def test_bound_and_floor_invariants():
    tiny_steps = [SanitizeOptions(snap_increment=increment) for increment in (1e-300, 1e-320)]
    cases = [(layout, OPTIONS) for layout in _property_layouts()]
    cases += [(layout, OPTIONS) for layout in _property_layouts(EXTREME_COORDS)]
    cases += [(layout, options) for options in tiny_steps for layout in _property_layouts()]
    for layout, options in cases:
        result = sanitize(layout, options)
        room = result.room
        for obj in result.objects:
            position = obj.position_m
            size = obj.size_m
            half_width = (size.w or 0.0) / 2 if size else 0.0
            half_depth = (size.d or 0.0) / 2 if size else 0.0
            if half_width <= room.width_m / 2:
                assert -room.width_m / 2 + half_width - 1e-9 <= position.x <= room.width_m / 2 - half_width + 1e-9
            if half_depth <= room.depth_m / 2:
                assert -room.depth_m / 2 + half_depth - 1e-9 <= position.z <= room.depth_m / 2 - half_depth + 1e-9
            if not obj.parent and size is not None and size.h is not None:
                assert position.y >= size.h / 2
            assert math.isfinite(position.x) and math.isfinite(position.y) and math.isfinite(position.z)


def test_other_snap_increment():
    options = SanitizeOptions(snap_increment=0.25)
    result = sanitize(_layout(_obj(0.6, 0.0, -0.4)), options)
    _assert_close(result.objects[0].position_m.x, 0.5)
    _assert_close(result.objects[0].position_m.z, -0.5)


def test_snap_leaves_values_with_unrepresentable_step_count():
    assert snap(1.7e308, 0.1) == 1.7e308
    assert snap(-1e308, 0.1) == -1e308
    assert snap(0.5, 1e-320) == 0.5
    _assert_close(snap(0.37, 1e-300), 0.37)


def test_extreme_positions_are_clamped_into_the_room():
    layout = _layout(_obj(1.7e308, -1e308, -1.7e308, size=SizeM(w=1.0, d=1.0, h=0.5)))
    for options in (OPTIONS, SanitizeOptions(snap_increment=1e-320)):
        position = sanitize(layout, options).objects[0].position_m
        _assert_close(position.x, 1.5)
        _assert_close(position.y, 0.25)
        _assert_close(position.z, -1.25)
