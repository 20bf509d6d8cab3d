"""Geometry sanitizer: snap to grid, clamp into the room, rest on the floor.

Objects are handled independently; pairwise overlap is not resolved, and
rotation, anchors and parent links pass through untouched.

Coordinate system: origin at the room center, X right, Y up, Z forward.
Room bounds are +/- width_m / 2 along X and +/- depth_m / 2 along Z.
"""

from __future__ import annotations

from src.diagnostics import DiagnosticsSink, NoopDiagnosticsSink, Severity, make_event
from src.geom_utils import clamp_flush, is_flush, room_bounds, snap
from src.schema import LayoutResult, PlacedObject, Room, SanitizeOptions, Vec3


def _emit(diag: DiagnosticsSink, code: str, path: str, old, new, reason: str, severity: int = Severity.WARN) -> None:
    diag.emit(
        make_event(
            stage="sanitize",
            component="sanitizer",
            code=code,
            severity=severity,
            path=path,
            source="computed",
            input_value=old,
            resolved_value=new,
            reason=reason,
        )
    )


def _axis_bound(
    diag: DiagnosticsSink,
    value: float,
    increment: float,
    room_extent: float,
    object_extent: float,
    path: str,
) -> float:
    lo, hi = room_bounds(room_extent, object_extent)
    snapped = snap(value, increment)
    resolved = clamp_flush(value, increment, lo, hi)
    if lo > hi:
        _emit(diag, "SANITIZE_OVERSIZE", path, value, resolved, f"object wider than room ({object_extent} > {room_extent})")
    elif resolved != snapped and not (is_flush(value, lo) or is_flush(value, hi)):
        _emit(diag, "SANITIZE_CLAMP", path, value, resolved, f"clamped to [{lo}, {hi}]")
    return resolved


def floor_rest_y(value: float, increment: float, height: float) -> float:
    """max(h / 2, snapped y); an object already resting at h / 2 stays there.

    The resting case applies on the first pass too: y = 0.375 with h = 0.75
    comes back as 0.375, where plain snap-then-max would give 0.4. Keeping the
    rest height exact is what makes a second pass a no-op.
    """
    rest = float(height) / 2.0
    resolved = max(rest, snap(value, increment))
    if is_flush(value, rest) or is_flush(resolved, rest):
        return rest
    return resolved


def sanitize_object(
    obj: PlacedObject,
    room: Room,
    increment: float,
    diag: DiagnosticsSink | None = None,
) -> PlacedObject:
    diag = diag if diag is not None else NoopDiagnosticsSink()
    path = f"objects[{obj.id}].position_m"
    position = obj.position_m if obj.position_m is not None else Vec3()
    size = obj.size_m

    width_extent = size.w if size is not None and size.w is not None else 0.0
    depth_extent = size.d if size is not None and size.d is not None else 0.0
    height = size.h if size is not None else None

    x = _axis_bound(diag, position.x, increment, room.width_m, width_extent, f"{path}.x")
    z = _axis_bound(diag, position.z, increment, room.depth_m, depth_extent, f"{path}.z")

    if obj.parent or height is None:
        # Anchored or unknown-height objects are never floor-forced.
        y = snap(position.y, increment)
    else:
        y = floor_rest_y(position.y, increment, height)
        if y > snap(position.y, increment):
            _emit(diag, "SANITIZE_FLOOR", f"{path}.y", position.y, y, "raised to rest on the floor plane", Severity.INFO)

    return obj.model_copy(update={"position_m": Vec3(x=x, y=y, z=z)})


def sanitize(
    layout: LayoutResult,
    options: SanitizeOptions | None = None,
    diag: DiagnosticsSink | None = None,
) -> LayoutResult:
    """Total and idempotent: sanitize(sanitize(L)) == sanitize(L)."""
    options = options if options is not None else SanitizeOptions()
    diag = diag if diag is not None else NoopDiagnosticsSink()
    room = layout.room if layout.room is not None else options.room_fallback
    objects = [sanitize_object(obj, room, options.snap_increment, diag) for obj in layout.objects]
    return layout.model_copy(update={"room": room, "objects": objects})
