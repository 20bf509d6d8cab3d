"""Parsed model output -> canonical LayoutResult.

Normalization is total: malformed or missing fields are defaulted or omitted,
never rejected. Canonical keys win over legacy variants; legacy keys are only
consulted when the canonical one is absent or unusable.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from src.catalog.manifest import find_key_by_path
from src.diagnostics import DiagnosticsSink, NoopDiagnosticsSink, Severity, make_event
from src.geom_utils import as_float, is_number
from src.schema import (
    ASSET_REF_PREFIX,
    DEFAULT_ROOM,
    AssetManifestEntry,
    LayoutResult,
    PlacedObject,
    Room,
    RotationDeg,
    SizeM,
    Vec3,
    asset_key,
    default_assets_root,
)


_POSITION_KEYS = ("position_m", "position", "pos")
_ROTATION_KEYS = ("rotation_deg", "rotation")
_SIZE_KEYS = ("size_m", "size")
_LEGACY_MODEL_KEYS = ("model_id", "modelId")
_OPAQUE_STRING_FIELDS = ("type", "label", "anchor")
_ROOM_COSMETIC_FIELDS = ("floor_material", "wall_color")
_SIZE_ALIASES = {
    "w": ("w", "width", "width_m"),
    "d": ("d", "depth", "depth_m"),
    "h": ("h", "height", "height_m"),
}


def _warn(
    diag: DiagnosticsSink,
    code: str,
    message: str,
    path: str,
    old,
    new,
    source: str = "llm",
    severity: int = Severity.WARN,
) -> None:
    diag.emit(
        make_event(
            stage="normalize",
            component="normalizer",
            code=code,
            severity=severity,
            path=path,
            source=source,
            input_value=old,
            resolved_value=new,
            reason=message,
        )
    )


def _info(diag: DiagnosticsSink, code: str, message: str, path: str, old, new, source: str = "legacy") -> None:
    _warn(diag, code, message, path, old, new, source=source, severity=Severity.INFO)


# =========================
# Shape coercions
# =========================

def coerce_vec3(value: Any) -> Optional[Vec3]:
    """[x, y, z] or {x, y, z} -> Vec3; missing/non-numeric members become 0."""
    if isinstance(value, (list, tuple)):
        if len(value) < 3:
            return None
        return Vec3(
            x=as_float(value[0]) or 0.0,
            y=as_float(value[1]) or 0.0,
            z=as_float(value[2]) or 0.0,
        )
    if isinstance(value, dict):
        members = [as_float(value.get(axis)) for axis in ("x", "y", "z")]
        if all(member is None for member in members):
            return None
        x, y, z = (member if member is not None else 0.0 for member in members)
        return Vec3(x=x, y=y, z=z)
    return None


def coerce_rotation(value: Any) -> Optional[RotationDeg]:
    """Bare number -> yaw only; [x, y, z] -> all axes; {x?, y?, z?} -> given axes only."""
    if isinstance(value, (list, tuple)):
        if len(value) < 3:
            return None
        return RotationDeg(
            x=as_float(value[0]) or 0.0,
            y=as_float(value[1]) or 0.0,
            z=as_float(value[2]) or 0.0,
        )
    if isinstance(value, dict):
        x, y, z = (as_float(value.get(axis)) for axis in ("x", "y", "z"))
        if x is None and y is None and z is None:
            return None
        return RotationDeg(x=x, y=y, z=z)
    yaw = as_float(value)
    if yaw is None:
        return None
    return RotationDeg(y=yaw)


def _non_negative(value: Any) -> Optional[float]:
    number = as_float(value)
    if number is None or number < 0.0:
        return None
    return number


def coerce_size(value: Any) -> Optional[SizeM]:
    if isinstance(value, (list, tuple)):
        if len(value) < 3:
            return None
        w, d, h = (_non_negative(item) for item in value[:3])
    elif isinstance(value, dict):
        picked: dict[str, Optional[float]] = {}
        for axis, aliases in _SIZE_ALIASES.items():
            picked[axis] = None
            for alias in aliases:
                if alias in value:
                    picked[axis] = _non_negative(value[alias])
                    break
        w, d, h = picked["w"], picked["d"], picked["h"]
    else:
        return None
    if w is None and d is None and h is None:
        return None
    return SizeM(w=w, d=d, h=h)


def _first_coerced(raw: dict, keys: tuple[str, ...], coerce):
    for key in keys:
        if raw.get(key) is None:
            continue
        coerced = coerce(raw[key])
        if coerced is not None:
            return coerced, key
    return None, None


# =========================
# Field rules
# =========================

def normalize_room(value: Any, room_fallback: Room, diag: DiagnosticsSink) -> Room:
    if isinstance(value, dict):
        dims = [value.get(key) for key in ("width_m", "depth_m", "height_m")]
        if all(is_number(dim) and dim > 0 for dim in dims):
            cosmetics = {
                key: value[key] for key in _ROOM_COSMETIC_FIELDS if isinstance(value.get(key), str)
            }
            return Room(width_m=dims[0], depth_m=dims[1], height_m=dims[2], **cosmetics)
    _warn(
        diag,
        code="NORMALIZE_ROOM_FALLBACK",
        message="room missing or malformed; fallback room used",
        path="room",
        old=value,
        new=room_fallback.model_dump(exclude_none=True),
        source="fallback",
    )
    return room_fallback


def resolve_model_ref(
    raw: dict,
    manifest: Mapping[str, AssetManifestEntry],
    assets_root: str,
    diag: DiagnosticsSink,
    path: str,
) -> Optional[str]:
    model = raw.get("model")
    if isinstance(model, str) and model:
        return model

    model_id = next((raw[key] for key in _LEGACY_MODEL_KEYS if raw.get(key) is not None), None)
    if isinstance(model_id, str):
        # "models:gaming-room:chair" -> "chair"
        last = model_id.split(":")[-1]
        if not last:
            _warn(diag, "NORMALIZE_MODEL_UNRESOLVED", "model_id has empty last segment", path, model_id, None)
            return None
        ref = f"{ASSET_REF_PREFIX}{last}"
        _info(diag, "NORMALIZE_MODEL_ALIAS", "model_id mapped to catalog reference", path, model_id, ref)
        return ref

    asset_path = raw.get("path")
    if isinstance(asset_path, str) and asset_path.startswith(assets_root):
        key = find_key_by_path(manifest, asset_path)
        if key is None:
            _warn(diag, "NORMALIZE_MODEL_UNRESOLVED", "asset path not found in manifest", path, asset_path, None)
            return None
        ref = f"{ASSET_REF_PREFIX}{key}"
        _info(diag, "NORMALIZE_MODEL_FROM_PATH", "asset path mapped to manifest key", path, asset_path, ref, "manifest")
        return ref
    return None


def _inherit_size(size: Optional[SizeM], entry: AssetManifestEntry) -> SizeM:
    size = size or SizeM()
    return SizeM(
        w=size.w if size.w is not None else entry.w,
        d=size.d if size.d is not None else entry.d,
        h=size.h if size.h is not None else entry.h,
    )


def _object_id(raw: dict, index: int, seen: set[str], diag: DiagnosticsSink) -> str:
    raw_id = raw.get("id")
    if isinstance(raw_id, str) and raw_id.strip():
        base = raw_id
    elif is_number(raw_id):
        base = str(raw_id)
        _info(diag, "NORMALIZE_ID_STRINGIFIED", "numeric id converted to string", f"objects[{index - 1}].id", raw_id, base, "llm")
    else:
        base = f"obj_{index}"
        _info(diag, "NORMALIZE_ID_SYNTHESIZED", "missing id synthesized from list position", f"objects[{index - 1}].id", raw_id, base, "computed")

    candidate = base
    suffix = 2
    while candidate in seen:
        candidate = f"{base}_{suffix}"
        suffix += 1
    if candidate != base:
        _warn(diag, "NORMALIZE_ID_DEDUPED", "duplicate id suffixed", f"objects[{index - 1}].id", base, candidate)
    seen.add(candidate)
    return candidate


def normalize_object(
    raw: dict,
    index: int,
    manifest: Mapping[str, AssetManifestEntry],
    seen_ids: set[str],
    *,
    assets_root: str,
    inherit_size: bool,
    diag: DiagnosticsSink,
) -> PlacedObject:
    """Normalize one object dict; index is the 1-based list position."""
    path = f"objects[{index - 1}]"
    fields: dict[str, Any] = {"id": _object_id(raw, index, seen_ids, diag)}

    for key in _OPAQUE_STRING_FIELDS:
        value = raw.get(key)
        if isinstance(value, str):
            fields[key] = value
        elif value is not None:
            _warn(diag, "NORMALIZE_FIELD_DROPPED", f"{key} is not a string", f"{path}.{key}", value, None)

    parent = raw.get("parent")
    if isinstance(parent, str) and parent:
        fields["parent"] = parent

    model = resolve_model_ref(raw, manifest, assets_root, diag, f"{path}.model")
    if model is not None:
        fields["model"] = model

    position, position_key = _first_coerced(raw, _POSITION_KEYS, coerce_vec3)
    if position is not None:
        fields["position_m"] = position
        if position_key != "position_m" or not isinstance(raw.get("position_m"), dict):
            _info(diag, "NORMALIZE_POSITION_COERCED", f"{position_key} coerced to position_m", f"{path}.position_m", raw.get(position_key), position.model_dump())

    rotation, rotation_key = _first_coerced(raw, _ROTATION_KEYS, coerce_rotation)
    if rotation is not None:
        fields["rotation_deg"] = rotation
        if rotation_key != "rotation_deg" or not isinstance(raw.get("rotation_deg"), dict):
            _info(diag, "NORMALIZE_ROTATION_COERCED", f"{rotation_key} coerced to rotation_deg", f"{path}.rotation_deg", raw.get(rotation_key), rotation.model_dump(exclude_none=True))

    size, _size_key = _first_coerced(raw, _SIZE_KEYS, coerce_size)
    manifest_key = asset_key(model) if inherit_size else None
    if manifest_key is not None:
        entry = manifest.get(manifest_key)
        if entry is not None:
            inherited = _inherit_size(size, entry)
            if inherited != size:
                _info(diag, "NORMALIZE_SIZE_INHERITED", "size filled from manifest entry", f"{path}.size_m", size.model_dump() if size else None, inherited.model_dump(), "manifest")
            size = inherited
    if size is not None:
        fields["size_m"] = size

    relative = coerce_vec3(raw.get("relative_position_m"))
    if relative is not None:
        fields["relative_position_m"] = relative

    construction = raw.get("construction")
    if isinstance(construction, dict):
        fields["construction"] = construction

    return PlacedObject(**fields)


def normalize(
    value: Any,
    manifest: Mapping[str, AssetManifestEntry],
    room_fallback: Room = DEFAULT_ROOM,
    *,
    assets_root: str | None = None,
    inherit_size: bool = False,
    diag: DiagnosticsSink | None = None,
) -> LayoutResult:
    diag = diag if diag is not None else NoopDiagnosticsSink()
    root = assets_root or default_assets_root()

    if not isinstance(value, dict):
        _warn(diag, "NORMALIZE_ROOT_FALLBACK", "parsed value is not an object; empty layout used", "", type(value).__name__, "{}")
        value = {}

    room = normalize_room(value.get("room"), room_fallback, diag)

    objects_raw = value.get("objects")
    if not isinstance(objects_raw, list):
        if objects_raw is not None:
            _warn(diag, "NORMALIZE_OBJECTS_FALLBACK", "objects is not a list; empty list used", "objects", type(objects_raw).__name__, [])
        objects_raw = []

    seen_ids: set[str] = set()
    objects: list[PlacedObject] = []
    for index, raw in enumerate(objects_raw, start=1):
        if not isinstance(raw, dict):
            _warn(diag, "NORMALIZE_OBJECT_DROPPED", "object entry is not an object", f"objects[{index - 1}]", raw, None)
            continue
        objects.append(
            normalize_object(
                raw,
                index,
                manifest,
                seen_ids,
                assets_root=root,
                inherit_size=inherit_size,
                diag=diag,
            )
        )

    rationale = value.get("rationale")
    return LayoutResult(
        room=room,
        objects=objects,
        rationale=rationale if isinstance(rationale, str) else None,
    )
