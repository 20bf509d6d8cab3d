from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


ASSET_REF_PREFIX = "gltf:"
DEFAULT_ASSETS_ROOT = "/models/"
DEFAULT_SNAP_M = 0.1
RAW_EXCERPT_LIMIT = 200

SNAP_ENV = "ROOMGEN_SNAP_M"
ASSETS_ROOT_ENV = "ROOMGEN_ASSETS_ROOT"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)


# =========================
# Geometry primitives
# =========================

class Vec3(_Frozen):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class RotationDeg(_Frozen):
    """Euler rotation in degrees; None means the axis was not specified."""

    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None


class SizeM(_Frozen):
    """Bounding size in meters; None means unknown."""

    w: Optional[float] = Field(default=None, ge=0)
    d: Optional[float] = Field(default=None, ge=0)
    h: Optional[float] = Field(default=None, ge=0)


# =========================
# Layout (canonical schema)
# =========================

class Room(_Frozen):
    width_m: float = Field(gt=0)
    depth_m: float = Field(gt=0)
    height_m: float = Field(gt=0)
    floor_material: Optional[str] = None
    wall_color: Optional[str] = None


DEFAULT_ROOM = Room(width_m=4.0, depth_m=3.5, height_m=2.7)


def asset_key(model: Any) -> Optional[str]:
    """Manifest key of a "gltf:<key>" reference, or None for anything else."""
    if isinstance(model, str) and model.startswith(ASSET_REF_PREFIX):
        return model[len(ASSET_REF_PREFIX):] or None
    return None


class PlacedObject(_Frozen):
    id: str = Field(min_length=1)
    type: Optional[str] = None
    label: Optional[str] = None
    # "gltf:<manifest key>"; None means a procedural primitive.
    model: Optional[str] = None
    position_m: Optional[Vec3] = None
    rotation_deg: Optional[RotationDeg] = None
    size_m: Optional[SizeM] = None
    parent: Optional[str] = None
    anchor: Optional[str] = None
    relative_position_m: Optional[Vec3] = None
    construction: Optional[Dict[str, Any]] = None


class LayoutResult(_Frozen):
    """Room envelope, ordered placed objects and the model's rationale."""

    room: Optional[Room] = None
    objects: List[PlacedObject] = Field(default_factory=list)
    rationale: Optional[str] = None

    @field_validator("objects")
    @classmethod
    def validate_unique_ids(cls, v: List[PlacedObject]):
        seen: set[str] = set()
        for obj in v:
            if obj.id in seen:
                raise ValueError(f"duplicate object id: {obj.id}")
            seen.add(obj.id)
        return v

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


# =========================
# Catalog manifest
# =========================

class AssetManifestEntry(_Frozen):
    path: str
    w: float = Field(ge=0)
    d: float = Field(ge=0)
    h: float = Field(ge=0)
    anchors: Dict[str, Vec3] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)


# =========================
# Sanitizer options
# =========================

class SanitizeOptions(_Frozen):
    snap_increment: float = Field(default=DEFAULT_SNAP_M, gt=0)
    room_fallback: Room = DEFAULT_ROOM


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return float(default)
    if value != value or value <= 0.0 or value == float("inf"):
        return float(default)
    return value


def default_assets_root() -> str:
    value = str(os.environ.get(ASSETS_ROOT_ENV, "")).strip()
    return value or DEFAULT_ASSETS_ROOT


def default_options() -> SanitizeOptions:
    """Sanitizer options with the snap grid taken from ROOMGEN_SNAP_M when set."""
    return SanitizeOptions(snap_increment=_env_float(SNAP_ENV, DEFAULT_SNAP_M))
