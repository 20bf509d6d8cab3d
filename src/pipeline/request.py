"""Request body accepted at the HTTP boundary, before the backend call."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


DEFAULT_TEMPERATURE = 0.2


def _trimmed(v) -> Optional[str]:
    if not isinstance(v, str):
        return None
    v = v.strip()
    return v or None


class LayoutRequest(BaseModel):
    """
    Raw generate-layout request. Description is required; everything else is
    optional and falls back to defaults instead of failing.
    """

    description: str = Field(min_length=1)
    style: Optional[str] = None
    temperature: float = DEFAULT_TEMPERATURE
    previous_layout: Optional[Dict[str, Any]] = Field(default=None, alias="previousLayout")

    model_config = {"populate_by_name": True}

    @field_validator("description", mode="before")
    @classmethod
    def _v_description(cls, v):
        trimmed = _trimmed(v)
        if trimmed is None:
            raise ValueError("Invalid description")
        return trimmed

    @field_validator("style", mode="before")
    @classmethod
    def _v_style(cls, v):
        return _trimmed(v)

    @field_validator("temperature", mode="before")
    @classmethod
    def _v_temperature(cls, v):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return DEFAULT_TEMPERATURE
        return v

    @field_validator("previous_layout", mode="before")
    @classmethod
    def _v_previous_layout(cls, v):
        return v if isinstance(v, dict) else None

    def description_with_style(self) -> str:
        if self.style:
            return f"{self.description} style:{self.style}"
        return self.description
