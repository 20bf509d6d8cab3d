"""Asset manifest (models.json) access.

The manifest is a read-only snapshot passed into each pipeline run; nothing
here caches it at module level.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from src.schema import AssetManifestEntry

Manifest = Mapping[str, AssetManifestEntry]


def parse_manifest(raw: Mapping[str, Any]) -> dict[str, AssetManifestEntry]:
    """Validate a decoded models.json mapping into manifest entries."""
    if not isinstance(raw, Mapping):
        raise ValueError(f"Expected manifest object, got {type(raw).__name__}")
    return {str(key): AssetManifestEntry.model_validate(value) for key, value in raw.items()}


def load_manifest(path: str | os.PathLike[str]) -> dict[str, AssetManifestEntry]:
    """Load and validate models.json from path."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Expected JSON object in {path}, got {type(data).__name__}")
    return parse_manifest(data)


def find_key_by_path(manifest: Manifest, path: str) -> Optional[str]:
    # First match in manifest order wins when two keys share a path.
    for key, entry in manifest.items():
        if entry.path == path:
            return key
    return None
