"""Raw model text -> sanitized LayoutResult."""

from __future__ import annotations

import uuid
from typing import Mapping

from src.diagnostics import (
    DiagnosticsSink,
    ListDiagnosticsSink,
    Severity,
    diag_sink_from_env,
    forward_events,
    make_event,
)
from src.pipeline.extract import extract
from src.pipeline.normalize import normalize
from src.pipeline.sanitize import sanitize
from src.schema import AssetManifestEntry, LayoutResult, SanitizeOptions, default_options


def run(
    raw: str,
    manifest: Mapping[str, AssetManifestEntry],
    options: SanitizeOptions | None = None,
    *,
    diag: DiagnosticsSink | None = None,
    run_id: str | None = None,
    assets_root: str | None = None,
    inherit_size: bool = False,
) -> LayoutResult:
    """Run extract -> normalize -> sanitize.

    Only UnparsableOutput can escape, and it is re-raised unchanged; the
    normalize and sanitize stages are total. Each call is independent and
    holds no shared state, so concurrent calls need no coordination.
    """
    options = options if options is not None else default_options()
    sink = diag if diag is not None else diag_sink_from_env()
    run_id = run_id or uuid.uuid4().hex
    stage_events = ListDiagnosticsSink()

    sink.emit(
        make_event(
            run_id=run_id,
            stage="pipeline",
            component="orchestrator",
            code="PIPELINE_START",
            severity=Severity.INFO,
            reason="layout pipeline start",
            resolved_value={
                "raw_chars": len(raw) if isinstance(raw, str) else None,
                "manifest_size": len(manifest),
                "snap_increment": options.snap_increment,
            },
        )
    )
    try:
        parsed = extract(raw, stage_events)
    finally:
        forward_events(sink, stage_events.events, run_id)
        stage_events.events.clear()

    layout = normalize(
        parsed,
        manifest,
        options.room_fallback,
        assets_root=assets_root,
        inherit_size=inherit_size,
        diag=stage_events,
    )
    clean = sanitize(layout, options, diag=stage_events)
    forward_events(sink, stage_events.events, run_id)

    sink.emit(
        make_event(
            run_id=run_id,
            stage="pipeline",
            component="orchestrator",
            code="PIPELINE_DONE",
            severity=Severity.INFO,
            reason="layout pipeline done",
            resolved_value={
                "objects_count": len(clean.objects),
                "has_rationale": clean.rationale is not None,
            },
        )
    )
    return clean
