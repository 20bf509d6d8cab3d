"""Diagnostics contracts and sink implementations."""

from __future__ import annotations

import json
import os
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Any, Iterable, Protocol


class Severity(IntEnum):
    INFO = 0
    WARN = 1
    ERROR = 2
    FATAL = 3


SEVERITY_LABELS: dict[int, str] = {
    int(Severity.INFO): "info",
    int(Severity.WARN): "warn",
    int(Severity.ERROR): "error",
    int(Severity.FATAL): "fatal",
}
SEVERITY_MIN = int(Severity.INFO)
SEVERITY_MAX = int(Severity.FATAL)
VALID_SEVERITIES = frozenset(SEVERITY_LABELS.keys())

VALID_STAGES = frozenset({"extract", "normalize", "sanitize", "pipeline"})
VALID_SOURCES = frozenset({"llm", "legacy", "manifest", "fallback", "computed"})
VALID_COMPONENTS = frozenset({"extractor", "normalizer", "sanitizer", "orchestrator"})
DEFAULT_STAGE = "pipeline"
DEFAULT_SOURCE = "computed"
DEFAULT_COMPONENT = "orchestrator"

DIAG_JSONL_ENV = "ROOMGEN_DIAG_JSONL"


def utc_now_iso() -> str:
    """Return UTC timestamp in stable ISO-8601 format."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Event:
    """Unified diagnostics event schema."""

    ts: str
    run_id: str
    stage: str
    component: str
    code: str
    severity: int
    path: str
    source: str
    input_value: Any
    resolved_value: Any
    reason: str
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _canon_vocab(value: Any, allowed: frozenset[str], default: str) -> tuple[str, bool]:
    candidate = value.strip().lower() if isinstance(value, str) else ""
    if candidate in allowed:
        return candidate, False
    return default, True


def make_event(
    *,
    run_id: str = "",
    stage: str,
    component: str,
    code: str,
    severity: int = 0,
    path: str = "",
    source: str = "",
    input_value: Any = None,
    resolved_value: Any = None,
    reason: str = "",
    meta: dict[str, Any] | None = None,
    ts: str = "",
) -> Event:
    if not ts:
        ts = utc_now_iso()
    stage_value, stage_normalized = _canon_vocab(stage, VALID_STAGES, DEFAULT_STAGE)
    component_value, component_normalized = _canon_vocab(component, VALID_COMPONENTS, DEFAULT_COMPONENT)
    source_value, source_normalized = _canon_vocab(source, VALID_SOURCES, DEFAULT_SOURCE)
    try:
        severity_value = int(severity)
    except (TypeError, ValueError):
        severity_value = int(Severity.INFO)
    meta_value = dict(meta) if isinstance(meta, dict) else {}
    normalized_from: dict[str, Any] = {}
    if stage_normalized:
        normalized_from["stage"] = stage
    if component_normalized:
        normalized_from["component"] = component
    if source_normalized and source:
        normalized_from["source"] = source
    if normalized_from:
        existing_normalized = meta_value.get("normalized_from")
        if isinstance(existing_normalized, dict):
            merged_normalized = dict(normalized_from)
            merged_normalized.update(existing_normalized)
            meta_value["normalized_from"] = merged_normalized
        else:
            meta_value["normalized_from"] = normalized_from
        if not reason:
            reason = "normalized diagnostics vocabulary"
    return Event(
        ts=ts,
        run_id=run_id,
        stage=stage_value,
        component=component_value,
        code=code,
        severity=max(SEVERITY_MIN, min(SEVERITY_MAX, severity_value)),
        path=path,
        source=source_value,
        input_value=input_value,
        resolved_value=resolved_value,
        reason=reason,
        meta=meta_value,
    )


class DiagnosticsSink(Protocol):
    """Sink interface for structured diagnostics events."""

    def emit(self, event: Event) -> None:
        """Publish one diagnostics event."""


def _with_run_id(event: Event, run_id: str) -> Event:
    if event.run_id or not run_id:
        return event
    return make_event(
        ts=event.ts,
        run_id=run_id,
        stage=event.stage,
        component=event.component,
        code=event.code,
        severity=event.severity,
        path=event.path,
        source=event.source,
        input_value=event.input_value,
        resolved_value=event.resolved_value,
        reason=event.reason,
        meta=event.meta,
    )


class NoopDiagnosticsSink:
    """Default diagnostics sink that drops all events."""

    def emit(self, event: Event) -> None:
        del event


class ListDiagnosticsSink:
    """Collect events in memory; used by stages and tests."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def codes(self) -> list[str]:
        return [event.code for event in self.events]


class JsonlDiagnosticsSink:
    """Append diagnostics events to a JSONL file."""

    def __init__(self, path: str) -> None:
        self._path = Path(path)

    def emit(self, event: Event) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(event.to_dict(), ensure_ascii=False, sort_keys=True, default=str)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(f"{line}\n")


def diag_sink_from_env() -> DiagnosticsSink:
    # Diagnostics are opt-in: JSONL sink only when ROOMGEN_DIAG_JSONL is set.
    path = os.environ.get(DIAG_JSONL_ENV, "")
    if isinstance(path, str) and path.strip():
        return JsonlDiagnosticsSink(path.strip())
    return NoopDiagnosticsSink()


def forward_events(sink: DiagnosticsSink, events: Iterable[Event], run_id: str = "") -> None:
    """Re-publish stage events to another sink, stamping the run id."""
    for event in events:
        sink.emit(_with_run_id(event, run_id))


def build_diagnostics_summary(events: Iterable[Event]) -> dict[str, Any]:
    events_list = list(events)
    by_stage = Counter(event.stage for event in events_list)
    by_code = Counter(event.code for event in events_list)
    by_severity = Counter(
        SEVERITY_LABELS.get(int(event.severity), str(event.severity)) for event in events_list
    )
    return {
        "total": len(events_list),
        "by_stage": dict(sorted(by_stage.items())),
        "by_code": dict(sorted(by_code.items())),
        "by_severity": dict(sorted(by_severity.items())),
    }
