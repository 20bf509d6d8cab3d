"""Recover a JSON value from raw generative-model text.

Strategies are tried in decreasing order of confidence:

1. the whole text is JSON;
2. the first fenced code block (```json ... ``` or bare ```);
3. the greedy span from the first ``{`` to the last ``}``.

The third strategy is not bracket aware, so prose that itself contains braces
around the JSON can produce a false capture. That span is parsed as-is.
"""

from __future__ import annotations

import json
import re
from typing import Any
from typing_extensions import Literal

from src.diagnostics import DiagnosticsSink, NoopDiagnosticsSink, Severity, make_event
from src.schema import RAW_EXCERPT_LIMIT


_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_BRACE_RE = re.compile(r"\{[\s\S]*\}")

ExtractStrategy = Literal["direct", "fence", "brace"]


class UnparsableOutput(ValueError):
    """No extraction strategy produced valid JSON."""

    def __init__(self, excerpt: str) -> None:
        self.excerpt = excerpt
        super().__init__(f"Unable to parse layout JSON. Snippet: {excerpt}")


def make_excerpt(raw: Any, limit: int = RAW_EXCERPT_LIMIT) -> str:
    text = raw if isinstance(raw, str) else repr(raw)
    excerpt = text[: max(1, int(limit))]
    return excerpt if excerpt else "<empty>"


def _emit_failed(diag: DiagnosticsSink, code: str, reason: str, error: Exception) -> None:
    diag.emit(
        make_event(
            stage="extract",
            component="extractor",
            code=code,
            severity=Severity.WARN,
            source="llm",
            reason=reason,
            meta={"error": str(error)},
        )
    )


def extract_with_strategy(raw: str, diag: DiagnosticsSink | None = None) -> tuple[Any, ExtractStrategy]:
    """Return (value, strategy) where strategy is "direct", "fence" or "brace"."""
    diag = diag if diag is not None else NoopDiagnosticsSink()
    if not isinstance(raw, str):
        raise UnparsableOutput(make_excerpt(raw))

    try:
        return json.loads(raw), "direct"
    except (ValueError, RecursionError) as exc:
        _emit_failed(diag, "EXTRACT_DIRECT_FAILED", "direct JSON parse failed; trying fenced block", exc)

    fence = _FENCE_RE.search(raw)
    if fence and fence.group(1):
        try:
            return json.loads(fence.group(1)), "fence"
        except (ValueError, RecursionError) as exc:
            _emit_failed(diag, "EXTRACT_FENCE_FAILED", "fenced JSON parse failed; trying brace span", exc)

    match = _BRACE_RE.search(raw)
    if match:
        try:
            return json.loads(match.group(0)), "brace"
        except (ValueError, RecursionError) as exc:
            _emit_failed(diag, "EXTRACT_BRACE_FAILED", "brace span parse failed; giving up", exc)

    raise UnparsableOutput(make_excerpt(raw))


def extract(raw: str, diag: DiagnosticsSink | None = None) -> Any:
    diag = diag if diag is not None else NoopDiagnosticsSink()
    value, strategy = extract_with_strategy(raw, diag)
    diag.emit(
        make_event(
            stage="extract",
            component="extractor",
            code="EXTRACT_OK",
            severity=Severity.INFO,
            source="llm",
            reason=f"parsed via {strategy} strategy",
            meta={"strategy": strategy, "raw_chars": len(raw)},
        )
    )
    return value
