"""Run the layout pipeline on a saved model response.

Usage:
  python tools/run_layout.py path/to/raw_response.txt --manifest data/examples/models.json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pydantic import ValidationError  # noqa: E402

from src.catalog.manifest import load_manifest  # noqa: E402
from src.diagnostics import ListDiagnosticsSink, build_diagnostics_summary  # noqa: E402
from src.pipeline.extract import UnparsableOutput  # noqa: E402
from src.pipeline.run import run  # noqa: E402
from src.schema import SanitizeOptions, default_options  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recover and sanitize a room layout from raw model text.")
    parser.add_argument("raw", type=str, help="file with the raw model response")
    parser.add_argument("--manifest", type=str, default="", help="models.json asset manifest")
    parser.add_argument("--snap", type=float, default=None, help="grid increment in meters")
    parser.add_argument("--inherit-size", action="store_true", help="fill missing sizes from the manifest")
    parser.add_argument("--out", type=str, default="", help="write the result JSON here")
    parser.add_argument("--diag", action="store_true", help="include a diagnostics summary")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        raw = Path(args.raw).read_text(encoding="utf-8")
        manifest = load_manifest(args.manifest) if args.manifest else {}
        options = default_options() if args.snap is None else SanitizeOptions(snap_increment=args.snap)
    except (OSError, ValueError, ValidationError) as exc:
        print(f"RUN_LAYOUT_ERROR:{exc}", file=sys.stderr)
        return 2

    sink = ListDiagnosticsSink()
    try:
        layout = run(raw, manifest, options, diag=sink, inherit_size=args.inherit_size)
        payload = {"ok": True, "data": layout.to_wire()}
        exit_code = 0
    except UnparsableOutput as exc:
        payload = {"ok": False, "error": "Unable to parse layout JSON", "excerpt": exc.excerpt}
        exit_code = 1
    if args.diag:
        payload["diagnostics_summary"] = build_diagnostics_summary(sink.events)

    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text + "\n", encoding="utf-8")
    print(text)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
