"""Command line entry points for offline diff, match and digest runs."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Sequence

from regsync.config import get_settings
from regsync.diffing import diff as compute_diff
from regsync.errors import RegSyncError
from regsync.matching import MatchDetector, extract_signals
from regsync.models import DiffResult, MatchDetectionResult, PolicyDigest, VersionOf
from regsync.services import build_digest
from regsync.storage import MetadataVersionStore, load_text

_MARKERS = {"added": "+", "removed": "-", "unchanged": " "}


def _diff_payload(result: DiffResult) -> dict[str, Any]:
    stats = asdict(result.stats)
    stats["total_changes"] = result.stats.total_changes
    return {"stats": stats, "lines": [asdict(line) for line in result.lines]}


def _match_payload(result: MatchDetectionResult, detector: MatchDetector) -> dict[str, Any]:
    classification = detector.classify(result)
    return {
        "classification": classification.kind,
        "target_document_id": classification.document_id if isinstance(classification, VersionOf) else None,
        "extracted_title": result.extracted_title,
        "extracted_doc_number": result.extracted_doc_number,
        "analysis_time_ms": result.analysis_time_ms,
        "matches": [
            {
                "document_id": match.document.id,
                "name": match.document.name,
                "score": round(match.score, 4),
                "confidence": match.confidence,
                "signals": [signal.describe() for signal in match.signals],
            }
            for match in result.matches
        ],
    }


def _digest_payload(digest: PolicyDigest) -> dict[str, Any]:
    payload = asdict(digest)
    payload["period"]["start"] = digest.period.start.date().isoformat()
    payload["period"]["end"] = digest.period.end.date().isoformat()
    return payload


def run_diff(old_path: Path, new_path: Path, *, as_json: bool = False) -> str:
    settings = get_settings()
    result = compute_diff(
        load_text(old_path, encoding=settings.text_encoding),
        load_text(new_path, encoding=settings.text_encoding),
        max_edit_distance=settings.diff_max_edit_distance,
    )
    if as_json:
        return json.dumps(_diff_payload(result), indent=2)
    body = [f"{_MARKERS[line.type]} {line.content}" for line in result.lines]
    stats = result.stats
    body.append(
        f"\n{stats.added_lines} added, {stats.removed_lines} removed, {stats.unchanged_lines} unchanged",
    )
    return "\n".join(body)


def run_match(upload_path: Path, *, policies_dir: Path | None = None, opr: str | None = None) -> str:
    settings = get_settings()
    store = MetadataVersionStore(policies_dir or settings.policies_dir, encoding=settings.text_encoding)
    detector = MatchDetector(settings.match_config())
    signals = extract_signals(load_text(upload_path, encoding=settings.text_encoding), upload_path.name, opr=opr)
    result = detector.detect(signals, store.library())
    return json.dumps(_match_payload(result, detector), indent=2)


def run_digest(
    period: str,
    *,
    year: int | None = None,
    number: int | None = None,
    policies_dir: Path | None = None,
) -> str:
    settings = get_settings()
    store = MetadataVersionStore(policies_dir or settings.policies_dir, encoding=settings.text_encoding)
    digest = build_digest(store.histories(), period, year, number, archive_months=settings.digest_archive_months)
    return json.dumps(_digest_payload(digest), indent=2, default=str)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="regsync", description="Policy lineage and version change analysis.")
    commands = parser.add_subparsers(dest="command", required=True)

    diff_parser = commands.add_parser("diff", help="Line diff between two document versions")
    diff_parser.add_argument("old", type=Path, help="Previous version (pdf, docx, txt or md)")
    diff_parser.add_argument("new", type=Path, help="New version (pdf, docx, txt or md)")
    diff_parser.add_argument("--json", action="store_true", help="Emit the diff as JSON")

    match_parser = commands.add_parser("match", help="Score an upload against the policy library")
    match_parser.add_argument("file", type=Path, help="Uploaded document")
    match_parser.add_argument("--policies-dir", type=Path, default=None, help="Directory holding metadata.json")
    match_parser.add_argument("--opr", type=str, default=None, help="OPR of the upload, if known")

    digest_parser = commands.add_parser("digest", help="New and updated policies for a week or month")
    digest_parser.add_argument("period", choices=("week", "month"))
    digest_parser.add_argument("--year", type=int, default=None)
    digest_parser.add_argument("--number", type=int, default=None, help="ISO week or month number")
    digest_parser.add_argument("--policies-dir", type=Path, default=None, help="Directory holding metadata.json")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        if args.command == "diff":
            output = run_diff(args.old, args.new, as_json=args.json)
        elif args.command == "match":
            output = run_match(args.file, policies_dir=args.policies_dir, opr=args.opr)
        else:
            output = run_digest(args.period, year=args.year, number=args.number, policies_dir=args.policies_dir)
    except RegSyncError as exc:
        print(f"regsync: {exc}", file=sys.stderr)
        return 1
    print(output)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
