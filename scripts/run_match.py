from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from src.ai.quota import init_quota_guard
from src.cache.store import write_json_atomic
from src.config import EngineSettings
from src.normalize.coerce import profile_from_mapping, scholarship_from_mapping
from src.normalize.schema import ScholarshipRecord
from src.rank.explain import explain_scored, format_funding
from src.rank.pipeline import MatchResult, match_scholarships
from src.rank.stage3_rerank import AIReranker, build_reranker

logger = logging.getLogger("run_match")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rank scholarships for one student profile.")
    parser.add_argument("--profile", type=Path, required=True, help="Profile JSON object.")
    parser.add_argument(
        "--scholarships",
        type=Path,
        required=True,
        help="JSON list of scholarship records, or an object with a 'scholarships' list.",
    )
    parser.add_argument("--no-rerank", action="store_true", help="Skip the AI rerank pass.")
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Directory for rerank cache entries. Defaults to SCHOLARMATCH_CACHE_DIR or in-memory.",
    )
    parser.add_argument("--timeout-seconds", type=float, default=None)
    parser.add_argument(
        "--now",
        type=str,
        default=None,
        help="Reference time in ISO format. Defaults to current UTC time.",
    )
    parser.add_argument("--output", type=Path, default=None, help="Write JSON here instead of stdout.")
    return parser.parse_args(argv)


def _load_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def load_scholarships(path: Path) -> list[ScholarshipRecord]:
    payload = _load_json(path)
    if isinstance(payload, dict):
        payload = payload.get("scholarships", [])
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of scholarships in '{path}'.")

    records: list[ScholarshipRecord] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            logger.warning("Skipping scholarship entry %d: not an object.", index)
            continue
        records.append(scholarship_from_mapping(item))
    return records


def _coerce_now(value: str | None) -> datetime:
    if value is None:
        return datetime.now(tz=UTC)
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def build_report(result: MatchResult, reranker: AIReranker | None) -> dict[str, Any]:
    report = result.to_dict()
    for entry, item in zip(report["results"], result.ranked):
        entry["why"] = explain_scored(item)
        entry["funding"] = format_funding(item.record.tuition_covered, item.record.stipend)
    if reranker is not None:
        report["quota"] = reranker.quota_guard.usage().to_dict()
        if reranker.cache is not None:
            report["cache"] = reranker.cache.stats()
    return report


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        profile = profile_from_mapping(_load_json(args.profile))
        records = load_scholarships(args.scholarships)
        now = _coerce_now(args.now)
    except (OSError, ValueError, TypeError, AttributeError) as exc:
        logger.error("Could not load inputs: %s", exc)
        return 2

    settings = EngineSettings.from_env()
    if args.cache_dir is not None:
        settings = replace(settings, cache_dir=args.cache_dir)

    reranker: AIReranker | None = None
    if not args.no_rerank:
        quota_guard = init_quota_guard(settings)
        reranker = build_reranker(settings, quota_guard=quota_guard)

    result = match_scholarships(
        profile,
        records,
        now=now,
        reranker=reranker,
        timeout_seconds=args.timeout_seconds,
    )
    report = build_report(result, reranker)

    if args.output is not None:
        write_json_atomic(report, args.output)
        print(f"Wrote {len(result.ranked)} matches to {args.output}")
    else:
        print(json.dumps(report, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
