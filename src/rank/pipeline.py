from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

import pandas as pd

from src.normalize.schema import ScholarshipRecord, ScoredScholarship, UserProfile
from src.rank.stage1_eligibility import build_candidate_frame, score_eligibility
from src.rank.stage2_scoring import score_fit, sort_by_fit
from src.rank.stage3_rerank import (
    CANDIDATE_LIMIT,
    FALLBACK_NOT_CONFIGURED,
    FALLBACK_SERVICE_ERROR,
    FINAL_LIMIT,
    AIReranker,
    RerankOutcome,
    RerankResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MatchResult:
    ranked: list[ScoredScholarship]
    outcome: RerankOutcome
    fallback_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "fallback_reason": self.fallback_reason,
            "results": [item.to_dict() for item in self.ranked],
        }


def _float(value: Any, default: float = 0.0) -> float:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return default
    return default if pd.isna(numeric) else numeric


def row_to_scored(row: pd.Series) -> ScoredScholarship:
    reasons = row.get("reasons")
    return ScoredScholarship(
        record=row["record"],
        acceptance_score=_float(row.get("acceptance_score")),
        deadline_urgency=_float(row.get("deadline_urgency")),
        funding_strength=_float(row.get("funding_strength"), 0.5),
        fit_score=_float(row.get("fit_score")),
        boost=_float(row.get("boost")),
        reasons=tuple(reasons) if isinstance(reasons, (list, tuple)) else (),
    )


def score_candidates(
    profile: UserProfile,
    records: Sequence[ScholarshipRecord],
    *,
    now: datetime | None = None,
) -> pd.DataFrame:
    """Deterministic stages only: eligibility, then fit, ordered by fit."""
    frame = build_candidate_frame(records)
    eligible_df = score_eligibility(frame, profile)
    return sort_by_fit(score_fit(eligible_df, now))


def match_scholarships(
    profile: UserProfile,
    records: Sequence[ScholarshipRecord],
    *,
    now: datetime | None = None,
    reranker: AIReranker | None = None,
    cancel_event: threading.Event | None = None,
    timeout_seconds: float | None = None,
    final_limit: int = FINAL_LIMIT,
) -> MatchResult:
    scored_df = score_candidates(profile, records, now=now)
    candidates_df = scored_df.head(CANDIDATE_LIMIT)

    if reranker is None:
        result = RerankResult(RerankOutcome.MISS_FALLBACK, candidates_df, FALLBACK_NOT_CONFIGURED)
    else:
        try:
            result = reranker.rerank(
                profile,
                candidates_df,
                cancel_event=cancel_event,
                timeout_seconds=timeout_seconds,
            )
        except Exception:
            logger.exception("Reranker failed; returning deterministic fit ordering.")
            result = RerankResult(RerankOutcome.MISS_FALLBACK, candidates_df, FALLBACK_SERVICE_ERROR)

    ranked_df = result.ranked_df.head(final_limit)
    ranked = [row_to_scored(row) for _, row in ranked_df.iterrows()]
    logger.info(
        "Matched %d of %d scholarships (outcome=%s%s).",
        len(ranked),
        len(records),
        result.outcome.value,
        f", reason={result.fallback_reason}" if result.fallback_reason else "",
    )
    return MatchResult(ranked=ranked, outcome=result.outcome, fallback_reason=result.fallback_reason)
