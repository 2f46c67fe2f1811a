from __future__ import annotations

import logging
import math
from datetime import UTC, date, datetime, time

import numpy as np
import pandas as pd

from src.normalize.schema import ROLLING_DEADLINE, ScholarshipRecord
from src.rank.weights import FIT_WEIGHTS, FitWeights

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0
URGENCY_BANDS: tuple[tuple[int, float], ...] = ((30, 1.0), (60, 0.7), (120, 0.4))
URGENCY_FLOOR = 0.1


def _deadline_as_datetime(deadline: date | datetime) -> datetime:
    if isinstance(deadline, datetime):
        return deadline if deadline.tzinfo is not None else deadline.replace(tzinfo=UTC)
    return datetime.combine(deadline, time.min, tzinfo=UTC)


def days_remaining(deadline: date | datetime, now: datetime) -> int:
    delta = _deadline_as_datetime(deadline) - now
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def compute_deadline_urgency(record: ScholarshipRecord, now: datetime) -> float:
    deadline = record.deadline
    if deadline == ROLLING_DEADLINE or not isinstance(deadline, (date, datetime)):
        return 0.0

    remaining = days_remaining(deadline, now)
    for max_days, urgency in URGENCY_BANDS:
        if remaining <= max_days:
            return urgency
    return URGENCY_FLOOR


def compute_funding_strength(record: ScholarshipRecord) -> float:
    tuition = bool(record.tuition_covered)
    stipend = record.stipend is not None and record.stipend > 0
    if tuition and stipend:
        return 1.0
    if tuition or stipend:
        return 0.8
    return 0.5


def compose_fit_score(
    acceptance: np.ndarray,
    funding: np.ndarray,
    urgency: np.ndarray,
    weights: FitWeights | None = None,
) -> np.ndarray:
    active_weights = weights or FIT_WEIGHTS
    return (
        (active_weights.acceptance * acceptance)
        + (active_weights.funding * funding)
        + (active_weights.urgency * urgency)
    )


def _safe_signal(record: ScholarshipRecord, now: datetime, *, urgency: bool) -> float:
    try:
        if urgency:
            return compute_deadline_urgency(record, now)
        return compute_funding_strength(record)
    except (AttributeError, TypeError, ValueError):
        logger.warning(
            "Malformed %s inputs on scholarship %r; using the lowest signal.",
            "deadline" if urgency else "funding",
            getattr(record, "scholarship_id", None),
        )
        return 0.0 if urgency else 0.5


def score_fit(
    eligible_df: pd.DataFrame,
    now: datetime | None = None,
    *,
    weights: FitWeights | None = None,
) -> pd.DataFrame:
    effective_now = now or datetime.now(tz=UTC)
    if effective_now.tzinfo is None:
        effective_now = effective_now.replace(tzinfo=UTC)

    if "acceptance_score" not in eligible_df.columns:
        raise ValueError("Fit scoring requires an 'acceptance_score' column.")

    scored_df = eligible_df.copy()
    records = scored_df["record"].tolist()

    urgency = np.array([_safe_signal(r, effective_now, urgency=True) for r in records], dtype=float)
    funding = np.array([_safe_signal(r, effective_now, urgency=False) for r in records], dtype=float)
    acceptance = pd.to_numeric(scored_df["acceptance_score"], errors="coerce").fillna(0.0).to_numpy()

    scored_df["deadline_urgency"] = urgency
    scored_df["funding_strength"] = funding
    scored_df["fit_score"] = compose_fit_score(acceptance, funding, urgency, weights)
    scored_df["boost"] = 0.0
    return scored_df


def sort_by_fit(scored_df: pd.DataFrame, score_column: str = "fit_score") -> pd.DataFrame:
    """Descending score; ties keep their original input order."""
    return scored_df.sort_values(
        by=[score_column, "input_order"],
        ascending=[False, True],
        kind="mergesort",
    ).reset_index(drop=True)
