from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Sequence

import numpy as np
import pandas as pd

from src.normalize.schema import (
    GPA_MIN,
    LANGUAGE,
    NATIONALITY,
    WORK_YEARS_MIN,
    ScholarshipRecord,
    UserProfile,
)
from src.rank.rules import rules_pass
from src.rank.weights import ACCEPTANCE_WEIGHTS, AcceptanceWeights

logger = logging.getLogger(__name__)

# Stand-in for a general conflict-rule system: only this one jurisdiction is penalized.
CONFLICT_JURISDICTION = "USA"

COMPONENT_COLUMNS = [
    "degree_match",
    "field_overlap",
    "nationality_pass",
    "work_years_pass",
    "gpa_pass",
    "language_pass",
    "conflict_penalties",
]
STAGE1_COLUMNS = [*COMPONENT_COLUMNS, "acceptance_score", "reasons"]

_REASON_BY_COMPONENT = {
    "degree_match": "DEGREE_LEVEL_MISMATCH",
    "field_overlap": "NO_FIELD_OVERLAP",
    "nationality_pass": "NATIONALITY_NOT_ALLOWED",
    "work_years_pass": "WORK_YEARS_BELOW_MIN",
    "gpa_pass": "GPA_BELOW_MIN",
    "language_pass": "LANGUAGE_CERT_MISSING",
}


def build_candidate_frame(records: Sequence[ScholarshipRecord]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "scholarship_id": [getattr(record, "scholarship_id", None) for record in records],
            "record": list(records),
            "input_order": np.arange(len(records), dtype=int),
        },
        columns=["scholarship_id", "record", "input_order"],
    )


def _normalized_profile(profile: UserProfile) -> UserProfile:
    """Replace missing set-valued profile fields with empty sets so each fails on its own."""
    return replace(
        profile,
        fields=frozenset(profile.fields or ()),
        special_statuses=frozenset(profile.special_statuses or ()),
        language_certifications=frozenset(profile.language_certifications or ()),
    )


def _conflict_penalties(record: ScholarshipRecord, profile: UserProfile) -> int:
    if record.country == CONFLICT_JURISDICTION and profile.nationality != CONFLICT_JURISDICTION:
        return 1
    return 0


def _record_components(record: ScholarshipRecord, profile: UserProfile) -> dict[str, int]:
    rules = tuple(record.eligibility_rules or ())
    degree_levels = frozenset(record.degree_levels or ())
    fields = frozenset(record.fields or ())
    return {
        "degree_match": int(bool(profile.degree_target) and profile.degree_target in degree_levels),
        "field_overlap": int(bool(fields.intersection(profile.fields))),
        "nationality_pass": int(rules_pass(rules, NATIONALITY, profile)),
        "work_years_pass": int(rules_pass(rules, WORK_YEARS_MIN, profile)),
        "gpa_pass": int(rules_pass(rules, GPA_MIN, profile)),
        "language_pass": int(rules_pass(rules, LANGUAGE, profile)),
        "conflict_penalties": _conflict_penalties(record, profile),
    }


def _acceptance_from_components(components: dict[str, int], weights: AcceptanceWeights) -> float:
    score = (
        weights.base
        + weights.degree * components["degree_match"]
        + weights.field * components["field_overlap"]
        + weights.nationality * components["nationality_pass"]
        + weights.work_years * components["work_years_pass"]
        + weights.gpa * components["gpa_pass"]
        + weights.language * components["language_pass"]
        - weights.conflict_penalty * components["conflict_penalties"]
    )
    return float(np.clip(score, 0.0, 1.0))


def _reasons(components: dict[str, int]) -> list[str]:
    reasons = [reason for column, reason in _REASON_BY_COMPONENT.items() if not components[column]]
    if components["conflict_penalties"]:
        reasons.append("JURISDICTION_CONFLICT")
    return reasons


def _score_record(record: Any, profile: UserProfile, weights: AcceptanceWeights) -> dict[str, Any]:
    try:
        components = _record_components(record, profile)
    except (AttributeError, TypeError, ValueError):
        logger.warning(
            "Malformed scholarship record %r scored as zero contribution.",
            getattr(record, "scholarship_id", None),
            exc_info=True,
        )
        components = {column: 0 for column in COMPONENT_COLUMNS}
        return {**components, "acceptance_score": 0.0, "reasons": ["MALFORMED_RECORD"]}

    return {
        **components,
        "acceptance_score": _acceptance_from_components(components, weights),
        "reasons": _reasons(components),
    }


def compute_acceptance_score(
    record: ScholarshipRecord,
    profile: UserProfile,
    *,
    weights: AcceptanceWeights | None = None,
) -> float:
    return _score_record(record, _normalized_profile(profile), weights or ACCEPTANCE_WEIGHTS)["acceptance_score"]


def score_eligibility(
    df: pd.DataFrame,
    profile: UserProfile,
    *,
    weights: AcceptanceWeights | None = None,
) -> pd.DataFrame:
    active_weights = weights or ACCEPTANCE_WEIGHTS
    scored_df = df.copy()

    clean_profile = _normalized_profile(profile)
    rows = [_score_record(record, clean_profile, active_weights) for record in scored_df["record"]]
    components_df = pd.DataFrame(rows, index=scored_df.index, columns=STAGE1_COLUMNS)
    for column in STAGE1_COLUMNS:
        scored_df[column] = components_df[column]

    scored_df["acceptance_score"] = scored_df["acceptance_score"].astype(float)
    return scored_df
