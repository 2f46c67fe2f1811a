from __future__ import annotations

import math
from typing import Any

from src.normalize.schema import ScoredScholarship

_DEADLINE_SOON_URGENCY = 0.7


def format_funding(tuition_covered: bool, stipend: Any) -> str:
    stipend_value = _coerce_amount(stipend)
    if tuition_covered and stipend_value:
        return f"Tuition + ${stipend_value:,.0f} stipend"
    if tuition_covered:
        return "Tuition covered"
    if stipend_value:
        return f"${stipend_value:,.0f} stipend"
    return "Partial or unspecified"


def explain_scored(item: ScoredScholarship, *, max_signals: int = 3) -> list[str]:
    reasons = set(item.reasons)
    if "MALFORMED_RECORD" in reasons:
        return ["Listing could not be fully evaluated"]

    signal_scores = [
        (float(item.boost), "Boosted by AI review of your profile"),
        (float(item.funding_strength) if item.funding_strength >= 1.0 else 0.0, "Fully funded"),
        (
            float(item.deadline_urgency) if item.deadline_urgency >= _DEADLINE_SOON_URGENCY else 0.0,
            "Deadline soon",
        ),
    ]
    if not reasons.intersection({"DEGREE_LEVEL_MISMATCH", "NO_FIELD_OVERLAP"}):
        signal_scores.append((0.9, "Matches your degree and field"))
    elif "NO_FIELD_OVERLAP" not in reasons:
        signal_scores.append((0.5, "Matches your field of study"))
    if not reasons.intersection({"NATIONALITY_NOT_ALLOWED", "JURISDICTION_CONFLICT"}):
        signal_scores.append((0.3, "Open to your nationality"))

    ranked = [label for score, label in sorted(signal_scores, key=lambda pair: pair[0], reverse=True) if score > 0]
    if not ranked:
        return ["Balanced profile fit after scoring"]
    return ranked[:max_signals]


def _coerce_amount(value: Any) -> float | None:
    if value is None:
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric) or numeric <= 0:
        return None
    return numeric
