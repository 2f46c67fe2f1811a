from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Iterable, Mapping

from src.normalize.canonical_id import generate_scholarship_id
from src.normalize.schema import (
    GPA_MIN,
    LANGUAGE,
    NATIONALITY,
    ROLLING_DEADLINE,
    WORK_YEARS_MIN,
    Deadline,
    EligibilityRule,
    GpaRule,
    LanguageRule,
    NationalityRule,
    ScholarshipRecord,
    UnknownRule,
    UserProfile,
    WorkYearsRule,
)

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def _pick(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in mapping and mapping[key] is not None:
            return mapping[key]
    return None


def _normalize_text(value: Any) -> str | None:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def _as_str_set(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        normalized = _normalize_text(value)
        return frozenset([normalized]) if normalized else frozenset()
    if isinstance(value, Iterable):
        return frozenset(item for item in (_normalize_text(v) for v in value) if item)
    return frozenset()


def _coerce_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric):
        return None
    return numeric


def parse_work_years(value: Any) -> float:
    """Accept a number or a band such as "2-3" / "4+"; bands resolve to their lower bound."""
    numeric = _coerce_float(value)
    if numeric is not None:
        return max(numeric, 0.0)
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if match:
            return float(match.group(1))
    return 0.0


def parse_deadline(value: Any) -> Deadline:
    if value is None:
        return ROLLING_DEADLINE
    if isinstance(value, (date, datetime)):
        return value

    cleaned = str(value).strip()
    if not cleaned or cleaned.lower() == ROLLING_DEADLINE:
        return ROLLING_DEADLINE

    candidate = cleaned.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        logger.warning("Unparsable deadline %r treated as rolling.", cleaned)
        return ROLLING_DEADLINE
    if len(cleaned) == 10:
        return parsed.date()
    return parsed


def rule_from_mapping(payload: Mapping[str, Any]) -> EligibilityRule:
    kind = str(_pick(payload, "rule", "kind") or "").strip()
    extras = tuple(sorted((key, value) for key, value in payload.items() if key not in {"rule", "kind"}))

    if kind == NATIONALITY and payload.get("allowed") is not None:
        return NationalityRule(allowed=tuple(sorted(_as_str_set(payload.get("allowed")))))
    if kind == WORK_YEARS_MIN:
        value = _coerce_float(payload.get("value"))
        if value is not None:
            return WorkYearsRule(value=value)
    if kind == GPA_MIN:
        value = _coerce_float(payload.get("value"))
        if value is not None:
            return GpaRule(value=value)
    if kind == LANGUAGE and payload.get("values") is not None:
        return LanguageRule(
            values=tuple(sorted(_as_str_set(payload.get("values")))),
            optional=bool(payload.get("optional", False)),
        )

    return UnknownRule(kind=kind or "unknown", payload=extras)


def scholarship_from_mapping(payload: Mapping[str, Any]) -> ScholarshipRecord:
    name = _normalize_text(_pick(payload, "name", "title")) or ""
    country = _normalize_text(payload.get("country"))
    source_url = _normalize_text(_pick(payload, "source_url", "sourceUrl", "link"))
    deadline = parse_deadline(payload.get("deadline"))

    scholarship_id = _normalize_text(_pick(payload, "scholarship_id", "id"))
    if scholarship_id is None:
        scholarship_id = generate_scholarship_id(
            name=name,
            country=country,
            deadline=deadline,
            source_url=source_url,
        )

    raw_rules = _pick(payload, "eligibility_rules", "eligibilityRules") or []
    rules = tuple(rule_from_mapping(rule) for rule in raw_rules if isinstance(rule, Mapping))

    return ScholarshipRecord(
        scholarship_id=scholarship_id,
        name=name,
        country=country,
        degree_levels=_as_str_set(_pick(payload, "degree_levels", "degreeLevels")),
        fields=_as_str_set(payload.get("fields")),
        deadline=deadline,
        tuition_covered=bool(_pick(payload, "tuition_covered", "tuitionCovered")),
        stipend=_coerce_float(payload.get("stipend")),
        eligibility_summary=_normalize_text(_pick(payload, "eligibility_summary", "eligibilityText")),
        eligibility_rules=rules,
        source_url=source_url,
    )


def profile_from_mapping(payload: Mapping[str, Any]) -> UserProfile:
    return UserProfile(
        nationality=_normalize_text(payload.get("nationality")),
        degree_target=_normalize_text(_pick(payload, "degree_target", "degreeTarget")),
        fields=_as_str_set(payload.get("fields")),
        gpa_band=_normalize_text(_pick(payload, "gpa_band", "gpaBand")),
        work_years=parse_work_years(_pick(payload, "work_years", "workYears", "workResearchYears")),
        special_statuses=_as_str_set(_pick(payload, "special_statuses", "specialStatuses")),
        language_certifications=_as_str_set(
            _pick(payload, "language_certifications", "languageProofs")
        ),
        deadline_window=_normalize_text(_pick(payload, "deadline_window", "deadlineWindow")),
    )
