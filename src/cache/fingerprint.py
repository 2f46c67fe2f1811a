from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable

from src.normalize.schema import UserProfile

FINGERPRINT_VERSION = "v1"


def _sorted_list(values: Iterable[str] | None) -> list[str]:
    return sorted(str(value) for value in (values or ()))


def profile_ranking_fields(profile: UserProfile) -> dict[str, Any]:
    """Profile fields that influence ranking, with sets rendered as sorted lists."""
    return {
        "nationality": profile.nationality,
        "degree_target": profile.degree_target,
        "fields": _sorted_list(profile.fields),
        "gpa_band": profile.gpa_band,
        "work_years": float(profile.work_years or 0.0),
        "special_statuses": _sorted_list(profile.special_statuses),
        "language_certifications": _sorted_list(profile.language_certifications),
        "deadline_window": profile.deadline_window,
    }


def compute_fingerprint(profile: UserProfile, candidate_ids: Iterable[str]) -> str:
    payload = {
        "version": FINGERPRINT_VERSION,
        "profile": profile_ranking_fields(profile),
        "candidates": sorted({str(candidate_id) for candidate_id in candidate_ids}),
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
