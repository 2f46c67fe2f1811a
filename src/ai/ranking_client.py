from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Sequence

import requests

from src.ai.http import JsonHttpClient
from src.cache.fingerprint import profile_ranking_fields
from src.config import DEFAULT_AI_ENDPOINT, DEFAULT_AI_MODEL, DEFAULT_AI_TIMEOUT_SECONDS
from src.normalize.schema import ROLLING_DEADLINE, ScholarshipRecord, UserProfile

logger = logging.getLogger(__name__)

PROMPT_INSTRUCTIONS = (
    "You rank scholarships for one applicant. For each candidate, return a small "
    "score adjustment between -0.2 and 0.2 reflecting how well it suits the profile. "
    'Respond with JSON only: {"rankedBoosts": [{"id": "<candidate id>", "boost": <number>}]}.'
)


class RankingServiceError(RuntimeError):
    """The external ranking service was unreachable or returned an error status."""


class RankingResponseError(RankingServiceError):
    """The ranking service answered, but not in the expected shape."""


def _deadline_label(deadline: Any) -> str:
    if isinstance(deadline, datetime):
        return deadline.date().isoformat()
    if isinstance(deadline, date):
        return deadline.isoformat()
    return ROLLING_DEADLINE


def build_profile_summary(profile: UserProfile) -> dict[str, Any]:
    """Ranking-relevant profile fields only; nothing identifying leaves the process."""
    return profile_ranking_fields(profile)


def build_candidate_payload(record: ScholarshipRecord) -> dict[str, Any]:
    stipend_present = record.has_stipend
    return {
        "id": record.scholarship_id,
        "name": record.name,
        "degree_levels": sorted(record.degree_levels),
        "fields": sorted(record.fields),
        "tuition_covered": bool(record.tuition_covered),
        "has_stipend": stipend_present,
        "fully_funded": bool(record.tuition_covered) and stipend_present,
        "eligibility_rules": [rule.to_dict() for rule in record.eligibility_rules],
        "deadline": _deadline_label(record.deadline),
        "link": record.source_url,
    }


def build_prompt(profile_summary: dict[str, Any], candidates: Sequence[dict[str, Any]]) -> str:
    return (
        f"{PROMPT_INSTRUCTIONS}\n\n"
        f"PROFILE:\n{json.dumps(profile_summary, indent=2, sort_keys=True)}\n\n"
        f"CANDIDATES:\n{json.dumps(list(candidates), indent=2)}\n"
    )


def _extract_text(data: Any) -> str:
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise RankingResponseError("Ranking response has no candidate text.") from exc
    if not isinstance(text, str):
        raise RankingResponseError("Ranking response text is not a string.")
    return text


def parse_ranked_boosts(text: str) -> dict[str, float]:
    """Parse `{"rankedBoosts": [{"id", "boost"}]}` (or the bare list) into id -> boost."""
    try:
        parsed = json.loads(text)
    except ValueError as exc:
        raise RankingResponseError("Ranking response text is not valid JSON.") from exc

    items = parsed.get("rankedBoosts") if isinstance(parsed, dict) else parsed
    if not isinstance(items, list):
        raise RankingResponseError("Ranking response has no 'rankedBoosts' list.")

    boosts: dict[str, float] = {}
    for item in items:
        if not isinstance(item, dict):
            raise RankingResponseError("Ranked boost entries must be objects.")
        candidate_id = item.get("id")
        boost = item.get("boost")
        if not isinstance(candidate_id, str):
            raise RankingResponseError("Ranked boost id must be a string.")
        if isinstance(boost, bool) or not isinstance(boost, (int, float)) or not math.isfinite(boost):
            raise RankingResponseError(f"Ranked boost for '{candidate_id}' must be a finite number.")
        boosts[candidate_id] = float(boost)
    return boosts


@dataclass(slots=True)
class GenerativeRankingClient:
    """Client for a `generateContent`-style endpoint that returns JSON boosts."""

    api_key: str = field(repr=False)
    model: str = DEFAULT_AI_MODEL
    endpoint: str = DEFAULT_AI_ENDPOINT
    timeout_seconds: float = DEFAULT_AI_TIMEOUT_SECONDS
    http: JsonHttpClient | None = None
    _http: JsonHttpClient = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("Ranking client requires an API key.")
        self._http = self.http or JsonHttpClient(timeout_seconds=self.timeout_seconds)

    @property
    def url(self) -> str:
        return f"{self.endpoint.rstrip('/')}/{self.model}:generateContent"

    def close(self) -> None:
        self._http.close()

    def rank(
        self,
        profile_summary: dict[str, Any],
        candidates: Sequence[dict[str, Any]],
        *,
        timeout_seconds: float | None = None,
    ) -> dict[str, float]:
        """Request boosts for `candidates`; `timeout_seconds` bounds this single HTTP call."""
        body = {
            "contents": [{"role": "user", "parts": [{"text": build_prompt(profile_summary, candidates)}]}],
            "generationConfig": {"response_mime_type": "application/json"},
        }
        try:
            data = self._http.post_json(
                self.url,
                body,
                params={"key": self.api_key},
                timeout_seconds=timeout_seconds,
            )
        except requests.RequestException as exc:
            # The exception text can echo the keyed URL, so only the type is kept.
            raise RankingServiceError(f"Ranking service request failed ({type(exc).__name__}).") from None
        except ValueError as exc:
            raise RankingResponseError("Ranking service returned a non-JSON body.") from exc

        boosts = parse_ranked_boosts(_extract_text(data))
        logger.info("Ranking service returned %d boosts for %d candidates.", len(boosts), len(candidates))
        return boosts
