from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Sequence

import numpy as np
import pandas as pd

from src.ai.quota import QuotaGuard, get_quota_guard
from src.ai.ranking_client import (
    GenerativeRankingClient,
    RankingServiceError,
    build_candidate_payload,
    build_profile_summary,
)
from src.cache.fingerprint import compute_fingerprint
from src.cache.rerank_cache import RerankCache
from src.cache.store import InMemoryStore, JsonDirectoryStore
from src.config import DEFAULT_AI_TIMEOUT_SECONDS, EngineSettings
from src.normalize.schema import UserProfile
from src.rank.stage2_scoring import sort_by_fit

logger = logging.getLogger(__name__)

CANDIDATE_LIMIT = 100
FINAL_LIMIT = 25
_WAIT_POLL_SECONDS = 0.1

FALLBACK_QUOTA_EXCEEDED = "quota_exceeded"
FALLBACK_SERVICE_ERROR = "service_error"
FALLBACK_TIMEOUT = "timeout"
FALLBACK_CANCELLED = "cancelled"
FALLBACK_NOT_CONFIGURED = "not_configured"
FALLBACK_NO_CANDIDATES = "no_candidates"

CACHED_SCORE_COLUMNS = [
    "acceptance_score",
    "deadline_urgency",
    "funding_strength",
    "fit_score",
    "boost",
]


class RerankOutcome(str, Enum):
    CACHE_HIT = "cache_hit"
    MISS_FALLBACK = "miss_fallback"
    MISS_SUCCESS = "miss_success"


@dataclass(frozen=True, slots=True)
class RerankResult:
    outcome: RerankOutcome
    ranked_df: pd.DataFrame
    fallback_reason: str | None = None


class RankingClient(Protocol):
    def rank(
        self,
        profile_summary: dict[str, Any],
        candidates: Sequence[dict[str, Any]],
        *,
        timeout_seconds: float | None = None,
    ) -> dict[str, float]:
        ...


class _RerankTimeout(Exception):
    pass


class _RerankCancelled(Exception):
    pass


def apply_boosts(candidates_df: pd.DataFrame, boosts: dict[str, float]) -> pd.DataFrame:
    """Add each candidate's boost to its fit score and re-sort; unlisted ids get 0."""
    boosted_df = candidates_df.copy()
    boost_values = boosted_df["scholarship_id"].map(boosts).fillna(0.0).astype(float)
    base_fit = pd.to_numeric(boosted_df["fit_score"], errors="coerce").fillna(0.0)
    boosted_df["boost"] = boost_values.to_numpy()
    boosted_df["fit_score"] = (base_fit + boost_values).to_numpy()
    return sort_by_fit(boosted_df)


def serialize_ranked(ranked_df: pd.DataFrame) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for _, row in ranked_df.iterrows():
        entry = {"scholarship_id": str(row["scholarship_id"])}
        for column in CACHED_SCORE_COLUMNS:
            entry[column] = float(row.get(column, 0.0) or 0.0)
        rows.append(entry)
    return rows


def restore_ranked(cached_rows: list[dict[str, Any]], candidates_df: pd.DataFrame) -> pd.DataFrame | None:
    """Rebuild a ranked frame from cached scores joined back onto the request's records.

    Returns None when a cached id is not among the candidates, which callers
    treat as a miss.
    """
    by_id = candidates_df.drop_duplicates(subset="scholarship_id").set_index("scholarship_id", drop=False)
    restored_rows: list[pd.Series] = []
    try:
        for cached in cached_rows:
            scholarship_id = cached["scholarship_id"]
            if scholarship_id not in by_id.index:
                return None
            row = by_id.loc[scholarship_id].copy()
            for column in CACHED_SCORE_COLUMNS:
                row[column] = float(cached[column])
            restored_rows.append(row)
    except (KeyError, TypeError, ValueError):
        return None

    if not restored_rows:
        return None
    return pd.DataFrame(restored_rows).reset_index(drop=True).infer_objects()


class AIReranker:
    """Second-pass ordering backed by an external ranking service.

    Order of checks per request: cache, quota, external call. Every failure
    path returns the deterministic fit ordering instead of raising.
    """

    def __init__(
        self,
        client: RankingClient | None,
        cache: RerankCache | None = None,
        quota_guard: QuotaGuard | None = None,
        *,
        candidate_limit: int = CANDIDATE_LIMIT,
        final_limit: int = FINAL_LIMIT,
        timeout_seconds: float = DEFAULT_AI_TIMEOUT_SECONDS,
    ) -> None:
        self.client = client
        self.cache = cache
        self._quota_guard = quota_guard
        self.candidate_limit = candidate_limit
        self.final_limit = final_limit
        self.timeout_seconds = timeout_seconds

    @property
    def quota_guard(self) -> QuotaGuard:
        return self._quota_guard or get_quota_guard()

    def rerank(
        self,
        profile: UserProfile,
        candidates_df: pd.DataFrame,
        *,
        cancel_event: threading.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> RerankResult:
        fallback_df = sort_by_fit(candidates_df)
        candidates = fallback_df.head(self.candidate_limit)
        if candidates.empty:
            return RerankResult(RerankOutcome.MISS_FALLBACK, fallback_df, FALLBACK_NO_CANDIDATES)

        fingerprint = compute_fingerprint(profile, candidates["scholarship_id"].tolist())
        cached_df = self._read_cache(fingerprint, candidates)
        if cached_df is not None:
            logger.info("Rerank cache hit for %s.", fingerprint[:12])
            return RerankResult(RerankOutcome.CACHE_HIT, cached_df)

        def fallback(reason: str) -> RerankResult:
            return RerankResult(RerankOutcome.MISS_FALLBACK, fallback_df, reason)

        if self.client is None:
            return fallback(FALLBACK_NOT_CONFIGURED)
        if cancel_event is not None and cancel_event.is_set():
            return fallback(FALLBACK_CANCELLED)

        try:
            profile_summary = build_profile_summary(profile)
            payload = [build_candidate_payload(record) for record in candidates["record"]]
        except (AttributeError, TypeError, ValueError):
            logger.warning("Could not build ranking request payload; using fit ordering.", exc_info=True)
            return fallback(FALLBACK_SERVICE_ERROR)

        if not self.quota_guard.try_acquire():
            logger.warning("Ranking quota exceeded; using deterministic fit ordering.")
            return fallback(FALLBACK_QUOTA_EXCEEDED)

        effective_timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        try:
            boosts = self._call_with_deadline(profile_summary, payload, effective_timeout, cancel_event)
        except _RerankTimeout:
            logger.warning("Ranking service timed out after %.1fs; using fit ordering.", effective_timeout)
            return fallback(FALLBACK_TIMEOUT)
        except _RerankCancelled:
            logger.info("Rerank cancelled by caller; using fit ordering.")
            return fallback(FALLBACK_CANCELLED)
        except RankingServiceError as exc:
            logger.warning("Ranking service failed (%s); using fit ordering.", exc)
            return fallback(FALLBACK_SERVICE_ERROR)
        except Exception:
            logger.exception("Unexpected ranking client failure; using fit ordering.")
            return fallback(FALLBACK_SERVICE_ERROR)

        ranked_df = apply_boosts(candidates, boosts).head(self.final_limit).reset_index(drop=True)
        if self.cache is not None:
            try:
                self.cache.set(fingerprint, serialize_ranked(ranked_df))
            except Exception:
                logger.warning("Could not cache rerank result %s; serving it uncached.", fingerprint[:12], exc_info=True)
        logger.info(
            "Reranked %d candidates (%d boosted, max |boost| %.3f).",
            len(candidates),
            int(np.count_nonzero(ranked_df["boost"].to_numpy())),
            float(np.max(np.abs(ranked_df["boost"].to_numpy()))) if not ranked_df.empty else 0.0,
        )
        return RerankResult(RerankOutcome.MISS_SUCCESS, ranked_df)

    def _read_cache(self, fingerprint: str, candidates: pd.DataFrame) -> pd.DataFrame | None:
        if self.cache is None:
            return None
        try:
            entry = self.cache.get(fingerprint)
        except Exception:
            logger.warning("Rerank cache lookup failed for %s; treating as miss.", fingerprint[:12], exc_info=True)
            return None
        if entry is None:
            return None
        restored = restore_ranked(entry.ranked, candidates)
        if restored is None:
            logger.warning("Cached ranking %s does not match its candidates; ignoring it.", fingerprint[:12])
        return restored

    def _call_with_deadline(
        self,
        profile_summary: dict[str, Any],
        payload: list[dict[str, Any]],
        timeout_seconds: float,
        cancel_event: threading.Event | None,
    ) -> dict[str, float]:
        deadline_monotonic = time.monotonic() + max(0.0, timeout_seconds)
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="rerank")
        try:
            future = executor.submit(self.client.rank, profile_summary, payload, timeout_seconds=timeout_seconds)
            while True:
                remaining = deadline_monotonic - time.monotonic()
                done, _ = concurrent.futures.wait(
                    [future],
                    timeout=max(0.0, min(_WAIT_POLL_SECONDS, remaining)),
                )
                if done:
                    return future.result()
                if cancel_event is not None and cancel_event.is_set():
                    raise _RerankCancelled()
                if time.monotonic() >= deadline_monotonic:
                    raise _RerankTimeout()
        finally:
            # The worker is abandoned, not joined; its late result is discarded.
            executor.shutdown(wait=False, cancel_futures=True)


def build_reranker(
    settings: EngineSettings,
    *,
    quota_guard: QuotaGuard | None = None,
    client: RankingClient | None = None,
) -> AIReranker:
    if client is None and settings.ai_configured:
        client = GenerativeRankingClient(
            api_key=settings.ai_api_key or "",
            model=settings.ai_model,
            endpoint=settings.ai_endpoint,
            timeout_seconds=settings.ai_timeout_seconds,
        )

    store = JsonDirectoryStore(settings.cache_dir) if settings.cache_dir else InMemoryStore()
    cache = RerankCache(
        store=store,
        ttl_seconds=settings.cache_ttl_seconds,
        sweep_batch_size=settings.cache_sweep_batch_size,
    )
    return AIReranker(
        client,
        cache,
        quota_guard,
        timeout_seconds=settings.ai_timeout_seconds,
    )
