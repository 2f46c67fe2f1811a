from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from src.cache.store import CacheBackendError, CacheStore, InMemoryStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 300.0
DEFAULT_SWEEP_BATCH_SIZE = 1000
DEFAULT_SWEEP_MAX_BATCHES = 10

# Stores are expected to wrap I/O failures, but a raw OSError is still a backend failure.
_BACKEND_ERRORS = (CacheBackendError, OSError)


@dataclass(frozen=True, slots=True)
class RerankCacheEntry:
    fingerprint: str
    ranked: list[dict[str, Any]]
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "ranked": list(self.ranked),
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RerankCacheEntry:
        ranked = payload["ranked"]
        if not isinstance(ranked, list):
            raise ValueError("Cache entry 'ranked' must be a list.")
        return cls(
            fingerprint=str(payload["fingerprint"]),
            ranked=ranked,
            created_at=float(payload["created_at"]),
            expires_at=float(payload["expires_at"]),
        )


@dataclass(slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    errors: int = 0
    swept: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "errors": self.errors,
            "swept": self.swept,
            "hit_rate": round(self.hit_rate, 4),
        }


@dataclass(slots=True)
class RerankCache:
    """Fingerprint-keyed store of AI rerank results.

    Entries are never served past `expires_at`: an expired entry found on read
    is reported as a miss and deleted best-effort. Backend failures degrade to
    a miss on read and a skipped write on `set`, so callers never see them.
    """

    store: CacheStore = field(default_factory=InMemoryStore)
    ttl_seconds: float = DEFAULT_TTL_SECONDS
    sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    sweep_batch_size: int = DEFAULT_SWEEP_BATCH_SIZE
    clock: Callable[[], float] = time.time
    _stats: CacheStats = field(init=False, default_factory=CacheStats)
    _last_sweep_at: float = field(init=False, default=0.0)
    _lock: threading.Lock = field(init=False, repr=False, default_factory=threading.Lock)

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise ValueError("Cache TTL must be positive.")
        if self.sweep_batch_size <= 0:
            raise ValueError("Cache sweep batch size must be positive.")
        self._last_sweep_at = self.clock()

    def get(self, fingerprint: str) -> RerankCacheEntry | None:
        now = self.clock()
        try:
            payload = self.store.read(fingerprint)
        except _BACKEND_ERRORS:
            logger.warning("Rerank cache read failed for %s; treating as miss.", fingerprint, exc_info=True)
            self._count(misses=1, errors=1)
            return None

        if payload is None:
            self._count(misses=1)
            return None

        try:
            entry = RerankCacheEntry.from_dict(payload)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding malformed rerank cache entry %s.", fingerprint)
            self._delete_quietly(fingerprint)
            self._count(misses=1, errors=1)
            return None

        if entry.is_expired(now):
            self._delete_quietly(fingerprint)
            self._count(misses=1)
            return None

        self._count(hits=1)
        return entry

    def set(
        self,
        fingerprint: str,
        ranked: list[dict[str, Any]],
        ttl_seconds: float | None = None,
    ) -> RerankCacheEntry | None:
        now = self.clock()
        ttl = self.ttl_seconds if ttl_seconds is None else float(ttl_seconds)
        entry = RerankCacheEntry(
            fingerprint=fingerprint,
            ranked=list(ranked),
            created_at=now,
            expires_at=now + ttl,
        )
        try:
            self.store.write(fingerprint, entry.to_dict())
        except _BACKEND_ERRORS:
            logger.warning("Rerank cache write failed for %s; skipping.", fingerprint, exc_info=True)
            self._count(errors=1)
            return None

        self._count(sets=1)
        self._maybe_sweep(now)
        return entry

    def sweep(self, batch_size: int | None = None, max_batches: int = DEFAULT_SWEEP_MAX_BATCHES) -> int:
        """Delete expired entries in bounded batches and return how many were removed."""
        limit = batch_size or self.sweep_batch_size
        now = self.clock()
        removed_total = 0
        try:
            for _ in range(max(1, max_batches)):
                expired = self.store.expired_keys(now, limit)
                if not expired:
                    break
                removed_total += self.store.delete(expired)
                if len(expired) < limit:
                    break
        except _BACKEND_ERRORS:
            logger.warning("Rerank cache sweep aborted after %d removals.", removed_total, exc_info=True)
            self._count(errors=1)

        with self._lock:
            self._last_sweep_at = now
        if removed_total:
            logger.info("Rerank cache sweep removed %d expired entries.", removed_total)
        self._count(swept=removed_total)
        return removed_total

    def stats(self) -> dict[str, float]:
        with self._lock:
            return self._stats.to_dict()

    def _maybe_sweep(self, now: float) -> None:
        with self._lock:
            due = now - self._last_sweep_at >= self.sweep_interval_seconds
        if due:
            self.sweep()

    def _delete_quietly(self, fingerprint: str) -> None:
        try:
            self.store.delete([fingerprint])
        except _BACKEND_ERRORS:
            logger.debug("Could not delete stale rerank cache entry %s.", fingerprint, exc_info=True)

    def _count(self, **deltas: int) -> None:
        with self._lock:
            for name, delta in deltas.items():
                setattr(self._stats, name, getattr(self._stats, name) + delta)
