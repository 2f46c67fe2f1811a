"""Fingerprinted storage for AI rerank results."""

from src.cache.fingerprint import compute_fingerprint
from src.cache.rerank_cache import RerankCache, RerankCacheEntry
from src.cache.store import CacheBackendError, InMemoryStore, JsonDirectoryStore

__all__ = [
    "CacheBackendError",
    "InMemoryStore",
    "JsonDirectoryStore",
    "RerankCache",
    "RerankCacheEntry",
    "compute_fingerprint",
]
