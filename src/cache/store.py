from __future__ import annotations

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Protocol, Sequence
from uuid import uuid4

logger = logging.getLogger(__name__)

_SAFE_KEY_PATTERN = re.compile(r"[^A-Za-z0-9._-]+")
DEFAULT_MAX_ENTRIES = 1000


class CacheBackendError(Exception):
    """Raised when the key-value backend cannot be read or written."""


def write_json_atomic(payload: dict[str, Any], output_path: Path, *, indent: int | None = 2) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output_path.parent / f"{output_path.name}.{uuid4().hex}.tmp"
    try:
        temp_path.write_text(json.dumps(payload, indent=indent, sort_keys=True), encoding="utf-8")
        temp_path.replace(output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()


class CacheStore(Protocol):
    def read(self, key: str) -> dict[str, Any] | None:
        ...

    def write(self, key: str, payload: dict[str, Any]) -> None:
        ...

    def delete(self, keys: Sequence[str]) -> int:
        ...

    def expired_keys(self, now: float, limit: int) -> list[str]:
        """Return up to `limit` keys whose `expires_at` is at or before `now`."""
        ...


class InMemoryStore:
    """Process-local store; entries are copied in and out so callers cannot mutate them.

    Holds at most `max_entries` keys. Writing a new key at capacity evicts the
    least recently written entry.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive.")
        self.max_entries = max_entries
        self._entries: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def read(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            payload = self._entries.get(key)
            return json.loads(json.dumps(payload)) if payload is not None else None

    def write(self, key: str, payload: dict[str, Any]) -> None:
        snapshot = json.loads(json.dumps(payload))
        with self._lock:
            # Re-inserting moves the key to the end of the eviction order.
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                evicted = next(iter(self._entries))
                del self._entries[evicted]
                logger.debug("Evicted rerank cache entry %s at capacity %d.", evicted, self.max_entries)
            self._entries[key] = snapshot

    def delete(self, keys: Sequence[str]) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
        return removed

    def expired_keys(self, now: float, limit: int) -> list[str]:
        with self._lock:
            expired = [
                key
                for key, payload in self._entries.items()
                if float(payload.get("expires_at", 0.0)) <= now
            ]
        return sorted(expired)[:limit]


class JsonDirectoryStore:
    """One JSON document per key under `root`, written atomically."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _path_for(self, key: str) -> Path:
        safe_key = _SAFE_KEY_PATTERN.sub("_", key).strip("_") or "entry"
        return self.root / f"{safe_key}.json"

    def read(self, key: str) -> dict[str, Any] | None:
        path = self._path_for(key)
        try:
            if not path.exists():
                return None
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CacheBackendError(f"Unreadable cache entry at '{path}'.") from exc

    def write(self, key: str, payload: dict[str, Any]) -> None:
        output_path = self._path_for(key)
        try:
            write_json_atomic(payload, output_path, indent=None)
        except (OSError, TypeError, ValueError) as exc:
            raise CacheBackendError(f"Failed to write cache entry at '{output_path}'.") from exc

    def delete(self, keys: Sequence[str]) -> int:
        removed = 0
        for key in keys:
            path = self._path_for(key)
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise CacheBackendError(f"Failed to delete cache entry at '{path}'.") from exc
            removed += 1
        return removed

    def expired_keys(self, now: float, limit: int) -> list[str]:
        try:
            if not self.root.exists():
                return []
            candidates = sorted(self.root.glob("*.json"))
        except OSError as exc:
            raise CacheBackendError(f"Failed to list cache entries under '{self.root}'.") from exc

        expired: list[str] = []
        for candidate in candidates:
            if len(expired) >= limit:
                break
            try:
                payload = json.loads(candidate.read_text(encoding="utf-8"))
                expires_at = float(payload.get("expires_at", 0.0))
            except (OSError, ValueError, TypeError, AttributeError):
                # Unreadable documents are reaped with the expired ones.
                expires_at = 0.0
            if expires_at <= now:
                expired.append(candidate.stem)
        return expired
