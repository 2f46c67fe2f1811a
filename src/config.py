from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

ENV_PREFIX = "SCHOLARMATCH_"

DEFAULT_AI_MODEL = "gemini-1.5-flash"
DEFAULT_AI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_AI_TIMEOUT_SECONDS = 10.0
DEFAULT_QUOTA_LIMIT = 50
DEFAULT_QUOTA_PERIOD_SECONDS = 3600.0
DEFAULT_CACHE_TTL_SECONDS = 600.0
DEFAULT_CACHE_SWEEP_BATCH_SIZE = 1000


def _env_str(environ: Mapping[str, str], name: str) -> str | None:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = _env_str(environ, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = _env_str(environ, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if math.isfinite(value) and value > 0 else default


@dataclass(frozen=True, slots=True)
class EngineSettings:
    # Never logged and never written into cache entries.
    ai_api_key: str | None = field(default=None, repr=False)
    ai_model: str = DEFAULT_AI_MODEL
    ai_endpoint: str = DEFAULT_AI_ENDPOINT
    ai_timeout_seconds: float = DEFAULT_AI_TIMEOUT_SECONDS
    quota_limit: int = DEFAULT_QUOTA_LIMIT
    quota_period_seconds: float = DEFAULT_QUOTA_PERIOD_SECONDS
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    cache_dir: Path | None = None
    cache_sweep_batch_size: int = DEFAULT_CACHE_SWEEP_BATCH_SIZE

    def __post_init__(self) -> None:
        if self.ai_timeout_seconds <= 0:
            raise ValueError("AI timeout must be positive.")
        if self.quota_period_seconds <= 0:
            raise ValueError("Quota period must be positive.")
        if self.cache_ttl_seconds <= 0:
            raise ValueError("Cache TTL must be positive.")
        if self.cache_sweep_batch_size <= 0:
            raise ValueError("Cache sweep batch size must be positive.")

    @property
    def ai_configured(self) -> bool:
        return bool(self.ai_api_key)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineSettings:
        env = os.environ if environ is None else environ
        cache_dir = _env_str(env, f"{ENV_PREFIX}CACHE_DIR")
        return cls(
            ai_api_key=_env_str(env, f"{ENV_PREFIX}AI_API_KEY") or _env_str(env, "GEMINI_API_KEY"),
            ai_model=_env_str(env, f"{ENV_PREFIX}AI_MODEL") or DEFAULT_AI_MODEL,
            ai_endpoint=_env_str(env, f"{ENV_PREFIX}AI_ENDPOINT") or DEFAULT_AI_ENDPOINT,
            ai_timeout_seconds=_env_float(env, f"{ENV_PREFIX}AI_TIMEOUT_SECONDS", DEFAULT_AI_TIMEOUT_SECONDS),
            quota_limit=_env_int(env, f"{ENV_PREFIX}QUOTA_LIMIT", DEFAULT_QUOTA_LIMIT),
            quota_period_seconds=_env_float(
                env, f"{ENV_PREFIX}QUOTA_PERIOD_SECONDS", DEFAULT_QUOTA_PERIOD_SECONDS
            ),
            cache_ttl_seconds=_env_float(env, f"{ENV_PREFIX}CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS),
            cache_dir=Path(cache_dir) if cache_dir else None,
            cache_sweep_batch_size=_env_int(
                env, f"{ENV_PREFIX}CACHE_SWEEP_BATCH_SIZE", DEFAULT_CACHE_SWEEP_BATCH_SIZE
            )
            or DEFAULT_CACHE_SWEEP_BATCH_SIZE,
        )

    def to_public_dict(self) -> dict[str, object]:
        return {
            "ai_configured": self.ai_configured,
            "ai_model": self.ai_model,
            "ai_timeout_seconds": self.ai_timeout_seconds,
            "quota_limit": self.quota_limit,
            "quota_period_seconds": self.quota_period_seconds,
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "cache_dir": str(self.cache_dir) if self.cache_dir else None,
            "cache_sweep_batch_size": self.cache_sweep_batch_size,
        }
