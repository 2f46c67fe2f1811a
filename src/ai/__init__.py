"""External ranking service client and its request quota."""

from src.ai.quota import QuotaGuard, QuotaUsage, get_quota_guard, init_quota_guard, reset_quota_guard
from src.ai.ranking_client import GenerativeRankingClient, RankingResponseError, RankingServiceError

__all__ = [
    "GenerativeRankingClient",
    "QuotaGuard",
    "QuotaUsage",
    "RankingResponseError",
    "RankingServiceError",
    "get_quota_guard",
    "init_quota_guard",
    "reset_quota_guard",
]
