from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

DEFAULT_USER_AGENT = "ScholarshipMatcher/0.1 (+https://localhost; contact=local)"
logger = logging.getLogger(__name__)
_SLOW_REQUEST_SECONDS = 5.0


def _timeouts(timeout_seconds: float) -> tuple[float, float]:
    connect_timeout = max(1.0, min(timeout_seconds, 5.0))
    read_timeout = max(connect_timeout, timeout_seconds)
    return connect_timeout, read_timeout


@dataclass(slots=True)
class JsonHttpClient:
    """Session-backed JSON client with bounded timeouts.

    Only connection failures are retried. A request that reached the server,
    including one answered with 429 or 5xx, is sent exactly once so each call
    maps to one unit of upstream quota.
    """

    timeout_seconds: float = 20.0
    user_agent: str = DEFAULT_USER_AGENT
    max_retries: int = 2
    backoff_factor: float = 0.5
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = requests.Session()
        self._session.headers.update(
            {
                "User-Agent": self.user_agent,
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

        retry = Retry(
            total=self.max_retries,
            connect=self.max_retries,
            read=0,
            status=0,
            other=0,
            backoff_factor=self.backoff_factor,
            status_forcelist=(),
            respect_retry_after_header=False,
            allowed_methods=frozenset({"POST"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)

    def close(self) -> None:
        self._session.close()

    @property
    def timeout_tuple(self) -> tuple[float, float]:
        return _timeouts(self.timeout_seconds)

    def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        params: dict[str, Any] | None = None,
        timeout_seconds: float | None = None,
    ) -> Any:
        timeout = self.timeout_tuple if timeout_seconds is None else _timeouts(timeout_seconds)
        return self._request("POST", url, payload=payload, params=params, timeout=timeout).json()

    def _request(
        self,
        method: str,
        url: str,
        *,
        payload: dict[str, Any],
        params: dict[str, Any] | None = None,
        timeout: tuple[float, float],
    ) -> Response:
        started_at = time.monotonic()
        response = self._session.request(
            method=method,
            url=url,
            params=params,
            json=payload,
            timeout=timeout,
        )
        elapsed = time.monotonic() - started_at
        if elapsed > _SLOW_REQUEST_SECONDS:
            # Query params may carry the API key; log the bare URL only.
            logger.warning("Slow HTTP %s %.3fs %s", method, elapsed, url)
        response.raise_for_status()
        return response
