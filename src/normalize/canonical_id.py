from __future__ import annotations

import hashlib
from datetime import date, datetime
from typing import Optional
from urllib.parse import urlparse


def _normalize_text(value: Optional[str]) -> str:
    if value is None:
        return ""
    return " ".join(value.strip().lower().split())


def _normalize_deadline(value: Optional[date | datetime | str]) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value.strip().lower()


def _normalize_source_domain(source_url: Optional[str]) -> str:
    if not source_url:
        return ""

    parsed = urlparse(source_url.strip())
    host = parsed.netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def generate_scholarship_id(
    *,
    name: str,
    country: Optional[str],
    deadline: Optional[date | datetime | str],
    source_url: Optional[str],
) -> str:
    """Build a deterministic scholarship_id for records that arrive without one."""

    payload = "|".join(
        [
            _normalize_text(name),
            _normalize_text(country),
            _normalize_deadline(deadline),
            _normalize_source_domain(source_url),
        ]
    )
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()
