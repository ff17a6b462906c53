from __future__ import annotations

import logging
import time
from datetime import date, datetime
from typing import Any

import httpx

from .config import AppConfig

logger = logging.getLogger(__name__)

RETRY_STATUSES = {429, 500, 502, 503, 504}


class SourceError(RuntimeError):
    """Raised when a source answers with a body we cannot use."""


def build_client(config: AppConfig) -> httpx.Client:
    headers = {"User-Agent": config.user_agent, "Accept": "application/json"}
    return httpx.Client(
        timeout=config.pipeline.request_timeout_seconds,
        headers=headers,
        follow_redirects=True,
    )


def request_json(
    client: httpx.Client,
    method: str,
    url: str,
    config: AppConfig,
    *,
    params: dict[str, Any] | None = None,
    json: dict[str, Any] | None = None,
) -> Any:
    retries = max(0, config.pipeline.retry_max)
    backoff = max(0.1, config.pipeline.retry_backoff_seconds)
    last_error: Exception | None = None

    for attempt in range(retries + 1):
        try:
            resp = client.request(method, url, params=params, json=json)
            resp.raise_for_status()
            try:
                return resp.json()
            except ValueError as exc:
                raise SourceError(f"Malformed JSON from {url}") from exc
        except httpx.HTTPStatusError as exc:
            last_error = exc
            status = exc.response.status_code
            if status in RETRY_STATUSES and attempt < retries:
                delay = backoff * (2**attempt)
                if status == 429:
                    delay = max(delay, 10.0)
                logger.info("Retrying %s after HTTP %s in %.1fs", url, status, delay)
                time.sleep(delay)
                continue
            raise
        except httpx.RequestError as exc:
            last_error = exc
            if attempt < retries:
                delay = backoff * (2**attempt)
                logger.info("Retrying %s after %s in %.1fs", url, exc.__class__.__name__, delay)
                time.sleep(delay)
                continue
            raise

    if last_error:
        raise last_error
    raise SourceError(f"Request to {url} failed")


def extract_list(data: Any, *keys: str) -> list[dict]:
    """Return the first list of objects found under ``keys`` (dotted paths allowed)."""
    if not isinstance(data, dict):
        raise SourceError(f"Expected a JSON object, got {type(data).__name__}")
    for key in keys:
        value: Any = data
        for part in key.split("."):
            value = value.get(part) if isinstance(value, dict) else None
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
    return []


def to_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    return str(value).strip() or None


def to_amount(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.replace(",", "").replace("$", "").strip()
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%b %d, %Y")


def to_date(value: Any) -> date | None:
    text = to_str(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None
