from __future__ import annotations

import asyncio
import json
import logging
import random
import re
import time
from email.utils import parsedate_to_datetime
from typing import Any
from urllib import error, request
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..config import settings
from ..errors import ProviderError, ProviderRateLimited

logger = logging.getLogger(__name__)

SENSITIVE_QUERY_KEYS = frozenset(
    {"key", "api_key", "apikey", "token", "access_token", "client_secret", "authorization"}
)
RETRY_BASE_DELAY_MS = 250
MAX_RETRY_AFTER_MS = 5_000
USER_AGENT = "songquiz-backend/1.0 (+https://github.com/songquiz)"


def sanitize_url_for_logs(raw_url: str) -> str:
    try:
        parts = urlsplit(raw_url)
        query = [
            (key, "[redacted]" if key.lower() in SENSITIVE_QUERY_KEYS else value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
        ]
        return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))
    except ValueError:
        return re.sub(r"(key|token|access_token|client_secret)=([^&]+)", r"\1=[redacted]", raw_url)


def parse_retry_after_ms(raw: str | None) -> int | None:
    if not raw:
        return None
    value = raw.strip()
    if value.isdigit():
        return int(value) * 1000
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(0, int(retry_at.timestamp() * 1000 - time.time() * 1000))


def _should_retry_status(status: int) -> bool:
    return status in (408, 429) or status >= 500


def _backoff_ms(attempt: int) -> int:
    return RETRY_BASE_DELAY_MS * 2**attempt + random.randint(0, 60)


def _request_json(
    url: str,
    *,
    method: str,
    headers: dict[str, str],
    body: bytes | None,
    timeout_seconds: float,
) -> Any:
    raw_request = request.Request(url, data=body, headers=headers, method=method)
    with request.urlopen(raw_request, timeout=timeout_seconds) as response:
        return json.loads(response.read().decode("utf-8"))


async def fetch_json(
    url: str,
    *,
    provider: str,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    body: bytes | None = None,
    timeout_seconds: float | None = None,
    retries: int | None = None,
) -> Any | None:
    """GET/POST a JSON endpoint with per-attempt timeout and bounded retries.

    Non-retryable HTTP errors (4xx other than 408/429) return ``None``.
    Exhausted retries raise ``ProviderRateLimited`` for 429 and
    ``ProviderError`` otherwise.
    """
    timeout_value = timeout_seconds if timeout_seconds is not None else settings.provider_timeout_seconds
    retry_count = max(0, retries if retries is not None else settings.provider_retries)
    request_headers = {
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
        **(headers or {}),
    }
    log_url = sanitize_url_for_logs(url)

    for attempt in range(retry_count + 1):
        try:
            return await asyncio.to_thread(
                _request_json,
                url,
                method=method,
                headers=request_headers,
                body=body,
                timeout_seconds=timeout_value,
            )
        except error.HTTPError as exc:
            status = int(exc.code)
            retry_after_ms = parse_retry_after_ms(exc.headers.get("Retry-After")) if status == 429 else None
            if not _should_retry_status(status):
                logger.warning(
                    "music_http_non_ok provider=%s url=%s status=%s attempt=%s",
                    provider,
                    log_url,
                    status,
                    attempt + 1,
                )
                return None
            if attempt >= retry_count:
                logger.warning(
                    "music_http_give_up provider=%s url=%s status=%s attempts=%s",
                    provider,
                    log_url,
                    status,
                    attempt + 1,
                )
                if status == 429:
                    raise ProviderRateLimited(provider, retry_after_ms) from exc
                raise ProviderError(provider, f"HTTP {status}", status=status) from exc
            delay_ms = (
                min(MAX_RETRY_AFTER_MS, max(100, retry_after_ms))
                if retry_after_ms is not None
                else _backoff_ms(attempt)
            )
            logger.warning(
                "music_http_retry_status provider=%s url=%s status=%s attempt=%s delay_ms=%s",
                provider,
                log_url,
                status,
                attempt + 1,
                delay_ms,
            )
        except (error.URLError, TimeoutError, OSError, ValueError) as exc:
            if attempt >= retry_count:
                logger.warning(
                    "music_http_failure provider=%s url=%s attempts=%s error=%s",
                    provider,
                    log_url,
                    attempt + 1,
                    exc,
                )
                raise ProviderError(provider, str(exc) or exc.__class__.__name__) from exc
            delay_ms = _backoff_ms(attempt)
            logger.warning(
                "music_http_retry_error provider=%s url=%s attempt=%s error=%s",
                provider,
                log_url,
                attempt + 1,
                exc,
            )

        await asyncio.sleep(delay_ms / 1000)

    return None
