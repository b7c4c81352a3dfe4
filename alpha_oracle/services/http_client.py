# =============================================================================
# Provider HTTP Transport — Timeout, Retry, Shared Connection Pool
# =============================================================================
#
# Every data/search provider goes through fetch_with_retry():
#
#   attempt 0 ──▶ 2xx ───────────────▶ return response
#             ├─▶ 4xx ───────────────▶ return response (never retried)
#             ├─▶ 5xx / timeout ─────▶ sleep(delay * attempt), retry
#             └─▶ retries exhausted ─▶ raise ProviderError
#
# fetch_json() is the lenient variant used by adapters that degrade to
# None/[] on failure: any non-2xx or ProviderError becomes None.
#
# The AsyncClient is a lazy module-level singleton (one connection pool for
# the process) and is closed by the FastAPI lifespan hook in main.py.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

import httpx

from alpha_oracle.config import settings
from alpha_oracle.exceptions import ProviderError

logger = logging.getLogger(__name__)

_client: httpx.AsyncClient | None = None

_SECRET_PARAM = re.compile(r"(apikey|apiKey|api_key)=[^&]+")


def get_http_client() -> httpx.AsyncClient:
    """Return the shared AsyncClient, creating it on first use."""
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=2.0),
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
            follow_redirects=True,
        )
    return _client


async def close_http_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def redact_url(url: str) -> str:
    """Mask API keys passed as query parameters."""
    return _SECRET_PARAM.sub(r"\1=[REDACTED]", url)


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    method: str = "GET",
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float | None = None,
    retries: int | None = None,
    retry_delay: float | None = None,
) -> httpx.Response:
    """
    Issue a request with a bounded timeout and linear-backoff retries.

    Returns the response for 2xx and 4xx statuses. Raises ProviderError
    once 5xx responses or transport errors exhaust the retry budget.
    """
    timeout = settings.http_timeout_seconds if timeout is None else timeout
    retries = max(settings.http_retries if retries is None else retries, 0)
    retry_delay = (
        settings.http_retry_delay_seconds if retry_delay is None else retry_delay
    )
    clean_params = {k: v for k, v in (params or {}).items() if v is not None}

    last_error = ProviderError(f"Request not attempted: {redact_url(url)}")

    for attempt in range(retries + 1):
        if attempt > 0:
            logger.debug(
                "Retrying request (attempt %d/%d): %s",
                attempt + 1, retries + 1, redact_url(url),
            )
            await asyncio.sleep(retry_delay * attempt)

        try:
            response = await client.request(
                method,
                url,
                params=clean_params,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            last_error = ProviderError(
                f"Request timeout after {timeout:.1f}s: {redact_url(url)}"
            )
            last_error.__cause__ = e
            continue
        except httpx.TransportError as e:
            last_error = ProviderError(
                f"Network error calling {redact_url(url)}: {e}"
            )
            last_error.__cause__ = e
            continue

        if response.status_code >= 500:
            last_error = ProviderError(
                f"Server error after {attempt + 1} attempt(s): "
                f"{response.status_code}",
                status_code=response.status_code,
            )
            continue

        return response

    logger.error(
        "All retry attempts failed (%d): %s (%s)",
        retries + 1, redact_url(url), last_error,
    )
    raise last_error


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    **kwargs: Any,
) -> Any | None:
    """Fetch and decode JSON, returning None on any failure."""
    try:
        response = await fetch_with_retry(
            client, url, params=params, headers=headers, **kwargs,
        )
    except ProviderError as e:
        logger.warning("Failed to fetch JSON from %s: %s", redact_url(url), e)
        return None

    if not response.is_success:
        logger.warning(
            "Non-OK response from %s: %d",
            redact_url(url), response.status_code,
        )
        return None

    try:
        return response.json()
    except ValueError as e:
        logger.warning("Invalid JSON from %s: %s", redact_url(url), e)
        return None
