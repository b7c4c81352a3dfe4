# =============================================================================
# Brave Search Adapter: News, Web, and Combined Search
# =============================================================================
#
# Endpoints (https://api.search.brave.com/res/v1):
#   /news/search                         → search_news()
#   /web/search?result_filter=web        → search_web()
#   /web/search?result_filter=web,news   → search_all()
#
# Brave is the last tier of most executor fallback chains, so unlike FMP and
# Polygon it does NOT swallow failures: a non-OK response (or a transport
# failure after retries) raises ProviderError, which the executor turns into
# a failed step. A missing key is still treated as "provider absent" and
# yields empty results.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

from alpha_oracle.config import settings
from alpha_oracle.exceptions import ProviderError
from alpha_oracle.services.http_client import fetch_with_retry, get_http_client

logger = logging.getLogger(__name__)

MAX_WEB_COUNT = 20


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class BraveMetaUrl(BaseModel):
    model_config = ConfigDict(extra="ignore")

    scheme: str | None = None
    netloc: str | None = None
    hostname: str | None = None
    path: str | None = None


class BraveWebResult(BaseModel):
    """A single web result. Brave's own keys are already snake_case."""

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    url: str = ""
    description: str | None = None
    age: str | None = None
    language: str | None = None
    meta_url: BraveMetaUrl | None = None

    @property
    def source(self) -> str:
        if self.meta_url and self.meta_url.hostname:
            return self.meta_url.hostname
        return "Unknown source"

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class BraveNewsResult(BraveWebResult):
    page_age: str | None = None
    breaking: bool | None = None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class BraveSearchClient:
    """Async Brave Search client."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = (
            api_key if api_key is not None else settings.brave_search_api_key
        )
        self._base_url = (base_url or settings.brave_base_url).rstrip("/")
        self._client = client

        if not self._api_key:
            logger.warning("Brave Search API key not provided. Search disabled.")

    def is_available(self) -> bool:
        return bool(self._api_key)

    @staticmethod
    def _build_params(
        query: str,
        count: int,
        offset: int,
        freshness: str | None,
        result_filter: str | None = None,
    ) -> dict[str, Any]:
        return {
            "q": query,
            "count": count,
            "offset": offset,
            "country": "US",
            "search_lang": "en",
            "safesearch": "moderate",
            "spellcheck": "true",
            "freshness": freshness,
            "result_filter": result_filter,
        }

    async def _search(
        self,
        path: str,
        params: dict[str, Any],
        label: str,
    ) -> dict[str, Any]:
        client = self._client or get_http_client()
        response = await fetch_with_retry(
            client,
            f"{self._base_url}{path}",
            params=params,
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": self._api_key,
            },
        )
        if not response.is_success:
            raise ProviderError(
                f"Brave {label} API error: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(f"Brave {label} API returned invalid JSON") from e
        return payload if isinstance(payload, dict) else {}

    async def search_news(
        self,
        query: str,
        count: int = 10,
        offset: int = 0,
        freshness: str | None = None,
    ) -> list[BraveNewsResult]:
        """
        Search news articles.

        Args:
            query: Free-text search query.
            count: Number of results to request.
            offset: Pagination offset.
            freshness: Optional recency filter ("pd", "pw", "pm", "py").

        Raises:
            ProviderError: On a non-OK response or exhausted retries.
        """
        if not self.is_available():
            logger.info("Brave news search skipped - no API key")
            return []

        payload = await self._search(
            "/news/search",
            self._build_params(query, count, offset, freshness),
            "News",
        )
        results = [
            BraveNewsResult.model_validate(item)
            for item in payload.get("results") or []
        ]
        logger.info("Brave news search '%s': %d results", query, len(results))
        return results

    async def search_web(
        self,
        query: str,
        count: int = 10,
        offset: int = 0,
        freshness: str | None = None,
    ) -> list[BraveWebResult]:
        """Search the web. `count` is capped at 20 by the API."""
        if not self.is_available():
            logger.info("Brave web search skipped - no API key")
            return []

        payload = await self._search(
            "/web/search",
            self._build_params(
                query, min(count, MAX_WEB_COUNT), offset, freshness,
                result_filter="web",
            ),
            "Web",
        )
        results = [
            BraveWebResult.model_validate(item)
            for item in (payload.get("web") or {}).get("results") or []
        ]
        logger.info("Brave web search '%s': %d results", query, len(results))
        return results

    async def search_all(
        self,
        query: str,
        count: int = 10,
        offset: int = 0,
        freshness: str | None = None,
    ) -> dict[str, list[BraveWebResult]]:
        """News and web results from a single /web/search call."""
        if not self.is_available():
            logger.info("Brave combined search skipped - no API key")
            return {"news": [], "web": []}

        payload = await self._search(
            "/web/search",
            self._build_params(
                query, min(count, MAX_WEB_COUNT), offset, freshness,
                result_filter="web,news",
            ),
            "Search",
        )
        news = [
            BraveNewsResult.model_validate(item)
            for item in (payload.get("news") or {}).get("results") or []
        ]
        web = [
            BraveWebResult.model_validate(item)
            for item in (payload.get("web") or {}).get("results") or []
        ]
        logger.info(
            "Brave combined search '%s': %d news, %d web",
            query, len(news), len(web),
        )
        return {"news": news, "web": web}

    # -- display formatting -------------------------------------------------

    @staticmethod
    def format_news_items(items: list[BraveNewsResult], limit: int = 5) -> str:
        if not items:
            return "No news articles found."

        blocks = []
        for i, item in enumerate(items[:limit], 1):
            meta = item.source + (f" • {item.age}" if item.age else "")
            block = f"{i}. **[{item.title}]({item.url})**\n   _{meta}_"
            if item.description:
                block += f"\n   {item.description}"
            blocks.append(block)
        return "\n\n".join(blocks)

    @staticmethod
    def format_web_results(items: list[BraveWebResult], limit: int = 5) -> str:
        if not items:
            return "No web results found."

        blocks = []
        for i, item in enumerate(items[:limit], 1):
            block = f"{i}. **[{item.title}]({item.url})**\n   _{item.source}_"
            if item.description:
                block += f"\n   {item.description}"
            blocks.append(block)
        return "\n\n".join(blocks)
