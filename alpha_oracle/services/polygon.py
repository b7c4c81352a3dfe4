# =============================================================================
# Polygon.io Adapter: Per-Ticker News
# =============================================================================
#
# Only the reference news endpoint is used (/v2/reference/news). Polygon is
# the preferred source for ticker news when configured; the executor falls
# back to Brave news when it is absent or returns nothing, so every failure
# here degrades to an empty list.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from alpha_oracle.config import settings
from alpha_oracle.services.http_client import fetch_json, get_http_client

logger = logging.getLogger(__name__)


class PolygonPublisher(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    homepage_url: str | None = None


class PolygonNews(BaseModel):
    """A Polygon news article. Wire keys are snake_case."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    publisher: PolygonPublisher = Field(default_factory=PolygonPublisher)
    title: str = ""
    author: str | None = None
    published_utc: str = ""
    article_url: str = ""
    tickers: list[str] = Field(default_factory=list)
    description: str | None = None
    keywords: list[str] | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class PolygonClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.polygon_api_key
        self._base_url = (base_url or settings.polygon_base_url).rstrip("/")
        self._client = client

        if not self._api_key:
            logger.warning(
                "Polygon API key not provided. Ticker news will use Brave."
            )

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def get_news(
        self,
        ticker: str | None = None,
        limit: int = 50,
    ) -> list[PolygonNews]:
        """Latest news, newest first, optionally filtered to one ticker."""
        if not self.is_available():
            logger.info("Polygon news request skipped - no API key")
            return []

        client = self._client or get_http_client()
        data = await fetch_json(
            client,
            f"{self._base_url}/v2/reference/news",
            params={
                "ticker": ticker.upper() if ticker else None,
                "order": "desc",
                "limit": limit,
                "apiKey": self._api_key,
            },
        )
        if not isinstance(data, dict):
            return []

        articles = []
        for item in data.get("results") or []:
            try:
                articles.append(PolygonNews.model_validate(item))
            except ValidationError:
                continue

        logger.info(
            "Polygon news retrieved: ticker=%s, %d articles",
            ticker, len(articles),
        )
        return articles

    @staticmethod
    def format_news(articles: list[PolygonNews], limit: int = 5) -> str:
        if not articles:
            return "No news articles found."

        blocks = []
        for i, article in enumerate(articles[:limit], 1):
            date = article.published_utc[:10] or "unknown date"
            meta = f"{article.publisher.name or 'Unknown'} • {date}"
            if article.tickers:
                meta += f" • {', '.join(article.tickers[:5])}"
            block = f"{i}. **[{article.title}]({article.article_url})**\n   _{meta}_"
            if article.description:
                block += f"\n   {article.description}"
            blocks.append(block)
        return "\n\n".join(blocks)
