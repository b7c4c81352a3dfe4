# =============================================================================
# Unit Tests — Provider Adapters (FMP, Brave Search, Polygon)
# =============================================================================
#
# Each adapter runs against an httpx.MockTransport, so request shapes and
# failure handling are tested without network access or real API keys.
# =============================================================================

from __future__ import annotations

import asyncio

import httpx
import pytest

from alpha_oracle.config import settings
from alpha_oracle.exceptions import ProviderError
from alpha_oracle.services.brave_search import BraveNewsResult, BraveSearchClient
from alpha_oracle.services.fmp import FMPCandle, FMPClient, FMPQuote
from alpha_oracle.services.polygon import PolygonClient, PolygonNews


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


NVDA_QUOTE = {
    "symbol": "NVDA",
    "name": "NVIDIA Corporation",
    "price": 890.25,
    "changesPercentage": 4.5,
    "change": 38.4,
    "dayLow": 850.0,
    "dayHigh": 895.5,
    "yearHigh": 974.0,
    "yearLow": 410.1,
    "marketCap": 2_200_000_000_000,
    "volume": 51_000_000,
    "avgVolume": 45_000_000,
    "open": 855.0,
    "previousClose": 851.85,
    "eps": 11.93,
    "pe": 74.6,
}


# ---------------------------------------------------------------------------
# Test: FMP
# ---------------------------------------------------------------------------


class TestFMPClient:
    def test_quote_request_and_parse(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=[NVDA_QUOTE])

        fmp = FMPClient(api_key="k", base_url="https://fmp.test", client=_client(handler))
        quote = _run(fmp.get_quote("nvda"))

        assert seen["path"] == "/stable/quote"
        assert seen["params"] == {"symbol": "NVDA", "apikey": "k"}
        assert isinstance(quote, FMPQuote)
        assert quote.changes_percentage == 4.5
        assert quote.to_wire()["changesPercentage"] == 4.5

    def test_no_key_returns_none_without_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        fmp = FMPClient(api_key="", client=_client(handler))
        assert fmp.is_available() is False
        assert _run(fmp.get_quote("NVDA")) is None
        assert _run(fmp.get_top_gainers()) == []
        assert _run(fmp.get_intraday_chart("NVDA")) == []

    def test_empty_quote_list_returns_none(self):
        fmp = FMPClient(
            api_key="k", client=_client(lambda r: httpx.Response(200, json=[])),
        )
        assert _run(fmp.get_quote("NVDA")) is None

    def test_client_error_returns_none(self):
        fmp = FMPClient(
            api_key="k", client=_client(lambda r: httpx.Response(403, json={})),
        )
        assert _run(fmp.get_quote_light("NVDA")) is None

    def test_quote_light(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/stable/quote-short"
            return httpx.Response(
                200, json=[{"symbol": "NVDA", "price": 890.0, "volume": 1e6}],
            )

        fmp = FMPClient(api_key="k", client=_client(handler))
        light = _run(fmp.get_quote_light("NVDA"))
        assert light.price == 890.0

    def test_movers_endpoint(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v3/stock_market/losers"
            return httpx.Response(200, json=[NVDA_QUOTE, {"bogus": True}])

        fmp = FMPClient(api_key="k", client=_client(handler))
        losers = _run(fmp.get_top_losers())
        # Entries without a symbol are skipped
        assert [m.symbol for m in losers] == ["NVDA"]

    def test_chart_is_chronological_and_capped(self):
        candles = [
            {
                "date": f"2024-05-01 {15 - i // 12:02d}:{(i % 12) * 5:02d}:00",
                "open": 100 + i, "high": 101 + i, "low": 99 + i,
                "close": 100.5 + i, "volume": 1000,
            }
            for i in range(150)
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/stable/historical-chart/5min"
            return httpx.Response(200, json=candles)

        fmp = FMPClient(api_key="k", client=_client(handler))
        result = _run(fmp.get_intraday_chart("NVDA"))

        assert len(result) == 100
        # API returns newest first; result is oldest first
        assert result[-1].open == 100
        assert result[0].open == 199

    def test_unsupported_interval(self):
        fmp = FMPClient(api_key="k")
        with pytest.raises(ValueError):
            _run(fmp.get_intraday_chart("NVDA", "7min"))

    def test_format_quote(self):
        text = FMPClient.format_quote(FMPQuote.model_validate(NVDA_QUOTE))
        assert "**NVDA** - NVIDIA Corporation" in text
        assert "$890.25" in text
        assert "+4.50%" in text
        assert "Market Cap: $2200.00B" in text

    def test_format_chart_summary(self):
        candles = [
            FMPCandle(date="a", open=100, high=105, low=99, close=100, volume=1e6),
            FMPCandle(date="b", open=100, high=111, low=98, close=110, volume=2e6),
        ]
        text = FMPClient.format_chart_summary(candles)
        assert "+10.00 (+10.00%)" in text
        assert "Period High: $111.00" in text
        assert "Total Volume: 3.00M" in text

    def test_format_movers_limit(self):
        movers = [FMPQuote(symbol=f"S{i}", price=1.0, changes_percentage=-2) for i in range(8)]
        text = FMPClient.format_movers(movers, "Top Losers", limit=5)
        assert text.startswith("**Top Losers**")
        assert "5. " in text and "6. " not in text


# ---------------------------------------------------------------------------
# Test: Brave Search
# ---------------------------------------------------------------------------


BRAVE_NEWS = {
    "type": "news",
    "results": [
        {
            "title": "NVDA hits record",
            "url": "https://example.com/nvda",
            "description": "Shares rallied.",
            "age": "2 hours ago",
            "meta_url": {"hostname": "example.com"},
        }
    ],
}


class TestBraveSearchClient:
    def test_news_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["token"] = request.headers.get("X-Subscription-Token")
            return httpx.Response(200, json=BRAVE_NEWS)

        brave = BraveSearchClient(
            api_key="bk", base_url="https://brave.test/res/v1", client=_client(handler),
        )
        news = _run(brave.search_news("NVDA stock"))

        assert seen["path"] == "/res/v1/news/search"
        assert seen["token"] == "bk"
        assert seen["params"]["q"] == "NVDA stock"
        assert seen["params"]["country"] == "US"
        assert "freshness" not in seen["params"]
        assert isinstance(news[0], BraveNewsResult)
        assert news[0].source == "example.com"

    def test_web_count_capped_and_filtered(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"web": {"results": [{"title": "t", "url": "u"}]}})

        brave = BraveSearchClient(api_key="bk", client=_client(handler))
        web = _run(brave.search_web("nvidia", count=50))

        assert seen["params"]["count"] == "20"
        assert seen["params"]["result_filter"] == "web"
        assert len(web) == 1

    def test_search_all(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["result_filter"] == "web,news"
            return httpx.Response(200, json={
                "news": BRAVE_NEWS,
                "web": {"results": [{"title": "t", "url": "u"}]},
            })

        brave = BraveSearchClient(api_key="bk", client=_client(handler))
        found = _run(brave.search_all("markets"))
        assert len(found["news"]) == 1
        assert len(found["web"]) == 1

    def test_non_ok_raises(self):
        brave = BraveSearchClient(
            api_key="bk", client=_client(lambda r: httpx.Response(429, text="slow down")),
        )
        with pytest.raises(ProviderError) as exc_info:
            _run(brave.search_news("x"))
        assert exc_info.value.status_code == 429

    def test_no_key_returns_empty(self):
        brave = BraveSearchClient(api_key="")
        assert _run(brave.search_news("x")) == []
        assert _run(brave.search_all("x")) == {"news": [], "web": []}

    def test_format_news_items(self):
        items = [BraveNewsResult.model_validate(BRAVE_NEWS["results"][0])]
        text = BraveSearchClient.format_news_items(items)
        assert text.startswith("1. **[NVDA hits record](https://example.com/nvda)**")
        assert "_example.com • 2 hours ago_" in text


# ---------------------------------------------------------------------------
# Test: Polygon
# ---------------------------------------------------------------------------


class TestPolygonClient:
    def test_news_request_and_parse(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"results": [{
                "id": "1",
                "publisher": {"name": "Benzinga"},
                "title": "NVDA earnings preview",
                "published_utc": "2024-05-20T12:00:00Z",
                "article_url": "https://example.com/a",
                "tickers": ["NVDA"],
            }]})

        polygon = PolygonClient(api_key="pk", client=_client(handler))
        news = _run(polygon.get_news("nvda", limit=10))

        assert seen["path"] == "/v2/reference/news"
        assert seen["params"]["ticker"] == "NVDA"
        assert seen["params"]["order"] == "desc"
        assert seen["params"]["limit"] == "10"
        assert isinstance(news[0], PolygonNews)
        assert news[0].publisher.name == "Benzinga"

    def test_server_error_returns_empty(self, monkeypatch):
        monkeypatch.setattr(settings, "http_retry_delay_seconds", 0.0)
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        polygon = PolygonClient(api_key="pk", client=_client(handler))
        assert _run(polygon.get_news("NVDA")) == []
        assert len(calls) == settings.http_retries + 1

    def test_format_news(self):
        article = PolygonNews(
            title="Headline",
            article_url="https://example.com",
            published_utc="2024-05-20T12:00:00Z",
            tickers=["NVDA", "AMD"],
            publisher={"name": "Reuters"},
        )
        text = PolygonClient.format_news([article])
        assert "_Reuters • 2024-05-20 • NVDA, AMD_" in text
