# =============================================================================
# Financial Modeling Prep (FMP) — Market Data Adapter
# =============================================================================
#
# Capabilities used by the executor:
#   get_quote()             full snapshot    (/stable/quote)
#   get_quote_light()       price + volume   (/stable/quote-short)
#   get_intraday_chart()    candles          (/stable/historical-chart/{interval})
#   get_top_gainers()       movers           (/api/v3/stock_market/gainers)
#   get_top_losers()                         (/api/v3/stock_market/losers)
#   get_most_actives()                       (/api/v3/stock_market/actives)
#
# FMP is optional. Without a key every method returns None/[] and logs at
# INFO. Failures (timeouts, 5xx after retries, bad payloads) also degrade
# to None/[] so the executor can move on to the next tier of its fallback
# chain.
#
# The static format_* helpers render provider data as display text. The
# summarizer relies on them to put human-readable numbers into the
# final-answer prompt.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from alpha_oracle.config import settings
from alpha_oracle.services.http_client import fetch_json, get_http_client

logger = logging.getLogger(__name__)

CHART_INTERVALS = ("1min", "5min", "15min", "30min", "1hour", "4hour")
MAX_CANDLES = 100


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class _FMPModel(BaseModel):
    """FMP payloads use camelCase; attributes here are snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class FMPQuote(_FMPModel):
    symbol: str
    name: str | None = None
    price: float | None = None
    changes_percentage: float | None = None
    change: float | None = None
    day_low: float | None = None
    day_high: float | None = None
    year_high: float | None = None
    year_low: float | None = None
    market_cap: float | None = None
    price_avg50: float | None = None
    price_avg200: float | None = None
    exchange: str | None = None
    volume: float | None = None
    avg_volume: float | None = None
    open: float | None = None
    previous_close: float | None = None
    eps: float | None = None
    pe: float | None = None
    earnings_announcement: str | None = None
    shares_outstanding: float | None = None
    timestamp: int | None = None


class FMPQuoteShort(_FMPModel):
    symbol: str
    price: float | None = None
    volume: float | None = None


class FMPCandle(_FMPModel):
    date: str
    open: float
    high: float
    low: float
    close: float
    volume: float = 0


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def fmt_money(value: float | None) -> str:
    return "N/A" if value is None else f"${value:,.2f}"


def fmt_signed(value: float | None, suffix: str = "") -> str:
    if value is None:
        return "N/A"
    return f"{'+' if value >= 0 else ''}{value:.2f}{suffix}"


def fmt_millions(value: float | None) -> str:
    return "N/A" if value is None else f"{value / 1_000_000:.2f}M"


def fmt_billions(value: float | None) -> str:
    return "N/A" if value is None else f"${value / 1_000_000_000:.2f}B"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class FMPClient:
    """Async FMP client. Construct with no key to get an inert instance."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.fmp_api_key
        self._base_url = (base_url or settings.fmp_base_url).rstrip("/")
        self._client = client

        if not self._api_key:
            logger.warning(
                "FMP API key not provided. Stock data features will be limited."
            )

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        client = self._client or get_http_client()
        query = dict(params or {})
        query["apikey"] = self._api_key
        return await fetch_json(client, f"{self._base_url}{path}", params=query)

    # -- quotes -------------------------------------------------------------

    async def get_quote(self, symbol: str) -> FMPQuote | None:
        """Full real-time quote, or None if unavailable."""
        if not self.is_available():
            logger.info("FMP quote request skipped - no API key (%s)", symbol)
            return None

        symbol = symbol.upper()
        data = await self._get("/stable/quote", {"symbol": symbol})
        if not data or not isinstance(data, list):
            logger.warning("No FMP quote data found for %s", symbol)
            return None

        try:
            quote = FMPQuote.model_validate(data[0])
        except ValidationError as e:
            logger.warning("Malformed FMP quote for %s: %s", symbol, e)
            return None

        logger.info(
            "FMP quote retrieved: %s price=%s change=%s%%",
            quote.symbol, quote.price, quote.changes_percentage,
        )
        return quote

    async def get_quote_light(self, symbol: str) -> FMPQuoteShort | None:
        """Price and volume only, from the quote-short endpoint."""
        if not self.is_available():
            logger.info("FMP quote-short request skipped - no API key (%s)", symbol)
            return None

        symbol = symbol.upper()
        data = await self._get("/stable/quote-short", {"symbol": symbol})
        if not data or not isinstance(data, list):
            logger.warning("No FMP quote-short data found for %s", symbol)
            return None

        try:
            return FMPQuoteShort.model_validate(data[0])
        except ValidationError as e:
            logger.warning("Malformed FMP quote-short for %s: %s", symbol, e)
            return None

    # -- movers -------------------------------------------------------------

    async def _get_movers(self, kind: str) -> list[FMPQuote]:
        if not self.is_available():
            logger.info("FMP %s request skipped - no API key", kind)
            return []

        data = await self._get(f"/api/v3/stock_market/{kind}")
        if not isinstance(data, list):
            logger.warning("No FMP %s data found", kind)
            return []

        movers = []
        for item in data:
            try:
                movers.append(FMPQuote.model_validate(item))
            except ValidationError:
                continue
        logger.info("FMP %s retrieved: %d symbols", kind, len(movers))
        return movers

    async def get_top_gainers(self) -> list[FMPQuote]:
        return await self._get_movers("gainers")

    async def get_top_losers(self) -> list[FMPQuote]:
        return await self._get_movers("losers")

    async def get_most_actives(self) -> list[FMPQuote]:
        return await self._get_movers("actives")

    # -- charts -------------------------------------------------------------

    async def get_intraday_chart(
        self,
        symbol: str,
        interval: str = "5min",
    ) -> list[FMPCandle]:
        """
        Intraday candles, oldest first.

        FMP returns the most recent candle first; the latest MAX_CANDLES
        are kept and reversed into chronological order.
        """
        if interval not in CHART_INTERVALS:
            raise ValueError(f"Unsupported chart interval: {interval}")
        if not self.is_available():
            logger.info("FMP chart request skipped - no API key (%s)", symbol)
            return []

        symbol = symbol.upper()
        data = await self._get(
            f"/stable/historical-chart/{interval}", {"symbol": symbol},
        )
        if not isinstance(data, list):
            logger.warning("No FMP chart data found for %s (%s)", symbol, interval)
            return []

        candles = []
        for item in data[:MAX_CANDLES]:
            try:
                candles.append(FMPCandle.model_validate(item))
            except ValidationError:
                continue
        candles.reverse()

        logger.info(
            "FMP chart retrieved: %s %s, %d candles",
            symbol, interval, len(candles),
        )
        return candles

    # -- display formatting -------------------------------------------------

    @staticmethod
    def format_quote(quote: FMPQuote) -> str:
        direction = "📈" if (quote.change or 0) >= 0 else "📉"
        name = f" - {quote.name}" if quote.name else ""
        return (
            f"**{quote.symbol}**{name}\n"
            f"{direction} **{fmt_money(quote.price)}** "
            f"{fmt_signed(quote.change)} ({fmt_signed(quote.changes_percentage, '%')})\n"
            "\n"
            "📊 **Trading Data**\n"
            f"• Open: {fmt_money(quote.open)}\n"
            f"• High: {fmt_money(quote.day_high)}\n"
            f"• Low: {fmt_money(quote.day_low)}\n"
            f"• Volume: {fmt_millions(quote.volume)}\n"
            f"• Avg Volume: {fmt_millions(quote.avg_volume)}\n"
            "\n"
            "📈 **Key Metrics**\n"
            f"• Market Cap: {fmt_billions(quote.market_cap)}\n"
            f"• P/E Ratio: {'N/A' if quote.pe is None else f'{quote.pe:.2f}'}\n"
            f"• EPS: {fmt_money(quote.eps)}\n"
            f"• 52W High: {fmt_money(quote.year_high)}\n"
            f"• 52W Low: {fmt_money(quote.year_low)}"
        )

    @staticmethod
    def format_quote_light(quote: FMPQuoteShort) -> str:
        return (
            f"**{quote.symbol}** last price {fmt_money(quote.price)}, "
            f"volume {fmt_millions(quote.volume)}"
        )

    @staticmethod
    def format_chart_summary(candles: list[FMPCandle]) -> str:
        if not candles:
            return "No chart data available"

        earliest, latest = candles[0], candles[-1]
        change = latest.close - earliest.close
        change_pct = (change / earliest.close * 100) if earliest.close else 0.0
        direction = "📈" if change >= 0 else "📉"
        high = max(c.high for c in candles)
        low = min(c.low for c in candles)
        total_volume = sum(c.volume for c in candles)

        return (
            f"**Intraday Chart Summary** ({len(candles)} data points)\n"
            f"{direction} Period Change: {fmt_signed(change)} "
            f"({fmt_signed(change_pct, '%')})\n"
            "\n"
            f"• Period High: {fmt_money(high)}\n"
            f"• Period Low: {fmt_money(low)}\n"
            f"• Latest: {fmt_money(latest.close)}\n"
            f"• Total Volume: {fmt_millions(total_volume)}"
        )

    @staticmethod
    def format_movers(movers: list[FMPQuote], title: str, limit: int = 5) -> str:
        if not movers:
            return f"No {title.lower()} data available"

        lines = []
        for i, stock in enumerate(movers[:limit], 1):
            pct = stock.changes_percentage or 0.0
            icon = "🟢" if pct >= 0 else "🔴"
            lines.append(
                f"{i}. {icon} **{stock.symbol}** - {fmt_money(stock.price)} "
                f"({fmt_signed(pct, '%')})"
            )
        return f"**{title}**\n" + "\n".join(lines)
