# =============================================================================
# Executor Agent: Runs Plan Steps Against Data Providers
# =============================================================================
#
# For every plan step:
#   1. Build the routing text: title + description + context (ticker hint)
#   2. Pick the primary ticker and classify intent (agents/router.py)
#   3. Run the intent's branch, walking its fallback chain:
#
#      QUOTE            FMP quote → FMP quote-short → Brave web
#      CHART            FMP 5-min candles → Brave web
#      NEWS (ticker)    Polygon news → Brave news
#      NEWS (general)   Brave news
#      WEB              Brave web
#      MOVERS           FMP gainers/losers/actives (concurrent) → Brave news
#      COMBINED_TICKER  FMP quote + Brave news + Brave web (concurrent)
#      COMBINED_GENERAL Brave combined search
#
# Any exception escaping a branch is caught at the execute_step() boundary
# and becomes ExecutionResult(error=..., data=None) tagged with the
# provider of the intended branch. One failing step never stops a batch.
#
# Provider payloads are stored as JSON-ready dicts so results can be sent
# back to the /answer endpoint unchanged.
# =============================================================================

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from alpha_oracle.agents.router import (
    Intent,
    classify_intent,
    movers_lists_for,
    primary_ticker,
)
from alpha_oracle.config import Settings, settings as default_settings
from alpha_oracle.models.research import ExecutionResult, PlanStep, Provider
from alpha_oracle.services.brave_search import BraveSearchClient
from alpha_oracle.services.fmp import FMPClient
from alpha_oracle.services.polygon import PolygonClient

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ExecutionResult, int], Awaitable[None] | None]

_MOVERS_TITLES = {
    "gainers": "Top Gainers",
    "losers": "Top Losers",
    "actives": "Most Active",
}


def _wire(items: list[Any]) -> list[dict[str, Any]]:
    return [item.to_wire() for item in items]


class Executor:
    """Routes plan steps to providers and normalises their output."""

    def __init__(
        self,
        fmp: FMPClient,
        brave: BraveSearchClient,
        polygon: PolygonClient,
    ) -> None:
        self.fmp = fmp
        self.brave = brave
        self.polygon = polygon

    # -------------------------------------------------------------------------
    # Availability probes
    # -------------------------------------------------------------------------

    def has_fmp_access(self) -> bool:
        return self.fmp.is_available()

    def has_polygon_access(self) -> bool:
        return self.polygon.is_available()

    def has_brave_access(self) -> bool:
        return self.brave.is_available()

    def availability(self) -> dict[str, bool]:
        return {
            "fmp": self.has_fmp_access(),
            "polygon": self.has_polygon_access(),
            "brave": self.has_brave_access(),
        }

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def execute_step(
        self,
        step: PlanStep,
        context: str | None = None,
    ) -> ExecutionResult:
        """
        Execute one plan step. Never raises.

        Args:
            step: The plan step to run.
            context: Extra routing text appended to the step text. The
                orchestrator passes the tickers found in the user query.
        """
        text = f"{step.title} {step.description} {context or ''}".strip()
        ticker = primary_ticker(text)
        intent = classify_intent(text, ticker)
        query = f"{step.title} {step.description}"

        logger.info(
            "Executing step '%s': intent=%s ticker=%s",
            step.title, intent.value, ticker,
        )

        try:
            if intent is Intent.MOVERS:
                return await self._execute_movers(step, text)
            if intent is Intent.QUOTE:
                return await self._execute_quote(step, ticker)
            if intent is Intent.CHART:
                return await self._execute_chart(step, ticker)
            if intent is Intent.NEWS and ticker:
                return await self._execute_ticker_news(step, ticker)
            if intent is Intent.NEWS:
                return await self._execute_general_news(step, query)
            if intent is Intent.WEB:
                return await self._execute_web(step, query)
            if intent is Intent.COMBINED_TICKER:
                return await self._execute_combined_ticker(step, ticker)
            return await self._execute_combined_general(step, query)
        except Exception as e:
            logger.exception("Step execution failed for '%s'", step.title)
            return ExecutionResult(
                step=step,
                provider=self._intended_provider(intent, ticker),
                data=None,
                error=str(e) or type(e).__name__,
            )

    async def execute_steps(
        self,
        steps: list[PlanStep],
        on_progress: ProgressCallback | None = None,
        context: str | None = None,
    ) -> list[ExecutionResult]:
        """
        Execute steps sequentially, marking each running → done/failed.

        `on_progress(result, index)` is called after every step and awaited
        when it returns an awaitable.
        """
        results: list[ExecutionResult] = []
        for index, step in enumerate(steps):
            step.status = "running"
            result = await self.execute_step(step, context)
            step.status = "done" if result.ok else "failed"
            step.summary = result.summary or result.error
            results.append(result)

            if on_progress is not None:
                outcome = on_progress(result, index)
                if inspect.isawaitable(outcome):
                    await outcome
        return results

    def _intended_provider(self, intent: Intent, ticker: str | None) -> Provider:
        if intent is Intent.NEWS and ticker and self.has_polygon_access():
            return Provider.POLYGON_NEWS
        return {
            Intent.MOVERS: Provider.FMP_MOVERS,
            Intent.QUOTE: Provider.FMP_QUOTE,
            Intent.CHART: Provider.FMP_CHART,
            Intent.NEWS: Provider.BRAVE_NEWS,
            Intent.WEB: Provider.BRAVE_WEB,
        }.get(intent, Provider.COMBINED)

    # -------------------------------------------------------------------------
    # Branches
    # -------------------------------------------------------------------------

    async def _execute_quote(self, step: PlanStep, ticker: str) -> ExecutionResult:
        quote = await self.fmp.get_quote(ticker)
        if quote is not None:
            return ExecutionResult(
                step=step,
                provider=Provider.FMP_QUOTE,
                data=quote.to_wire(),
                summary=FMPClient.format_quote(quote),
            )

        light = await self.fmp.get_quote_light(ticker)
        if light is not None:
            logger.info("Using FMP quote-short for %s", ticker)
            return ExecutionResult(
                step=step,
                provider=Provider.FMP_QUOTE_LIGHT,
                data=light.to_wire(),
                summary=FMPClient.format_quote_light(light),
            )

        logger.info("No quote data for %s, falling back to web search", ticker)
        web = await self.brave.search_web(f"{ticker} stock price quote")
        return ExecutionResult(
            step=step,
            provider=Provider.BRAVE_WEB,
            data=_wire(web),
            summary=f"Found {len(web)} web results for {ticker} stock information",
        )

    async def _execute_chart(self, step: PlanStep, ticker: str) -> ExecutionResult:
        candles = await self.fmp.get_intraday_chart(ticker, "5min")
        if candles:
            return ExecutionResult(
                step=step,
                provider=Provider.FMP_CHART,
                data=_wire(candles),
                summary=FMPClient.format_chart_summary(candles),
            )

        logger.info("No chart data for %s, falling back to web search", ticker)
        web = await self.brave.search_web(f"{ticker} stock chart intraday")
        return ExecutionResult(
            step=step,
            provider=Provider.BRAVE_WEB,
            data=_wire(web),
            summary=f"Found {len(web)} web results for {ticker} chart information",
        )

    async def _execute_ticker_news(
        self,
        step: PlanStep,
        ticker: str,
    ) -> ExecutionResult:
        if self.has_polygon_access():
            articles = await self.polygon.get_news(ticker, limit=10)
            if articles:
                return ExecutionResult(
                    step=step,
                    provider=Provider.POLYGON_NEWS,
                    data=_wire(articles),
                    summary=PolygonClient.format_news(articles, 5),
                )
            logger.info("No Polygon news for %s, falling back to Brave", ticker)

        news = await self.brave.search_news(f"{ticker} stock")
        return ExecutionResult(
            step=step,
            provider=Provider.BRAVE_NEWS,
            data=_wire(news),
            summary=BraveSearchClient.format_news_items(news, 5),
        )

    async def _execute_general_news(
        self,
        step: PlanStep,
        query: str,
    ) -> ExecutionResult:
        news = await self.brave.search_news(query)
        return ExecutionResult(
            step=step,
            provider=Provider.BRAVE_NEWS,
            data=_wire(news),
            summary=BraveSearchClient.format_news_items(news, 5),
        )

    async def _execute_web(self, step: PlanStep, query: str) -> ExecutionResult:
        web = await self.brave.search_web(query)
        return ExecutionResult(
            step=step,
            provider=Provider.BRAVE_WEB,
            data=_wire(web),
            summary=BraveSearchClient.format_web_results(web, 5),
        )

    async def _execute_movers(self, step: PlanStep, text: str) -> ExecutionResult:
        kinds = movers_lists_for(text)
        fetchers = {
            "gainers": self.fmp.get_top_gainers,
            "losers": self.fmp.get_top_losers,
            "actives": self.fmp.get_most_actives,
        }
        lists = await asyncio.gather(*(fetchers[kind]() for kind in kinds))
        movers = dict(zip(kinds, lists))

        if any(movers.values()):
            summary = "\n\n".join(
                FMPClient.format_movers(movers[kind], _MOVERS_TITLES[kind])
                for kind in kinds
            )
            return ExecutionResult(
                step=step,
                provider=Provider.FMP_MOVERS,
                data={kind: _wire(items) for kind, items in movers.items()},
                summary=summary,
            )

        logger.info("No FMP movers data, falling back to news search")
        news = await self.brave.search_news("stock market movers today")
        return ExecutionResult(
            step=step,
            provider=Provider.BRAVE_NEWS,
            data=_wire(news),
            summary=BraveSearchClient.format_news_items(news, 5),
        )

    async def _execute_combined_ticker(
        self,
        step: PlanStep,
        ticker: str,
    ) -> ExecutionResult:
        quote, news, web = await asyncio.gather(
            self.fmp.get_quote(ticker),
            self.brave.search_news(f"{ticker} stock"),
            self.brave.search_web(f"{ticker} company"),
        )

        summary = ""
        if quote is not None and quote.price is not None:
            pct = quote.changes_percentage or 0.0
            summary += (
                f"**Quote**: ${quote.price:.2f} "
                f"({'+' if pct >= 0 else ''}{pct:.2f}%)\n\n"
            )
        summary += f"**News**: {len(news)} articles found\n"
        summary += f"**Web**: {len(web)} results found"

        return ExecutionResult(
            step=step,
            provider=Provider.COMBINED,
            data={
                "quote": quote.to_wire() if quote is not None else None,
                "news": _wire(news[:5]),
                "web": _wire(web[:3]),
            },
            summary=summary,
        )

    async def _execute_combined_general(
        self,
        step: PlanStep,
        query: str,
    ) -> ExecutionResult:
        found = await self.brave.search_all(query)
        news, web = found["news"], found["web"]
        return ExecutionResult(
            step=step,
            provider=Provider.COMBINED,
            data={"news": _wire(news[:5]), "web": _wire(web[:5])},
            summary=f"Found {len(news)} news articles and {len(web)} web results",
        )


def create_executor(config: Settings | None = None) -> Executor:
    """Build an Executor from configured provider keys."""
    config = config or default_settings
    return Executor(
        fmp=FMPClient(config.fmp_api_key, config.fmp_base_url),
        brave=BraveSearchClient(config.brave_search_api_key, config.brave_base_url),
        polygon=PolygonClient(config.polygon_api_key, config.polygon_base_url),
    )
