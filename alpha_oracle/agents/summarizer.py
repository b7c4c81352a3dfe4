# =============================================================================
# Summarizer Agent: Step Summaries and the Final Streamed Answer
# =============================================================================
#
# Three jobs:
#   summarize_result()      one step  → short neutral summary
#   summarize_results()     all steps → one overall summary (the `summary`
#                           SSE event)
#   generate_final_answer() all steps → streamed markdown answer
#
# Summaries never raise. Any LLM failure degrades to deterministic text
# built from the step data (fallback_summary()).
#
# The final answer is grounded in a text context assembled by
# build_answer_context(): provider payloads are rendered as readable
# blocks (quote fields, headlines, candles, movers) instead of raw JSON,
# so the model quotes exact numbers.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from alpha_oracle.config import settings
from alpha_oracle.models.research import (
    NEWS_PROVIDERS,
    ChatMessage,
    ExecutionResult,
    Provider,
)
from alpha_oracle.services.brave_search import BraveNewsResult, BraveWebResult
from alpha_oracle.services.fmp import (
    FMPCandle,
    FMPQuote,
    FMPQuoteShort,
    fmt_money,
    fmt_signed,
)
from alpha_oracle.services.llm import LLMProvider
from alpha_oracle.services.polygon import PolygonNews

logger = logging.getLogger(__name__)

SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 200
COMBINED_SUMMARY_MAX_TOKENS = 300
ANSWER_TEMPERATURE = 0.2
ANSWER_MAX_TOKENS = 16000

# Existing summaries inside this length band are kept without an LLM call
GOOD_SUMMARY_MIN_CHARS = 20
GOOD_SUMMARY_MAX_CHARS = 200

STEP_DATA_CHARS = 2000
COMBINED_DATA_CHARS = 200

NO_RESULTS_SUMMARY = (
    "No research steps were executed, so there are no findings to summarize."
)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SUMMARY_PROMPT = (
    "You are an information summarizer for The Alpha Oracle financial "
    "analyst agent. You are given a question, data retrieved at various "
    "steps, and the latest action as well as what was required for that "
    "action.\n\n"
    "Your job is to summarize the information concisely so users can "
    "quickly understand the results.\n\n"
    "Rules:\n"
    "- Summary should be less than 50 words unless there's a lot of data\n"
    "- If there's extensive data, use line breaks to build paragraphs (but "
    "still be concise)\n"
    "- Focus on the most important findings\n"
    "- Include key numbers and percentages\n"
    "- Be neutral and factual\n"
    "- Do not add speculation or recommendations\n\n"
    "Return ONLY the summary text, no prefixes or formatting markers."
)


def build_answer_prompt(question: str) -> str:
    return (
        "## 1. TASK CONTEXT\n"
        "You are The Alpha Oracle, a premier financial analyst AI providing "
        "comprehensive market analysis to traders and investors. Your role is "
        "to analyze the provided financial data and deliver accurate, "
        "data-driven insights.\n\n"
        "## 2. TONE CONTEXT\n"
        "- Professional and authoritative yet accessible\n"
        "- Data-driven and factual\n"
        "- Neutral and objective (no investment advice)\n"
        "- Clear and concise\n\n"
        "## 3. BACKGROUND DATA AND CONTEXT\n"
        "You have been provided with REAL, CURRENT MARKET DATA that may "
        "include:\n"
        "- Stock quotes with prices, changes, and percentages\n"
        "- Financial metrics (market cap, P/E ratios, volumes)\n"
        "- Latest news articles with titles and summaries\n"
        "- Market movers (gainers/losers/most active)\n"
        "- Intraday chart data\n\n"
        "This data has been gathered from Financial Modeling Prep (FMP) for "
        "market data, Polygon.io for ticker news, and Brave Search for news "
        "and web results.\n\n"
        "## 4. DETAILED TASK DESCRIPTION & RULES\n"
        "YOUR PRIMARY TASK: Analyze the provided data and answer the user's "
        "question using ONLY the specific data given.\n\n"
        "CRITICAL RULES:\n"
        '1. **USE THE PROVIDED DATA** - Never say "data was not provided" or '
        '"I would need data"\n'
        "2. **Be specific** - Quote exact prices, percentages, and metrics "
        "from the data\n"
        "3. **Reference sources** - Mention which data points come from which "
        "sources\n"
        "4. **Stay factual** - Only state what the data shows, no speculation\n"
        "5. **Format clearly** - Use markdown for readability\n\n"
        "## 5. EXAMPLES\n"
        'Example of GOOD response: "Based on the provided data, NVDA is '
        "currently trading at $890.25, up +4.5% today. The latest news shows "
        "strong momentum with the Spectrum-XGS Ethernet launch. Market cap "
        'stands at $2.2T with a P/E ratio of 65.4."\n\n'
        'Example of BAD response: "I notice you mentioned gathering data, but '
        "the data content appears to be empty. I would need specific metrics "
        'to provide analysis."\n\n'
        "## 6. CONVERSATION HISTORY CONTEXT\n"
        "Previous messages are provided when relevant to maintain "
        "continuity.\n\n"
        "## 7. IMMEDIATE TASK\n"
        f"Analyze the financial data provided below and answer: {question}\n\n"
        "## 8. OUTPUT FORMATTING\n"
        "- Clear headings using ## for main sections\n"
        "- Bullet points for key metrics\n"
        "- **Bold** for important numbers\n"
        "- Tables when comparing multiple items\n\n"
        "## 9. RESPONSE FRAMEWORK\n"
        "Begin your response by immediately using the provided data. Never "
        "question whether data exists - it has been provided in the context "
        "below."
    )


# ---------------------------------------------------------------------------
# Deterministic fallbacks
# ---------------------------------------------------------------------------


def _count(data: Any, key: str) -> int:
    if isinstance(data, dict):
        return len(data.get(key) or [])
    return 0


def fallback_summary(result: ExecutionResult) -> str:
    """Summary text built from the result alone, without an LLM."""
    title = result.step.title
    if result.error:
        return f"Error executing {title}: {result.error}"
    if not result.data:
        return f"No data found for {title}"

    data = result.data
    provider = result.provider

    if provider in (Provider.FMP_QUOTE, Provider.FMP_QUOTE_LIGHT) and isinstance(data, dict):
        symbol = data.get("symbol", "?")
        price = data.get("price")
        price_text = f"${price:.2f}" if isinstance(price, (int, float)) else "N/A"
        pct = data.get("changesPercentage")
        if isinstance(pct, (int, float)):
            return f"{symbol}: {price_text} ({pct:.2f}%)"
        return f"{symbol}: {price_text}"
    if provider in NEWS_PROVIDERS and isinstance(data, list):
        return f"Found {len(data)} news articles"
    if provider is Provider.BRAVE_WEB and isinstance(data, list):
        return f"Found {len(data)} web results"
    if provider is Provider.FMP_CHART and isinstance(data, list):
        return f"Retrieved {len(data)} chart data points"
    if provider is Provider.FMP_MOVERS and isinstance(data, dict):
        total = sum(len(items or []) for items in data.values())
        return f"Retrieved {total} market movers"
    if provider is Provider.COMBINED and isinstance(data, dict):
        return (
            f"Found {_count(data, 'news')} news articles and "
            f"{_count(data, 'web')} web results"
        )
    return f"Completed {title}"


def _data_preview(data: Any, limit: int) -> str:
    return json.dumps(data, default=str)[:limit]


# ---------------------------------------------------------------------------
# Step summaries
# ---------------------------------------------------------------------------


async def _complete_summary(
    llm: LLMProvider,
    content: str,
    max_tokens: int = SUMMARY_MAX_TOKENS,
) -> str:
    response = await llm.complete(
        messages=[{"role": "user", "content": content}],
        system=SUMMARY_PROMPT,
        temperature=SUMMARY_TEMPERATURE,
        max_tokens=max_tokens,
    )
    text = response.content.strip()
    if not text:
        raise ValueError("Empty summary from LLM")
    return text


async def summarize_result(
    result: ExecutionResult,
    question: str,
    llm: LLMProvider,
) -> str:
    """
    Concise summary of one execution result.

    An existing summary of reasonable length is returned unchanged; one
    that is too short or too long is tightened by the LLM.
    """
    if result.summary:
        length = len(result.summary)
        if GOOD_SUMMARY_MIN_CHARS < length < GOOD_SUMMARY_MAX_CHARS:
            return result.summary
        try:
            return await _complete_summary(
                llm,
                f"Question: {question}\n"
                f"Current summary: {result.summary}\n\n"
                "Make this summary more concise and informative if needed, "
                "or return as-is if it's already good.",
            )
        except Exception:
            logger.exception("Failed to enhance summary for '%s'", result.step.title)
            return result.summary

    try:
        return await _complete_summary(
            llm,
            f"Question: {question}\n"
            f"Step: {result.step.title}\n"
            f"Action: {result.step.description}\n"
            f"Data Retrieved: {_data_preview(result.data, STEP_DATA_CHARS)}...\n\n"
            "Provide a concise summary of what was found.",
        )
    except Exception:
        logger.exception("Error generating summary for '%s'", result.step.title)
        return fallback_summary(result)


async def summarize_results(
    results: list[ExecutionResult],
    question: str,
    llm: LLMProvider,
) -> str:
    """Overall summary of a research turn. Never raises."""
    if not results:
        return NO_RESULTS_SUMMARY

    combined = "\n\n".join(
        f"{r.step.title}: "
        f"{r.summary or r.error or _data_preview(r.data, COMBINED_DATA_CHARS)}"
        for r in results
    )

    try:
        summary = await _complete_summary(
            llm,
            f"Question: {question}\n\n"
            f"Data gathered from multiple steps:\n{combined}\n\n"
            "Provide an overall summary of all findings.",
            max_tokens=COMBINED_SUMMARY_MAX_TOKENS,
        )
    except Exception:
        logger.exception("Error generating combined summary, using fallbacks")
        return " ".join(r.summary or fallback_summary(r) for r in results)

    logger.info(
        "Combined summary generated: %d results, %d chars",
        len(results), len(summary),
    )
    return summary


# ---------------------------------------------------------------------------
# Final-answer context
# ---------------------------------------------------------------------------


def _grouped(value: float | None) -> str:
    return "N/A" if value is None else f"{value:,.0f}"


def _dollars(value: float | None) -> str:
    return "N/A" if value is None else f"${value:,.0f}"


def _render_quote(data: dict[str, Any]) -> str:
    quote = FMPQuote.model_validate(data)
    lines = [
        f"**STOCK QUOTE DATA FOR {quote.symbol}:**",
        f"- Current Price: {fmt_money(quote.price)}",
        f"- Change Today: {fmt_signed(quote.change)} "
        f"({fmt_signed(quote.changes_percentage, '%')})",
        f"- Day Range: {fmt_money(quote.day_low)} - {fmt_money(quote.day_high)}",
        f"- 52 Week Range: {fmt_money(quote.year_low)} - {fmt_money(quote.year_high)}",
        f"- Market Cap: {_dollars(quote.market_cap)}",
        f"- Volume: {_grouped(quote.volume)} shares",
        f"- Avg Volume: {_grouped(quote.avg_volume)} shares",
    ]
    if quote.pe:
        lines.append(f"- P/E Ratio: {quote.pe:.2f}")
    if quote.eps:
        lines.append(f"- EPS: ${quote.eps:.2f}")
    if quote.previous_close:
        lines.append(f"- Previous Close: ${quote.previous_close:.2f}")
    if quote.open:
        lines.append(f"- Today's Open: ${quote.open:.2f}")
    return "\n".join(lines)


def _render_quote_light(data: dict[str, Any]) -> str:
    quote = FMPQuoteShort.model_validate(data)
    return (
        f"**LIGHT QUOTE DATA FOR {quote.symbol}:**\n"
        f"- Last Price: {fmt_money(quote.price)}\n"
        f"- Volume: {_grouped(quote.volume)} shares"
    )


def _render_brave_news(items: list[Any]) -> str:
    news = [BraveNewsResult.model_validate(item) for item in items]
    parts = [f"**NEWS DATA ({len(news)} articles found):**\n"]
    for i, article in enumerate(news[:5], 1):
        parts.append(
            f"Article {i}:\n"
            f"- Title: **{article.title}**\n"
            f"- Summary: {article.description or 'No description'}\n"
            f"- Source: {article.source} ({article.url})\n"
            f"- Time: {article.age or 'Recent'}\n"
        )
    return "\n".join(parts)


def _render_polygon_news(items: list[Any]) -> str:
    news = [PolygonNews.model_validate(item) for item in items]
    parts = [f"**NEWS DATA ({len(news)} articles found):**\n"]
    for i, article in enumerate(news[:5], 1):
        parts.append(
            f"Article {i}:\n"
            f"- Title: **{article.title}**\n"
            f"- Summary: {article.description or 'No description'}\n"
            f"- Source: {article.publisher.name or 'Unknown'} "
            f"({article.article_url})\n"
            f"- Time: {article.published_utc or 'Recent'}\n"
        )
    return "\n".join(parts)


def _render_web(items: list[Any]) -> str:
    web = [BraveWebResult.model_validate(item) for item in items]
    parts = [f"**WEB SEARCH RESULTS ({len(web)} found):**\n"]
    for i, result in enumerate(web[:5], 1):
        parts.append(
            f"Result {i}:\n"
            f"- Title: **{result.title}**\n"
            f"- Description: {result.description or 'No description'}\n"
            f"- URL: {result.url}\n"
        )
    return "\n".join(parts)


def _render_chart(items: list[Any]) -> str:
    candles = [FMPCandle.model_validate(item) for item in items]
    if not candles:
        return "Chart Data: no data points"
    lines = [f"Chart Data ({len(candles)} data points, most recent first):"]
    for candle in reversed(candles[-5:]):
        lines.append(
            f"- {candle.date}: Open ${candle.open:.2f}, Close ${candle.close:.2f}, "
            f"High ${candle.high:.2f}, Low ${candle.low:.2f}"
        )
    return "\n".join(lines)


def _render_movers(data: dict[str, Any]) -> str:
    sections = []
    for key, title in (
        ("gainers", "Top Gainers"),
        ("losers", "Top Losers"),
        ("actives", "Most Active"),
    ):
        movers = [FMPQuote.model_validate(item) for item in data.get(key) or []]
        if not movers:
            continue
        lines = [f"**{title}:**"]
        for i, mover in enumerate(movers[:5], 1):
            lines.append(
                f"{i}. {mover.symbol}: {fmt_money(mover.price)} "
                f"({fmt_signed(mover.changes_percentage, '%')})"
            )
        sections.append("\n".join(lines))
    return "\n\n".join(sections) or "No market movers data"


def _render_combined(data: dict[str, Any]) -> str:
    sections = []
    if data.get("quote"):
        sections.append(_render_quote(data["quote"]))
    if data.get("news"):
        sections.append(_render_brave_news(data["news"]))
    if data.get("web"):
        sections.append(_render_web(data["web"]))
    return "\n\n".join(sections) or "No combined data"


def _render_json(data: Any) -> str:
    return f"Data: {json.dumps(data, indent=2, default=str)}"


_RENDERERS = {
    Provider.FMP_QUOTE: _render_quote,
    Provider.FMP_QUOTE_LIGHT: _render_quote_light,
    Provider.BRAVE_NEWS: _render_brave_news,
    Provider.POLYGON_NEWS: _render_polygon_news,
    Provider.BRAVE_WEB: _render_web,
    Provider.FMP_CHART: _render_chart,
    Provider.FMP_MOVERS: _render_movers,
    Provider.COMBINED: _render_combined,
}


def render_result_data(result: ExecutionResult) -> str:
    """Provider-specific text rendering of a result's data."""
    renderer = _RENDERERS.get(result.provider, _render_json)
    try:
        return renderer(result.data)
    except (ValueError, TypeError, AttributeError):
        # Payload does not match the provider's shape (e.g. edited by the client)
        logger.debug("Rendering %s data as JSON", result.provider.value)
        return _render_json(result.data)


def build_answer_context(
    results: list[ExecutionResult],
    char_limit: int | None = None,
) -> str:
    """Text context for the final answer, one block per result."""
    limit = settings.answer_block_char_limit if char_limit is None else char_limit
    blocks = []
    for index, result in enumerate(results, 1):
        block = (
            f"### Data Source {index}: {result.step.title}\n"
            f"**Provider:** {result.provider.value}\n\n"
        )
        if result.data:
            body = render_result_data(result)
            if len(body) > limit:
                body = body[:limit] + "..."
            block += body + "\n"
        if result.summary:
            block += f"\nSummary: {result.summary}\n"
        elif result.error:
            block += f"\nError: {result.error}\n"
        blocks.append(block)
    return "\n---\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Final answer
# ---------------------------------------------------------------------------


async def generate_final_answer(
    question: str,
    results: list[ExecutionResult],
    history: list[ChatMessage] | None,
    llm: LLMProvider,
) -> AsyncIterator[str]:
    """
    Stream the final answer as text increments.

    Upstream LLM errors are logged and re-raised to the consumer, which
    reports them as a terminal `error` event.
    """
    context = build_answer_context(results)
    messages = [message.to_llm() for message in history or []]
    messages.append({
        "role": "user",
        "content": (
            "## MARKET DATA COLLECTED\n\n"
            f"{context}\n\n"
            "## YOUR ANALYSIS TASK\n\n"
            "Using ONLY the specific data provided above, answer this "
            f"question: **{question}**\n\n"
            "Remember:\n"
            "- USE the exact prices, percentages, and metrics shown above\n"
            "- REFERENCE specific news headlines and data points\n"
            '- NEVER say "data was not provided" - it\'s all above\n'
            "- BE specific with numbers and sources"
        ),
    })

    logger.info(
        "Starting final answer stream: %d results, %d context chars",
        len(results), len(context),
    )

    chunks = 0
    try:
        async for text in llm.stream(
            messages=messages,
            system=build_answer_prompt(question),
            temperature=ANSWER_TEMPERATURE,
            max_tokens=ANSWER_MAX_TOKENS,
        ):
            chunks += 1
            yield text
    except Exception:
        logger.exception("Error during answer streaming after %d chunks", chunks)
        raise

    logger.info("Final answer stream completed: %d chunks", chunks)
