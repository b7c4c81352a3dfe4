# =============================================================================
# Step Router: Ticker Extraction and Intent Classification
# =============================================================================
#
# Decides which provider branch runs a plan step. Classification is
# rule-based, with no LLM call, so routing is deterministic and testable:
#
#   ROUTING_RULES = [(predicate, intent), ...]   first match wins
#
#   1. MOVERS  gainers / losers / most active
#   2. QUOTE   price / volume / metrics       (needs a ticker)
#   3. CHART   chart / intraday / candles     (needs a ticker)
#   4. NEWS    news / headlines / recent
#   5. WEB     company / about / search
#   6. COMBINED_TICKER or COMBINED_GENERAL    (nothing matched)
#
# Keywords match on word boundaries with an optional plural suffix, so
# "pe" matches "pe ratio" but not "people".
# =============================================================================

from __future__ import annotations

import re
from collections.abc import Callable
from enum import Enum

# Uppercase tokens that look like tickers but are common acronyms
TICKER_DENYLIST = frozenset({
    "AI", "IT", "US", "UK", "EU", "CEO", "CFO", "CTO", "IPO", "ETF",
    "API", "URL", "USD", "NYSE", "NASDAQ", "GDP", "CPI", "FED", "SEC",
    "EPS", "USA", "FAQ", "ATH",
})

_TICKER_PATTERN = re.compile(r"\b[A-Z]{2,5}\b")


class Intent(str, Enum):
    MOVERS = "movers"
    QUOTE = "quote"
    CHART = "chart"
    NEWS = "news"
    WEB = "web"
    COMBINED_TICKER = "combined_ticker"
    COMBINED_GENERAL = "combined_general"


# ---------------------------------------------------------------------------
# Tickers
# ---------------------------------------------------------------------------


def extract_tickers(text: str) -> list[str]:
    """
    Candidate ticker symbols in order of first appearance.

    Case-sensitive: only 2-5 letter all-caps words count, and known
    acronyms (AI, CEO, ETF, ...) are skipped.
    """
    tickers: list[str] = []
    for match in _TICKER_PATTERN.findall(text):
        if match not in TICKER_DENYLIST and match not in tickers:
            tickers.append(match)
    return tickers


def primary_ticker(text: str) -> str | None:
    tickers = extract_tickers(text)
    return tickers[0] if tickers else None


# ---------------------------------------------------------------------------
# Keyword families
# ---------------------------------------------------------------------------


def _keyword_pattern(keywords: list[str]) -> re.Pattern[str]:
    alternatives = "|".join(
        r"\s+".join(re.escape(word) for word in keyword.split())
        for keyword in keywords
    )
    return re.compile(rf"\b(?:{alternatives})(?:e?s)?\b", re.IGNORECASE)


MOVERS_KEYWORDS = [
    "movers", "gainers", "losers", "active", "most active", "top stocks",
    "best performing", "worst performing",
]
QUOTE_KEYWORDS = [
    "price", "quote", "trading", "volume", "market cap", "pe", "eps",
    "metrics",
]
CHART_KEYWORDS = [
    "chart", "intraday", "technical", "graph", "candlestick", "5min", "5 min",
]
NEWS_KEYWORDS = [
    "news", "article", "report", "announcement", "headline", "latest",
    "recent",
]
WEB_KEYWORDS = ["company", "about", "website", "info", "search", "find"]

_MOVERS = _keyword_pattern(MOVERS_KEYWORDS)
_QUOTE = _keyword_pattern(QUOTE_KEYWORDS)
_CHART = _keyword_pattern(CHART_KEYWORDS)
_NEWS = _keyword_pattern(NEWS_KEYWORDS)
_WEB = _keyword_pattern(WEB_KEYWORDS)

_GAINER = _keyword_pattern(["gainer"])
_LOSER = _keyword_pattern(["loser"])
_ACTIVE = _keyword_pattern(["active"])


RoutingPredicate = Callable[[str, str | None], bool]

ROUTING_RULES: list[tuple[RoutingPredicate, Intent]] = [
    (lambda text, ticker: bool(_MOVERS.search(text)), Intent.MOVERS),
    (lambda text, ticker: bool(ticker and _QUOTE.search(text)), Intent.QUOTE),
    (lambda text, ticker: bool(ticker and _CHART.search(text)), Intent.CHART),
    (lambda text, ticker: bool(_NEWS.search(text)), Intent.NEWS),
    (lambda text, ticker: bool(_WEB.search(text)), Intent.WEB),
]


def classify_intent(text: str, ticker: str | None = None) -> Intent:
    """Return the intent of the first matching rule."""
    for predicate, intent in ROUTING_RULES:
        if predicate(text, ticker):
            return intent
    return Intent.COMBINED_TICKER if ticker else Intent.COMBINED_GENERAL


def movers_lists_for(text: str) -> list[str]:
    """
    Which FMP movers lists a step asks for.

    Returns a subset of ["gainers", "losers", "actives"]; gainers and
    losers when the text names none of them.
    """
    lists = []
    if _GAINER.search(text):
        lists.append("gainers")
    if _LOSER.search(text):
        lists.append("losers")
    if _ACTIVE.search(text):
        lists.append("actives")
    return lists or ["gainers", "losers"]
