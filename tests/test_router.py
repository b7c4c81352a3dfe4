# =============================================================================
# Unit Tests — Step Router
# =============================================================================
#
# Ticker extraction and rule-based intent classification. Pure functions,
# no mocks needed.
# =============================================================================

from __future__ import annotations

from alpha_oracle.agents.router import (
    ROUTING_RULES,
    Intent,
    classify_intent,
    extract_tickers,
    movers_lists_for,
    primary_ticker,
)


# ---------------------------------------------------------------------------
# Test: Ticker Extraction
# ---------------------------------------------------------------------------


class TestExtractTickers:
    def test_skips_denylisted_acronyms(self):
        assert primary_ticker("Check AI sentiment for NVDA") == "NVDA"

    def test_order_preserving_dedupe(self):
        assert extract_tickers("AAPL vs MSFT, then AAPL again") == ["AAPL", "MSFT"]

    def test_case_sensitive(self):
        assert extract_tickers("what about nvda today") == []

    def test_single_letters_ignored(self):
        assert extract_tickers("I think F is cheap") == []

    def test_long_words_ignored(self):
        assert extract_tickers("BREAKING news on TSLA") == ["TSLA"]

    def test_all_denylisted(self):
        text = "The CEO and CFO discussed the IPO on NYSE in the US"
        assert extract_tickers(text) == []
        assert primary_ticker(text) is None


# ---------------------------------------------------------------------------
# Test: Intent Classification
# ---------------------------------------------------------------------------


class TestClassifyIntent:
    def test_price_and_news_routes_to_quote(self):
        text = "Get AAPL price and news"
        assert classify_intent(text, primary_ticker(text)) == Intent.QUOTE

    def test_quote_requires_ticker(self):
        assert classify_intent("check the price of gold", None) == Intent.COMBINED_GENERAL

    def test_movers_win_over_everything(self):
        assert classify_intent("Top gainers price news", "AAPL") == Intent.MOVERS

    def test_most_active(self):
        assert classify_intent("Show most active stocks", None) == Intent.MOVERS

    def test_chart(self):
        assert classify_intent("Pull the NVDA intraday chart", "NVDA") == Intent.CHART

    def test_chart_without_ticker_is_not_chart(self):
        assert classify_intent("explain a candlestick", None) != Intent.CHART

    def test_news_with_ticker(self):
        assert classify_intent("Get NVDA news", "NVDA") == Intent.NEWS

    def test_news_without_ticker(self):
        assert classify_intent("Latest headlines on inflation", None) == Intent.NEWS

    def test_web(self):
        assert classify_intent("Find the company website", None) == Intent.WEB

    def test_combined_ticker_fallback(self):
        assert classify_intent("Research NVDA", "NVDA") == Intent.COMBINED_TICKER

    def test_combined_general_fallback(self):
        text = "Market overview: let me look at how the markets are doing"
        assert classify_intent(text, None) == Intent.COMBINED_GENERAL

    def test_keywords_match_whole_words(self):
        # "pe" inside "people", "info" inside "informative"
        text = "What people think is informative"
        assert classify_intent(text, "NVDA") == Intent.COMBINED_TICKER

    def test_plural_keywords(self):
        assert classify_intent("Scan the articles", None) == Intent.NEWS

    def test_case_insensitive_keywords(self):
        assert classify_intent("NVDA PRICE", "NVDA") == Intent.QUOTE

    def test_rule_table_order(self):
        intents = [intent for _, intent in ROUTING_RULES]
        assert intents == [
            Intent.MOVERS, Intent.QUOTE, Intent.CHART, Intent.NEWS, Intent.WEB,
        ]


class TestMoversLists:
    def test_default_is_gainers_and_losers(self):
        assert movers_lists_for("market movers today") == ["gainers", "losers"]

    def test_gainers_only(self):
        assert movers_lists_for("top gainers") == ["gainers"]

    def test_actives(self):
        assert movers_lists_for("most active and biggest losers") == ["losers", "actives"]
