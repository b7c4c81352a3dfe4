# =============================================================================
# Services Package: External Integrations
# =============================================================================
#   - llm.py: multi-provider LLM abstraction (OpenRouter/OpenAI-compatible,
#     Anthropic), completion and streaming
#   - http_client.py: shared httpx client with timeout and retry
#   - fmp.py: quotes, intraday candles, market movers
#   - polygon.py: per-ticker news
#   - brave_search.py: news and web search
# =============================================================================
