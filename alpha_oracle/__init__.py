# =============================================================================
# Alpha Oracle: Conversational Financial Research Assistant
# =============================================================================
# Turns a market question into a short research plan, runs each step against
# market-data and search providers, and streams progress, a summary and a
# grounded narrative answer over Server-Sent Events.
#
# Package structure:
#   alpha_oracle/
#   ├── api/          → FastAPI routers (/plan-run, /answer) and SSE framing
#   ├── agents/       → planner, step router, executor, summarizer, and the
#   │                    orchestrator that sequences them into event streams
#   ├── models/       → Pydantic V2 domain and request/response schemas
#   └── services/     → LLM providers, shared HTTP transport, and the FMP,
#                        Polygon and Brave Search adapters
# =============================================================================
