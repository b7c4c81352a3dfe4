# =============================================================================
# API Package: FastAPI Route Handlers
# =============================================================================
#   - plan_run.py: POST /plan-run, plan and step execution stream
#   - answer.py: POST /answer, final answer stream
#   - deps.py: per-request LLM provider and executor dependencies
#   - sse.py: event framing, the per-connection sink, and a client parser
# =============================================================================
