# =============================================================================
# Agents Package: Plan → Execute → Summarize
# =============================================================================
#   - planner.py: LLM-generated research plans with a keyword fallback
#   - router.py: ticker extraction and rule-based step intent
#   - executor.py: runs a step against providers, walking fallback chains
#   - summarizer.py: step/overall summaries and the streamed final answer
#   - orchestrator.py: sequences the above and emits SSE events
# =============================================================================
