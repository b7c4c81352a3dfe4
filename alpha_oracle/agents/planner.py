# =============================================================================
# Planner Agent: Question → Research Plan
# =============================================================================
#
# Asks the LLM for a short JSON list of research steps:
#
#   [{"title": "Get NVDA quote", "description": "Let me first check ..."}]
#
# Parsing is fail-closed. Whatever the model returns is either turned into
# valid PlanSteps or replaced by a deterministic keyword-based plan, so a
# research turn always has something to execute:
#
#   LLM error / bad JSON / wrong shape → fallback_plan(query)
#   explicit []                        → [] (nothing left to research)
#
# JSON mode on OpenAI-compatible APIs forces a top-level object, so an
# object wrapping the list under "steps" or "plan" is accepted too.
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from typing import Any

from alpha_oracle.agents.router import primary_ticker
from alpha_oracle.models.research import (
    DESCRIPTION_MAX_CHARS,
    TITLE_MAX_CHARS,
    ChatMessage,
    ExecutionResult,
    PlanStep,
)
from alpha_oracle.services.llm import LLMProvider

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_WRAPPER_KEYS = ("steps", "plan")

PLAN_TEMPERATURE = 0.7
PLAN_MAX_TOKENS = 1000
REFINE_MAX_TOKENS = 500
REFINE_RESULT_CHARS = 200


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def build_planner_prompt(max_steps: int = 15) -> str:
    return (
        "You are The Alpha Oracle, a financial analyst agent tasked to help "
        "traders get the information and answers they want. Your job is to "
        "carefully plan the steps needed to fully answer the question. Your "
        "main objective is to act as a planner.\n\n"
        "Your output is a JSON array of steps that explain what needs to be "
        "done:\n"
        "[\n"
        '  {"title": "Check NVDA news", "description": "Let me first check '
        'the latest news on NVDA to understand current market sentiment"},\n'
        '  {"title": "Get NVDA price", "description": "Next, I need to see '
        "NVDA's current price and movement to gauge its performance\"}\n"
        "]\n\n"
        "Instructions:\n"
        "- Be aware of retail trading lingo (ETH = Ethereum, BTC = Bitcoin, etc.)\n"
        '- Understand trading terms like "inside days", "cup and handle", '
        '"gex" (gamma exposure), etc.\n'
        "- Make assumptions for typos, traders often type quickly\n"
        "- Keep titles short (max 5 words) for the sidebar\n"
        "- Write FULL, CONVERSATIONAL descriptions (15-25 words) that explain "
        "what you're doing and why\n"
        '- Write descriptions as if talking to the user: "Let me check...", '
        '"I\'ll now look at...", "Next, I need to..."\n'
        '- Vary your description openings: "Let me first", "I\'ll now", '
        '"Next, I need to", "Let\'s look at", "I should check", '
        '"Time to analyze", "Let\'s explore"\n'
        f"- Plan up to {max_steps} steps maximum\n"
        "- Focus on actionable data retrieval steps\n"
        "- When done planning, return an empty array []\n\n"
        "Financial data sources available:\n"
        "- Stock quotes and intraday charts (if ticker mentioned)\n"
        "- Top gainers, losers and most active stocks\n"
        "- Financial news from multiple sources\n"
        "- Web search for company information\n\n"
        "Output ONLY valid JSON, no markdown formatting or explanation. "
        'If you must return an object, put the array under a "steps" key.'
    )


# ---------------------------------------------------------------------------
# Parsing & validation
# ---------------------------------------------------------------------------


def parse_plan_response(raw: str) -> list[Any] | None:
    """
    Extract the raw step list from an LLM response.

    Returns None when the response is not JSON or has no step list.
    """
    text = _CODE_FENCE.sub("", raw.strip()).strip()
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None

    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        for key in _WRAPPER_KEYS:
            if isinstance(parsed.get(key), list):
                return parsed[key]
    return None


def validate_steps(
    raw_steps: list[Any],
    max_steps: int | None = None,
) -> list[PlanStep]:
    """Keep entries with a title and description, truncated to limits."""
    steps: list[PlanStep] = []
    for raw in raw_steps:
        if not isinstance(raw, dict):
            continue
        title = raw.get("title")
        description = raw.get("description")
        if not title or not description:
            continue
        title = str(title).strip()[:TITLE_MAX_CHARS].strip()
        description = str(description).strip()[:DESCRIPTION_MAX_CHARS].strip()
        if not title or not description:
            continue
        steps.append(PlanStep(title=title, description=description))

    if max_steps is not None:
        steps = steps[:max_steps]
    return steps


def _step(title: str, description: str) -> PlanStep:
    return PlanStep(title=title, description=description)


def fallback_plan(query: str) -> list[PlanStep]:
    """Deterministic plan used when the LLM plan is unavailable.

    Step text is routed by the executor, so each description only uses
    keywords of the branch its title names.
    """
    ticker = primary_ticker(query)
    lowered = query.lower()

    if ticker and ("price" in lowered or "quote" in lowered):
        logger.info("Fallback plan: price/quote for %s", ticker)
        return [
            _step(
                f"Get {ticker} quote",
                f"Let me first check {ticker}'s current price and today's "
                "trading performance",
            ),
            _step(
                f"Get {ticker} news",
                f"I'll also look for any recent news that might be affecting "
                f"{ticker}'s stock movement",
            ),
        ]

    if ticker and "news" in lowered:
        logger.info("Fallback plan: news for %s", ticker)
        return [
            _step(
                f"Get {ticker} news",
                f"Let me retrieve the latest news and developments about {ticker}",
            ),
        ]

    if "market" in lowered or "today" in lowered:
        logger.info("Fallback plan: market news")
        return [
            _step(
                "Get market news",
                "Let me check today's market news and see what's moving the "
                "markets",
            ),
        ]

    if ticker:
        logger.info("Fallback plan: general research for %s", ticker)
        return [
            _step(
                f"Research {ticker}",
                f"Let me build a broad picture of {ticker}, covering its market "
                "performance and coverage",
            ),
        ]

    logger.info("Fallback plan: generic financial search")
    return [
        _step(
            "Search financial news",
            "Let me search for relevant financial news and market information",
        ),
    ]


def _history_messages(history: list[ChatMessage] | None) -> list[dict[str, str]]:
    return [message.to_llm() for message in history or []]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def generate_plan(
    query: str,
    history: list[ChatMessage] | None,
    llm: LLMProvider,
    max_steps: int = 7,
) -> list[PlanStep]:
    """
    Generate a research plan for a question.

    Args:
        query: The user's question.
        history: Prior conversation turns, oldest first.
        llm: LLM provider to plan with.
        max_steps: Upper bound on the number of returned steps.

    Returns:
        Between 1 and max_steps steps, or [] when the model explicitly
        says no research is needed.
    """
    messages = _history_messages(history)
    messages.append({"role": "user", "content": query})

    try:
        response = await llm.complete(
            messages=messages,
            system=build_planner_prompt(max_steps),
            temperature=PLAN_TEMPERATURE,
            max_tokens=PLAN_MAX_TOKENS,
            json_mode=True,
        )
    except Exception:
        logger.exception("Plan generation failed, using fallback plan")
        return fallback_plan(query)[:max_steps]

    raw_steps = parse_plan_response(response.content)
    if raw_steps is None:
        logger.warning(
            "Invalid plan format, using fallback plan: %s",
            response.content[:200],
        )
        return fallback_plan(query)[:max_steps]

    if not raw_steps:
        logger.info("Planner returned an empty plan")
        return []

    steps = validate_steps(raw_steps, max_steps)
    if not steps:
        logger.warning(
            "No valid steps among %d planned, using fallback plan",
            len(raw_steps),
        )
        return fallback_plan(query)[:max_steps]

    logger.info(
        "Plan generated: %d steps (%d raw) %s",
        len(steps), len(raw_steps), [s.title for s in steps],
    )
    return steps


async def refine_plan(
    query: str,
    executed: list[ExecutionResult],
    history: list[ChatMessage] | None,
    llm: LLMProvider,
) -> list[PlanStep]:
    """Additional steps given what has been executed. Never raises."""
    progress = "\n\n".join(
        f"Completed: {result.step.title}\n"
        f"Result: {_result_preview(result)}..."
        for result in executed
    )

    messages = _history_messages(history)
    messages.append({
        "role": "user",
        "content": (
            f"Original question: {query}\n\n"
            f"Progress so far:\n{progress}\n\n"
            "What additional steps are needed? Return [] if complete."
        ),
    })

    try:
        response = await llm.complete(
            messages=messages,
            system=build_planner_prompt(),
            temperature=PLAN_TEMPERATURE,
            max_tokens=REFINE_MAX_TOKENS,
            json_mode=True,
        )
    except Exception:
        logger.exception("Plan refinement failed")
        return []

    raw_steps = parse_plan_response(response.content)
    if raw_steps is None:
        logger.warning("Refined plan is not an array")
        return []

    steps = validate_steps(raw_steps)
    logger.info("Plan refined: %d additional steps", len(steps))
    return steps


def _result_preview(result: ExecutionResult) -> str:
    payload = result.data if result.ok else {"error": result.error}
    return json.dumps(payload, default=str)[:REFINE_RESULT_CHARS]


def is_planning_complete(history: list[ChatMessage]) -> bool:
    """True when the last assistant message is an empty JSON array."""
    assistant = [m for m in history if m.role == "assistant"]
    if not assistant:
        return False
    try:
        parsed = json.loads(assistant[-1].content)
    except json.JSONDecodeError:
        return False
    return isinstance(parsed, list) and not parsed
