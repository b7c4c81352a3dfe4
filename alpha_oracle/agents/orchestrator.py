# =============================================================================
# Orchestrator: Plan → Execute → Summarize, Streamed as SSE Events
# =============================================================================
#
# Two pipelines, each writing to an EventStream (api/sse.py):
#
# run_plan_pipeline(): POST /plan-run
#   status ─▶ plan ─▶ for each step:
#                       stepStart ─▶ stepProgress* ─▶ stepComplete | stepError
#          ─▶ executionResults ─▶ status ─▶ summary ─▶ done
#   (any uncaught exception ends the stream with a single `error` event)
#
# run_answer_pipeline(): POST /answer
#   status ─▶ delta* ─▶ done | error
#
# Steps run sequentially. While a step runs, a heartbeat task emits
# stepProgress every `heartbeat_interval_seconds`; it is cancelled and
# awaited before the step's terminal event, so no progress tick can follow
# stepComplete/stepError.
#
# The executor receives only the tickers found in the user query as routing
# context, never the query text itself.
#
# Both pipelines close the stream in `finally`, so the HTTP body always
# terminates, including on cancellation after a client disconnect.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time

from alpha_oracle.agents.executor import Executor
from alpha_oracle.agents.planner import generate_plan
from alpha_oracle.agents.router import extract_tickers
from alpha_oracle.agents.summarizer import generate_final_answer, summarize_results
from alpha_oracle.api.sse import EventStream
from alpha_oracle.config import settings
from alpha_oracle.models.research import ChatMessage, ExecutionResult, PlanStep
from alpha_oracle.services.llm import LLMProvider

logger = logging.getLogger(__name__)

# (upper bound in seconds, message), checked in order
PROGRESS_MESSAGES = (
    (5, "Analyzing data..."),
    (10, "Processing insights..."),
    (15, "Synthesizing findings..."),
)
FINAL_PROGRESS_MESSAGE = "Finalizing results..."


def progress_message(elapsed: float) -> str:
    for bound, message in PROGRESS_MESSAGES:
        if elapsed < bound:
            return message
    return FINAL_PROGRESS_MESSAGE


def trim_history(
    history: list[ChatMessage] | None,
    limit: int | None = None,
) -> list[ChatMessage]:
    """Keep only the most recent `limit` messages."""
    limit = settings.max_history_messages if limit is None else limit
    if not history or limit <= 0:
        return []
    return list(history[-limit:])


# ---------------------------------------------------------------------------
# Step execution with heartbeat
# ---------------------------------------------------------------------------


async def _heartbeat(
    stream: EventStream,
    step_index: int,
    started: float,
    interval: float,
) -> None:
    while True:
        await asyncio.sleep(interval)
        elapsed = int(time.monotonic() - started)
        await stream.send("stepProgress", {
            "stepIndex": step_index,
            "message": progress_message(elapsed),
            "elapsedTime": elapsed,
        })


async def run_step(
    stream: EventStream,
    executor: Executor,
    step: PlanStep,
    step_index: int,
    total_steps: int,
    context: str | None = None,
    heartbeat_interval: float | None = None,
) -> ExecutionResult:
    """Execute one step, emitting its start, progress and terminal events."""
    interval = (
        settings.heartbeat_interval_seconds
        if heartbeat_interval is None else heartbeat_interval
    )
    step.status = "running"
    started = time.monotonic()

    await stream.send("stepStart", {
        "stepIndex": step_index,
        "title": step.title,
        "description": step.description,
        "currentStep": step_index + 1,
        "totalSteps": total_steps,
    })

    heartbeat = asyncio.create_task(
        _heartbeat(stream, step_index, started, interval)
    )
    try:
        result = await executor.execute_step(step, context)
    finally:
        heartbeat.cancel()
        await asyncio.gather(heartbeat, return_exceptions=True)

    elapsed = int(time.monotonic() - started)
    step.elapsed_time = elapsed

    if result.ok:
        step.status = "done"
        step.summary = result.summary or (
            "Found results" if result.data else "No data found"
        )
        await stream.send("stepComplete", {
            "stepIndex": step_index,
            "title": step.title,
            "description": step.description,
            "summary": step.summary,
            "elapsedTime": elapsed,
            "hasData": bool(result.data),
            "provider": result.provider.value,
        })
    else:
        step.status = "failed"
        await stream.send("stepError", {
            "stepIndex": step_index,
            "title": step.title,
            "description": step.description,
            "error": result.error,
            "elapsedTime": elapsed,
        })

    logger.info(
        "Step %d/%d '%s' %s in %ds (provider=%s)",
        step_index + 1, total_steps, step.title, step.status,
        elapsed, result.provider.value,
    )
    return result


# ---------------------------------------------------------------------------
# Pipelines
# ---------------------------------------------------------------------------


async def run_plan_pipeline(
    stream: EventStream,
    query: str,
    history: list[ChatMessage] | None,
    llm: LLMProvider,
    executor: Executor,
    max_steps: int | None = None,
    heartbeat_interval: float | None = None,
) -> None:
    """
    Plan, execute and summarise a research question.

    Args:
        stream: Sink for the SSE events. Closed when this returns.
        query: The user's question.
        history: Prior conversation turns (trimmed to the configured limit).
        llm: Provider used for planning and summarising.
        executor: Provider router for plan steps.
        max_steps: Plan size ceiling. Defaults to settings.default_max_steps.
        heartbeat_interval: stepProgress cadence in seconds.
    """
    max_steps = max_steps or settings.default_max_steps
    history = trim_history(history)
    started = time.monotonic()

    try:
        await stream.send("status", {
            "message": "Generating research plan...",
            "providers": executor.availability(),
        })

        steps = await generate_plan(query, history, llm, max_steps)
        await stream.send("plan", {"steps": [s.to_wire() for s in steps]})

        context = " ".join(extract_tickers(query)) or None
        results: list[ExecutionResult] = []
        for index, step in enumerate(steps):
            result = await run_step(
                stream, executor, step, index, len(steps),
                context=context,
                heartbeat_interval=heartbeat_interval,
            )
            results.append(result)

        await stream.send(
            "executionResults", {"results": [r.to_wire() for r in results]},
        )

        await stream.send("status", {"message": "Summarizing research findings..."})
        summary = await summarize_results(results, query, llm)
        await stream.send("summary", {"summary": summary})

        failed = sum(1 for r in results if not r.ok)
        await stream.send("done", {
            "success": True,
            "stepsCompleted": len(results),
            "stepsFailed": failed,
            "totalSteps": len(steps),
        })

        logger.info(
            "Plan-run complete: %d steps, %d failed, %.1fs",
            len(steps), failed, time.monotonic() - started,
        )
    except Exception as e:
        logger.exception("Plan-run pipeline failed")
        await stream.send("error", {
            "message": str(e) or "An unexpected error occurred",
        })
    finally:
        stream.close()


async def run_answer_pipeline(
    stream: EventStream,
    query: str,
    results: list[ExecutionResult],
    history: list[ChatMessage] | None,
    llm: LLMProvider,
) -> None:
    """Stream the final answer for previously executed results."""
    history = trim_history(history)
    chunks = 0

    try:
        await stream.send("status", {"message": "Generating comprehensive answer..."})

        async for text in generate_final_answer(query, results, history, llm):
            if not await stream.send("delta", {"content": text}):
                logger.info("Answer stream closed by client after %d chunks", chunks)
                return
            chunks += 1

        await stream.send("done", {"success": True})
    except Exception as e:
        logger.exception("Answer pipeline failed after %d chunks", chunks)
        await stream.send("error", {
            "message": str(e) or "Failed to generate answer",
        })
    finally:
        stream.close()
