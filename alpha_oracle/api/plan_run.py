# =============================================================================
# Plan-Run Endpoint — POST /plan-run
# =============================================================================
#
# Plans a research question, executes every step against the data
# providers and streams progress as Server-Sent Events:
#
#   status → plan → (stepStart → stepProgress* → stepComplete|stepError)*
#          → executionResults → status → summary → done | error
#
# Request validation (422) and the missing-key check (400) happen before
# the stream opens; after that, failures are reported as `error` events.
# =============================================================================

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from alpha_oracle.agents.executor import Executor
from alpha_oracle.agents.orchestrator import run_plan_pipeline
from alpha_oracle.api.deps import LLMFactory, get_executor, get_llm_factory, resolve_llm
from alpha_oracle.api.sse import EventStream, event_source_response
from alpha_oracle.config import settings
from alpha_oracle.models.requests import PlanRunRequest
from alpha_oracle.models.responses import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Research"])


@router.post(
    "/plan-run",
    response_class=StreamingResponse,
    responses={400: {"model": ErrorResponse}},
)
async def plan_run(
    request: PlanRunRequest,
    llm_factory: LLMFactory = Depends(get_llm_factory),
    executor: Executor = Depends(get_executor),
) -> StreamingResponse:
    """Plan and execute research for a question, streamed as SSE."""
    llm = resolve_llm(llm_factory, request.openrouter_key)
    max_steps = min(
        request.max_steps or settings.default_max_steps,
        settings.max_plan_steps,
    )

    logger.info(
        "Plan-run request: query='%s', max_steps=%d, history=%d, providers=%s",
        request.query[:80], max_steps,
        len(request.conversation_history), executor.availability(),
    )

    async def produce(stream: EventStream) -> None:
        await run_plan_pipeline(
            stream,
            query=request.query,
            history=request.conversation_history,
            llm=llm,
            executor=executor,
            max_steps=max_steps,
        )

    return event_source_response(produce)
