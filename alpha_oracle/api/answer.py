# =============================================================================
# Answer Endpoint — POST /answer
# =============================================================================
#
# Streams the final narrative answer for results produced by a previous
# /plan-run call:
#
#   status → delta* → done | error
#
# Each `delta` carries one text increment from the LLM ({"content": ...}).
# =============================================================================

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from alpha_oracle.agents.orchestrator import run_answer_pipeline
from alpha_oracle.api.deps import LLMFactory, get_llm_factory, resolve_llm
from alpha_oracle.api.sse import EventStream, event_source_response
from alpha_oracle.models.requests import AnswerRequest
from alpha_oracle.models.responses import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Research"])


@router.post(
    "/answer",
    response_class=StreamingResponse,
    responses={400: {"model": ErrorResponse}},
)
async def answer(
    request: AnswerRequest,
    llm_factory: LLMFactory = Depends(get_llm_factory),
) -> StreamingResponse:
    """Stream the final answer for previously executed research steps."""
    llm = resolve_llm(llm_factory, request.openrouter_key)

    logger.info(
        "Answer request: query='%s', results=%d, history=%d",
        request.query[:80], len(request.execution_results),
        len(request.conversation_history),
    )

    async def produce(stream: EventStream) -> None:
        await run_answer_pipeline(
            stream,
            query=request.query,
            results=request.execution_results,
            history=request.conversation_history,
            llm=llm,
        )

    return event_source_response(produce)
