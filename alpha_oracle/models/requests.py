# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API.
# FastAPI uses them for:
# 1. Request body validation (automatic 422 errors for invalid data)
# 2. OpenAPI documentation generation (visible at /docs)
# 3. Type hints in route handlers
#
# Bodies are camelCase on the wire (`openrouterKey`, `maxSteps`,
# `conversationHistory`, `executionResults`); snake_case names are accepted
# too.
# =============================================================================

from pydantic import Field

from alpha_oracle.models.research import CamelModel, ChatMessage, ExecutionResult


class ResearchRequest(CamelModel):
    """Fields shared by both research endpoints."""

    query: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="The user's research question",
        examples=["What's NVDA's price today?"],
    )

    # Falls back to OPENROUTER_API_KEY on the server when omitted
    openrouter_key: str | None = Field(
        default=None,
        description="Completion API key. Optional when configured server-side.",
    )

    # Only the most recent messages are forwarded to the LLM
    conversation_history: list[ChatMessage] = Field(
        default_factory=list,
        description="Prior conversation turns, oldest first",
    )


class PlanRunRequest(ResearchRequest):
    """
    Request body for POST /plan-run: plan and execute research steps.

    Example:
        {
            "query": "What's NVDA's price today?",
            "maxSteps": 5
        }
    """

    # Omitted → DEFAULT_MAX_STEPS; values above MAX_PLAN_STEPS are clamped
    max_steps: int | None = Field(
        default=None,
        ge=1,
        description="Upper bound on the number of plan steps",
    )


class AnswerRequest(ResearchRequest):
    """
    Request body for POST /answer: stream the final answer.

    `executionResults` is the list received in the `executionResults`
    event of a previous /plan-run stream.
    """

    execution_results: list[ExecutionResult] = Field(
        ...,
        description="Results of a previous /plan-run",
    )
