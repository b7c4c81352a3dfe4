# =============================================================================
# Research Domain Models — Plan Steps, Execution Results, Chat Messages
# =============================================================================
#
# These are the objects that flow through the pipeline:
#
#   Planner ──▶ PlanStep[] ──▶ Executor ──▶ ExecutionResult[] ──▶ Summarizer
#
# They double as wire schemas: the /answer endpoint receives the
# ExecutionResult list produced by /plan-run, so every model here
# serialises to camelCase JSON (`progressMessage`, `elapsedTime`) and
# accepts either camelCase or snake_case on input.
# =============================================================================

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

StepStatus = Literal["pending", "running", "done", "failed"]
MessageRole = Literal["system", "user", "assistant", "developer"]

TITLE_MAX_CHARS = 50
DESCRIPTION_MAX_CHARS = 200


class CamelModel(BaseModel):
    """Base model serialising to camelCase and accepting both spellings."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys and unset optionals dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Provider(str, Enum):
    """Tag naming the data source that produced an ExecutionResult."""

    FMP_QUOTE = "fmp_quote"
    FMP_QUOTE_LIGHT = "fmp_quote_light"
    FMP_CHART = "fmp_chart"
    FMP_MOVERS = "fmp_movers"
    POLYGON_NEWS = "polygon_news"
    BRAVE_NEWS = "brave_news"
    BRAVE_WEB = "brave_web"
    COMBINED = "combined"


NEWS_PROVIDERS = frozenset({Provider.POLYGON_NEWS, Provider.BRAVE_NEWS})


class PlanStep(CamelModel):
    """One atomic research action shown to the user in the plan sidebar."""

    title: str = Field(..., min_length=1, max_length=TITLE_MAX_CHARS)
    description: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX_CHARS)
    status: StepStatus = "pending"
    summary: str | None = None
    progress_message: str | None = None
    elapsed_time: float | None = None


class ExecutionResult(CamelModel):
    """
    Outcome of running one plan step against a provider.

    `data` is a JSON-ready provider payload (dicts and lists only).
    It is None exactly when `error` is set.
    """

    step: PlanStep
    provider: Provider
    data: Any = None
    summary: str | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _exactly_one_of_data_or_error(self) -> ExecutionResult:
        has_error = self.error is not None
        if has_error and self.data is not None:
            raise ValueError("data must be null when error is set")
        if not has_error and self.data is None:
            raise ValueError("data is required when error is not set")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatMessage(BaseModel):
    """A single conversation turn passed as LLM context."""

    role: MessageRole
    content: str

    def to_llm(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}
