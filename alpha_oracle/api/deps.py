# =============================================================================
# API Dependencies — Per-Request LLM and Executor Wiring
# =============================================================================
#
# Two FastAPI dependencies feed the research endpoints:
#
# 1. get_llm_factory(): builds an LLM provider from the key in the request
#    body (or the server-side OPENROUTER_API_KEY)
# 2. get_executor(): builds the provider router from configured keys
#
# Both are swapped out in tests via app.dependency_overrides, so endpoint
# tests run without network access or API keys.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import HTTPException

from alpha_oracle.agents.executor import Executor, create_executor
from alpha_oracle.config import settings
from alpha_oracle.exceptions import LLMProviderError
from alpha_oracle.services.llm import LLMProvider, create_llm_provider

logger = logging.getLogger(__name__)

LLMFactory = Callable[[str | None], LLMProvider]


def get_llm_factory() -> LLMFactory:
    return lambda api_key: create_llm_provider(api_key=api_key)


def get_executor() -> Executor:
    return create_executor(settings)


def resolve_llm(factory: LLMFactory, api_key: str | None) -> LLMProvider:
    """
    Build the request's LLM provider before any stream is opened.

    Raises:
        HTTPException 400: No completion API key in the request or config.
    """
    try:
        return factory(api_key or None)
    except LLMProviderError as e:
        logger.warning("Rejecting request without completion key: %s", e)
        raise HTTPException(status_code=400, detail=str(e)) from e
