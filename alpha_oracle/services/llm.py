# =============================================================================
# Multi-Provider LLM Abstraction — Completion and Streaming
# =============================================================================
#
# Provides the two completion capabilities the research pipeline needs:
#   complete(): one-shot text (planner JSON, summaries)
#   stream(): async iterator of text increments (final answer)
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── OpenAICompatibleProvider : OpenRouter (default) or any OpenAI-spec API
#   │   └── system prompt as a {"role": "system"} message
#   ├── AnthropicProvider        : Claude via native Anthropic SDK
#   │   └── system prompt as top-level `system=` kwarg
#   └── create_llm_provider()    : per-request factory (the API key can
#                                  arrive in the request body)
#
# LLM calls are not retried (SDK max_retries=0). A failure propagates to
# the calling agent, which applies its own fallback (fallback plan,
# fallback summary) or surfaces it (final answer stream).
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from alpha_oracle.config import settings
from alpha_oracle.exceptions import LLMProviderError

logger = logging.getLogger(__name__)

# Roles that carry instructions rather than conversation turns
_INSTRUCTION_ROLES = {"system", "developer"}


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """A completed (non-streamed) LLM call: text plus token usage."""

    content: str
    model: str  # e.g. "anthropic/claude-sonnet-4"
    input_tokens: int
    output_tokens: int


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """
    Completion capability shared by the planner and summarizer.

    Any class with matching `complete()` and `stream()` methods works,
    including the AsyncMock-based fakes used in tests.
    """

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation messages as dicts with "role" and "content".
            system: System prompt. Prepended as a system message (OpenAI)
                or passed as the top-level `system=` kwarg (Anthropic).
            temperature: Override sampling temperature.
            max_tokens: Override max output tokens.
            json_mode: Ask the provider for a JSON-only response where the
                API supports it.

        Returns:
            LLMResponse with generated text and usage metrics.
        """
        ...

    def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Yield text increments as the provider produces them."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: OpenAI-Compatible (OpenRouter by default)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    OpenAI-compatible provider for any API that follows the OpenAI spec.

    OpenRouter is the default target. Switching to another compatible API
    is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_MODEL=deepseek-chat
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.openrouter_api_key
        if not resolved_key:
            raise LLMProviderError(
                "No API key configured for the completion provider. "
                "Send openrouterKey or set OPENROUTER_API_KEY in .env"
            )

        resolved_base_url = base_url or settings.llm_base_url
        self._client = AsyncOpenAI(
            api_key=resolved_key,
            base_url=resolved_base_url,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
            default_headers={
                "HTTP-Referer": settings.openrouter_app_url,
                "X-Title": settings.openrouter_app_title,
            },
        )
        self._model = model or settings.llm_model

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model, resolved_base_url,
        )

    @staticmethod
    def _build_messages(
        messages: list[dict[str, str]],
        system: str | None,
    ) -> list[dict[str, str]]:
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)
        return all_messages

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        kwargs: dict = {
            "model": self._model,
            "messages": self._build_messages(messages, system),
            "temperature": 0.7 if temperature is None else temperature,
            "max_tokens": max_tokens or 4000,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._client.chat.completions.create(**kwargs)

        content = response.choices[0].message.content or ""
        usage = response.usage

        return LLMResponse(
            content=content,
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )

    async def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion, yielding each non-empty content delta."""
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=self._build_messages(messages, system),
            temperature=0.7 if temperature is None else temperature,
            max_tokens=max_tokens or 4000,
            stream=True,
        )
        async for chunk in response:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                yield content


# ---------------------------------------------------------------------------
# Implementation 2: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg and only accepts "user"/"assistant" turns. System and
    developer messages found in the conversation are folded into the
    system prompt. There is no JSON response mode; json_mode is ignored
    and the prompt alone constrains the output format.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.anthropic_api_key
        if not resolved_key:
            raise LLMProviderError(
                "No Anthropic API key configured. Send openrouterKey or "
                "set ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(
            api_key=resolved_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
        )
        self._model = model or settings.llm_model

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    def _build_kwargs(
        self,
        messages: list[dict[str, str]],
        system: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict:
        system_parts = [system] if system else []
        turns: list[dict[str, str]] = []
        for message in messages:
            if message["role"] in _INSTRUCTION_ROLES:
                system_parts.append(message["content"])
            else:
                turns.append(
                    {"role": message["role"], "content": message["content"]}
                )

        kwargs: dict = {
            "model": self._model,
            "messages": turns,
            "max_tokens": max_tokens or 4000,
            "temperature": 0.7 if temperature is None else temperature,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        return kwargs

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        response = await self._client.messages.create(
            **self._build_kwargs(messages, system, temperature, max_tokens)
        )

        content = ""
        for block in response.content:
            if block.type == "text":
                content = block.text
                break

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    async def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion using Claude's text stream."""
        async with self._client.messages.stream(
            **self._build_kwargs(messages, system, temperature, max_tokens)
        ) as response:
            async for text in response.text_stream:
                if text:
                    yield text


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def create_llm_provider(
    api_key: str | None = None,
    model: str | None = None,
) -> OpenAICompatibleProvider | AnthropicProvider:
    """
    Build a fresh provider for one request.

    Reads `llm_provider` from settings:
    - "openai_compatible" → OpenAICompatibleProvider (OpenRouter, etc.)
    - "anthropic" → AnthropicProvider (Claude)

    Raises:
        LLMProviderError: If no API key can be resolved.
    """
    if settings.llm_provider == "anthropic":
        return AnthropicProvider(api_key=api_key, model=model)
    return OpenAICompatibleProvider(api_key=api_key, model=model)
