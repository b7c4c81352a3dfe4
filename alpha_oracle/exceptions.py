"""Custom exceptions for the Alpha Oracle research service."""

from __future__ import annotations


class AlphaOracleError(Exception):
    """Base exception for research pipeline errors."""

    pass


class ProviderError(AlphaOracleError):
    """Raised when a data or search provider call fails after retries."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMProviderError(AlphaOracleError, ValueError):
    """Raised when the LLM provider configuration is invalid."""

    pass
