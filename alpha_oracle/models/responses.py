# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# The research endpoints answer with SSE streams (api/sse.py), whose event
# payloads are plain dicts. The models here cover the JSON responses:
# the health check and error bodies raised before a stream opens.
# =============================================================================

from pydantic import BaseModel, Field


class ProviderAvailability(BaseModel):
    """Which optional data providers have a configured key."""

    fmp: bool
    polygon: bool
    brave: bool


class HealthResponse(BaseModel):
    """Response for GET /health. Confirms the API is running."""

    status: str = "ok"
    version: str
    service: str
    providers: ProviderAvailability


class ErrorResponse(BaseModel):
    """Error body for 4xx responses (FastAPI's HTTPException shape)."""

    detail: str = Field(..., examples=["No completion API key configured"])
