# =============================================================================
# FastAPI Application — Alpha Oracle Research Service
# =============================================================================
#
# Run locally:
#   uvicorn alpha_oracle.main:app --reload
#
# Endpoints:
#   POST /plan-run  research plan + step execution (SSE)
#   POST /answer    final answer stream (SSE)
#   GET  /health    liveness + provider availability
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from alpha_oracle.agents.executor import Executor
from alpha_oracle.api import answer, plan_run
from alpha_oracle.api.deps import get_executor
from alpha_oracle.config import settings
from alpha_oracle.models.responses import HealthResponse, ProviderAvailability
from alpha_oracle.services.http_client import close_http_client

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s v%s starting", settings.app_name, settings.app_version)
    yield
    await close_http_client()
    logger.info("%s stopped", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Conversational financial research: plans research steps, runs them "
        "against market data and search providers, and streams progress and "
        "answers over Server-Sent Events."
    ),
    lifespan=lifespan,
)

app.include_router(plan_run.router)
app.include_router(answer.router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health(executor: Executor = Depends(get_executor)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=settings.app_version,
        service=settings.app_name,
        providers=ProviderAvailability(**executor.availability()),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
