"""
FILE: budget_hierarchy/api/main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from budget_hierarchy.api.observability import setup_observability
from budget_hierarchy.api.persistence_profile import validate_persistence_profile_guardrails
from budget_hierarchy.api.routers.distributions import router as budget_hierarchy_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    validate_persistence_profile_guardrails()
    yield


app = FastAPI(
    title="Budget Distribution Hierarchy API",
    version="0.1.0",
    description=(
        "Distributes a media plan budget across subdivisions, moments and funnel stages, "
        "rebuilds the allocation tree for display and reconciles it with media lines."
    ),
    openapi_tags=[
        {
            "name": "Budget Hierarchy",
            "description": "Plan settings, allocation tree, generation and orphan reconciliation.",
        },
    ],
    lifespan=_app_lifespan,
)

setup_observability(app)
app.include_router(budget_hierarchy_router)


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )


@app.get("/health", tags=["Budget Hierarchy"], summary="Liveness Probe")
def health() -> dict[str, str]:
    return {"status": "ok"}
