from fastapi import APIRouter, Depends, Response, status

from page_composer.api.dependencies import get_store
from page_composer.api.schemas import HealthResponse, ReadinessResponse
from page_composer.core.ports.store import ConfigurationStore

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


@router.get("/healthz/live", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    """Liveness check: is the process alive?"""
    return HealthResponse()


@router.get("/healthz/ready", response_model=ReadinessResponse)
async def readiness(
    response: Response,
    store: ConfigurationStore = Depends(get_store),
) -> ReadinessResponse:
    """Readiness check: checks store connectivity."""
    if await store.ping():
        return ReadinessResponse(status="ok", database="up")
    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(status="degraded", database="down")
