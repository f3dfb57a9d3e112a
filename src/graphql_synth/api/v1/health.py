"""Health check endpoints."""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from graphql_synth.config import get_settings
from graphql_synth.utils.errors import VectorStoreError
from graphql_synth.utils.logging import get_logger

logger = get_logger("health")

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """
    Health check endpoint.

    Returns basic service health status without touching external dependencies.
    """
    settings = get_settings()
    logger.debug("Health check requested")
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "environment": settings.environment.value,
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(request: Request):
    """
    Readiness check endpoint.

    Checks that services were initialized and the vector store answers a
    count query. Returns 503 if either check fails.
    """
    settings = get_settings()
    logger.debug("Readiness check requested")

    checks = {"services": False, "vector_store": False}
    container = getattr(request.app.state, "services", None)
    if container is not None:
        checks["services"] = True
        try:
            await container.store.count()
            checks["vector_store"] = True
        except VectorStoreError as e:
            logger.warning(f"Vector store check failed: {e.message}")

    body = {
        "app_name": settings.app_name,
        "environment": settings.environment.value,
        "checks": checks,
    }
    if not all(checks.values()):
        logger.warning(f"Readiness check failed: {checks}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", **body},
        )
    return {"status": "ready", **body}
