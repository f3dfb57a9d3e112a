"""API v1 router aggregation.

All v1 endpoints are prefixed with `/api/v1`.
"""

from fastapi import APIRouter

from graphql_synth.api.v1 import health, operations, schemas, search

router = APIRouter(
    prefix="/api/v1",
    tags=["v1"],
    responses={
        404: {"description": "Not found"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)

router.include_router(health.router)
router.include_router(schemas.router)
router.include_router(search.router)
router.include_router(operations.router)


@router.get("/", summary="API Information", tags=["v1"])
async def api_info():
    """Get API v1 version and endpoint information."""
    return {
        "version": "v1",
        "status": "active",
        "service": "graphql-synth",
        "endpoints": {
            "health": "/api/v1/health",
            "ready": "/api/v1/ready",
            "schemas": {
                "embed": "/api/v1/schemas/embed",
                "embed_incremental": "/api/v1/schemas/embed/incremental",
                "count": "/api/v1/schemas/embeddings/count",
                "clear": "/api/v1/schemas/embeddings",
            },
            "search": "/api/v1/search",
            "operations": {"generate": "/api/v1/operations/generate"},
        },
    }
