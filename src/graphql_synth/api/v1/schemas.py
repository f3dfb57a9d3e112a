"""Schema indexing endpoints."""

from fastapi import APIRouter, Depends, status

from graphql_synth.dependencies import get_embedding_service
from graphql_synth.models.api import (
    ClearResponse,
    CountResponse,
    EmbedSchemaRequest,
    IncrementalEmbedRequest,
)
from graphql_synth.models.embedding import EmbedResult, IncrementalEmbedResult
from graphql_synth.services.embedding_service import EmbeddingService
from graphql_synth.utils.logging import get_logger

logger = get_logger("schemas_api")

router = APIRouter(prefix="/schemas", tags=["schemas"])


@router.post(
    "/embed",
    response_model=EmbedResult,
    status_code=status.HTTP_200_OK,
    summary="Index a GraphQL schema",
)
async def embed_schema(
    request: EmbedSchemaRequest,
    service: EmbeddingService = Depends(get_embedding_service),
) -> EmbedResult:
    """
    Decompose a schema into declaration documents, embed them and store them.

    Oversized declarations are chunked; ones that cannot be chunked under the
    embedding model's limit are skipped and listed in the response.
    """
    logger.info(
        f"Embedding schema: sdl_length={len(request.schema_sdl)}, "
        f"clear_existing={request.clear_existing}"
    )
    return await service.embed_schema(request.schema_sdl, clear_existing=request.clear_existing)


@router.post(
    "/embed/incremental",
    response_model=IncrementalEmbedResult,
    status_code=status.HTTP_200_OK,
    summary="Re-index only the declarations that changed",
)
async def embed_schema_incremental(
    request: IncrementalEmbedRequest,
    service: EmbeddingService = Depends(get_embedding_service),
) -> IncrementalEmbedResult:
    """
    Diff the schema against the stored one: removed declarations are deleted,
    new ones embedded. Falls back to a full re-index when nothing usable is stored.
    """
    logger.info(f"Incremental schema embedding: sdl_length={len(request.schema_sdl)}")
    return await service.embed_schema_incremental(request.schema_sdl)


@router.get("/embeddings/count", response_model=CountResponse)
async def count_embeddings(
    service: EmbeddingService = Depends(get_embedding_service),
) -> CountResponse:
    return CountResponse(count=await service.count())


@router.delete("/embeddings", response_model=ClearResponse)
async def clear_embeddings(
    service: EmbeddingService = Depends(get_embedding_service),
) -> ClearResponse:
    """Remove every indexed declaration and the stored schema."""
    await service.clear()
    logger.info("Cleared all embeddings")
    return ClearResponse()
