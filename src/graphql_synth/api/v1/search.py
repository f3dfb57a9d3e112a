"""Similarity search endpoint."""

from fastapi import APIRouter, Depends

from graphql_synth.dependencies import get_embedding_service
from graphql_synth.models.api import SearchRequest, SearchResponse
from graphql_synth.services.embedding_service import EmbeddingService

router = APIRouter(tags=["search"])


@router.post("/search", response_model=SearchResponse, summary="Search indexed declarations")
async def search(
    request: SearchRequest,
    service: EmbeddingService = Depends(get_embedding_service),
) -> SearchResponse:
    results = await service.search(request.query, limit=request.limit)
    return SearchResponse(results=results)
