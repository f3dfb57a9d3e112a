"""Request and response models for the HTTP API."""

from typing import List, Optional

from pydantic import BaseModel, Field

from graphql_synth.models.document import SearchResult


class EmbedSchemaRequest(BaseModel):
    """Request to index a schema document."""

    schema_sdl: str = Field(..., min_length=1, description="GraphQL schema in SDL form")
    clear_existing: bool = Field(
        default=False, description="Remove previously indexed declarations first"
    )


class SearchRequest(BaseModel):
    """Free-text similarity search over indexed declarations."""

    query: str = Field(..., min_length=1)
    limit: int = Field(default=10, gt=0, le=200)


class SearchResponse(BaseModel):
    results: List[SearchResult]


class GenerateOperationRequest(BaseModel):
    """Request to synthesize an operation; unset limits use the service defaults."""

    input_text: str = Field(..., min_length=1, description="Natural-language request")
    min_similarity_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_documents: Optional[int] = Field(default=None, gt=0)
    max_validation_retries: Optional[int] = Field(default=None, ge=1, le=10)


class CountResponse(BaseModel):
    count: int


class ClearResponse(BaseModel):
    cleared: bool = True


class IncrementalEmbedRequest(BaseModel):
    """Request to re-index a schema, touching only declarations that changed."""

    schema_sdl: str = Field(..., min_length=1, description="GraphQL schema in SDL form")
