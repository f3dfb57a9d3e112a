"""Embedding result models."""

from typing import List

from pydantic import BaseModel, Field


class SkippedDocument(BaseModel):
    """A document that could not be brought under the provider's token limit."""

    id: str = Field(..., description="Document id")
    name: str = Field(..., description="Document name")
    token_count: int = Field(..., ge=0, description="Token count of the whole document")
    max_tokens: int = Field(..., ge=0, description="Provider token limit")


class ChunkedDocument(BaseModel):
    """A document that was split into chunks before embedding."""

    id: str = Field(..., description="Original document id")
    name: str = Field(..., description="Document name")
    original_token_count: int = Field(..., ge=0)
    chunks: int = Field(..., ge=2, description="Number of chunks stored")


class EmbedResult(BaseModel):
    """Outcome of an embed-and-store call."""

    embedded_count: int = Field(default=0, description="Embeddable units written (chunks count individually)")
    skipped_count: int = Field(default=0, description="Documents dropped for exceeding the token limit")
    skipped_documents: List[SkippedDocument] = Field(default_factory=list)
    chunked_count: int = Field(default=0, description="Documents that were split into chunks")
    chunked_documents: List[ChunkedDocument] = Field(default_factory=list)

    @property
    def embedded_document_count(self) -> int:
        """Input documents that were stored, counting each chunk group once."""
        return self.embedded_count - sum(c.chunks - 1 for c in self.chunked_documents)


class IncrementalEmbedResult(BaseModel):
    """Outcome of re-indexing a schema against the previously stored one.

    Document ids are content-derived, so a changed declaration shows up as
    one deletion plus one addition.
    """

    added_count: int = Field(default=0, description="New declarations indexed")
    deleted_count: int = Field(default=0, description="Declarations no longer in the schema")
    unchanged_count: int = Field(default=0, description="Declarations kept as they were")
    full_reindex: bool = Field(
        default=False, description="True when there was no usable stored schema to diff against"
    )
    embed_result: EmbedResult = Field(
        default_factory=EmbedResult, description="Accounting for the declarations that were embedded"
    )
