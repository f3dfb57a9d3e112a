"""Vector store backends."""

from graphql_synth.stores.base import (
    SAFE_IDENTIFIER,
    VectorStore,
    cosine_similarities,
    cosine_similarity,
    validate_filters,
)
from graphql_synth.stores.memory import InMemoryVectorStore

__all__ = [
    "SAFE_IDENTIFIER",
    "VectorStore",
    "InMemoryVectorStore",
    "cosine_similarities",
    "cosine_similarity",
    "validate_filters",
]
