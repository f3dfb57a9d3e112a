"""Vector store contract shared by all backends."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

import numpy as np

from graphql_synth.models.document import (
    ColumnFilter,
    ColumnOperator,
    MetadataFilter,
    MetadataOperator,
    SearchOptions,
    SearchResult,
    StoredDocument,
)
from graphql_synth.utils.errors import InvalidFilterError, VectorStoreError

# Names that end up in SQL or payload keys must match this pattern
SAFE_IDENTIFIER = re.compile(r"^[A-Za-z0-9_]+$")

SCHEMA_SDL_KEY = "schema_sdl"


def validate_identifier(name: str, what: str = "field") -> str:
    """Return ``name`` if it is a safe identifier, else raise InvalidFilterError."""
    if not isinstance(name, str) or not SAFE_IDENTIFIER.match(name):
        raise InvalidFilterError(
            f"Invalid {what} name: {name!r}",
            details={what: name},
        )
    return name


def validate_filters(options: SearchOptions) -> None:
    """Check filter names and operand shapes before a backend sees them."""
    for mf in options.metadata_filters:
        validate_identifier(mf.field, "field")
        if mf.operator == MetadataOperator.IN and not isinstance(mf.value, (list, tuple)):
            raise InvalidFilterError(
                "The 'in' operator requires a list value",
                details={"field": mf.field},
            )
    for cf in options.column_filters:
        validate_identifier(cf.column.value, "column")
        if cf.operator == ColumnOperator.IN and not isinstance(cf.value, (list, tuple)):
            raise InvalidFilterError(
                "The 'in' operator requires a list value",
                details={"column": cf.column.value},
            )


def normalize_value(value):
    """Map enum members to their plain values so comparisons are backend-neutral."""
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    return getattr(value, "value", value)


def is_zero_vector(vector: Sequence[float]) -> bool:
    return not any(vector)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 when either vector has zero magnitude."""
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def cosine_similarities(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> List[float]:
    """Cosine similarity of ``query`` against each row of ``vectors`` in one pass."""
    if not vectors:
        return []
    matrix = np.asarray(vectors, dtype=float)
    q = np.asarray(query, dtype=float)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    scores = np.divide(matrix @ q, norms, out=np.zeros(len(matrix)), where=norms > 0)
    return scores.tolist()


class VectorStore(ABC):
    """Persists stored documents and answers similarity queries.

    Implementations rank by cosine similarity (descending), upsert by id and
    combine all filters with AND. Filter names are validated with
    :func:`validate_filters` before use.
    """

    name: str = "base"

    def __init__(self, dimensions: int):
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self.dimensions = dimensions

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/collections and indexes if missing."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    async def store(self, documents: List[StoredDocument]) -> None:
        """Upsert documents by id (last write wins)."""

    @abstractmethod
    async def search(
        self, embedding: List[float], options: Optional[SearchOptions] = None
    ) -> List[SearchResult]:
        """Return up to ``options.limit`` results ordered by descending score."""

    @abstractmethod
    async def delete(self, ids: Iterable[str]) -> None:
        """Remove documents by id; unknown ids are ignored."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every document and the stored schema text."""

    @abstractmethod
    async def count(self) -> int:
        """Number of stored documents."""

    @abstractmethod
    async def store_schema_sdl(self, sdl: str) -> None:
        """Keep the schema text next to the index for validation."""

    @abstractmethod
    async def get_schema_sdl(self) -> Optional[str]:
        """Return the stored schema text, if any."""

    def _check_dimensions(self, documents: List[StoredDocument]) -> None:
        for doc in documents:
            if len(doc.embedding) != self.dimensions:
                raise VectorStoreError(
                    "Embedding dimension mismatch",
                    backend=self.name,
                    details={
                        "document_id": doc.id,
                        "expected": self.dimensions,
                        "actual": len(doc.embedding),
                    },
                )

    def _prepare_search(
        self, embedding: List[float], options: Optional[SearchOptions]
    ) -> SearchOptions:
        options = options or SearchOptions()
        validate_filters(options)
        if len(embedding) != self.dimensions:
            raise InvalidFilterError(
                "Query vector dimension mismatch",
                details={"expected": self.dimensions, "actual": len(embedding)},
            )
        return options


def matches_metadata(metadata: dict, flt: MetadataFilter) -> bool:
    """Evaluate a metadata filter in Python. Missing keys never match eq/neq/in."""
    if flt.operator == MetadataOperator.EXISTS:
        return flt.field in metadata
    if flt.field not in metadata:
        return False
    actual = normalize_value(metadata[flt.field])
    expected = normalize_value(flt.value)
    if flt.operator == MetadataOperator.EQ:
        return actual == expected
    if flt.operator == MetadataOperator.NEQ:
        return actual != expected
    return actual in expected


def matches_column(document: StoredDocument, flt: ColumnFilter) -> bool:
    actual = normalize_value(getattr(document, flt.column.value))
    expected = normalize_value(flt.value)
    if flt.operator == ColumnOperator.EQ:
        return actual == expected
    return actual in expected
