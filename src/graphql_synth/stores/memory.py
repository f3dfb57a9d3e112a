"""In-process vector store for development and tests."""

from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional

from graphql_synth.models.document import SearchOptions, SearchResult, StoredDocument
from graphql_synth.stores.base import (
    SCHEMA_SDL_KEY,
    VectorStore,
    cosine_similarities,
    matches_column,
    matches_metadata,
)
from graphql_synth.utils.logging import get_logger

logger = get_logger("memory_store")


class InMemoryVectorStore(VectorStore):
    """Brute-force cosine search over a dict of documents.

    Documents keep insertion order, so results with equal scores come back in
    the order they were first stored.
    """

    name = "memory"

    def __init__(self, dimensions: int):
        super().__init__(dimensions)
        self._documents: Dict[str, StoredDocument] = {}
        self._meta: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        logger.info(f"In-memory vector store ready (dimensions={self.dimensions})")

    async def close(self) -> None:
        return None

    async def store(self, documents: List[StoredDocument]) -> None:
        self._check_dimensions(documents)
        async with self._lock:
            for doc in documents:
                self._documents[doc.id] = doc.model_copy(deep=True)
        logger.debug(f"Stored {len(documents)} documents (total={len(self._documents)})")

    async def search(
        self, embedding: List[float], options: Optional[SearchOptions] = None
    ) -> List[SearchResult]:
        options = self._prepare_search(embedding, options)

        candidates = [
            doc
            for doc in list(self._documents.values())
            if all(matches_metadata(doc.metadata, f) for f in options.metadata_filters)
            and all(matches_column(doc, f) for f in options.column_filters)
        ]
        scores = cosine_similarities(embedding, [doc.embedding for doc in candidates])

        # sorted() is stable, so ties keep insertion order
        ranked = sorted(zip(candidates, scores), key=lambda pair: pair[1], reverse=True)
        return [
            SearchResult(document=doc.to_document(), score=score)
            for doc, score in ranked[: options.limit]
        ]

    async def delete(self, ids: Iterable[str]) -> None:
        async with self._lock:
            for doc_id in ids:
                self._documents.pop(doc_id, None)

    async def clear(self) -> None:
        async with self._lock:
            self._documents.clear()
            self._meta.clear()
        logger.info("In-memory vector store cleared")

    async def count(self) -> int:
        return len(self._documents)

    async def store_schema_sdl(self, sdl: str) -> None:
        self._meta[SCHEMA_SDL_KEY] = sdl

    async def get_schema_sdl(self) -> Optional[str]:
        return self._meta.get(SCHEMA_SDL_KEY)
