"""Chunking and embedding of declaration documents."""

from __future__ import annotations

import math
from typing import Iterable, List, Optional

from graphql_synth.models.document import (
    DeclarationDocument,
    SearchOptions,
    SearchResult,
    StoredDocument,
)
from graphql_synth.models.embedding import (
    ChunkedDocument,
    EmbedResult,
    IncrementalEmbedResult,
    SkippedDocument,
)
from graphql_synth.providers.embedding import EmbeddingProvider
from graphql_synth.services.schema_parser import SchemaDecomposer, get_schema_decomposer
from graphql_synth.services.validator import OperationValidator, get_operation_validator
from graphql_synth.stores.base import VectorStore
from graphql_synth.utils.errors import EmbeddingError, SchemaParseError
from graphql_synth.utils.logging import get_logger

logger = get_logger("embedding_service")

# Token limit assumed for providers that count tokens but report no context size
DEFAULT_MAX_TOKENS = 2048

# Share of the estimated character budget used when splitting, leaving headroom
SAFE_CHAR_RATIO = 0.9


class EmbeddingService:
    """
    Embed declaration documents and write them to a vector store.

    Documents over the provider's token limit are split with the schema
    decomposer; if no split brings every piece under the limit the document
    is skipped and reported rather than failing the batch.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: VectorStore,
        decomposer: Optional[SchemaDecomposer] = None,
        validator: Optional[OperationValidator] = None,
    ) -> None:
        self.provider = provider
        self.store = store
        self.decomposer = decomposer or get_schema_decomposer()
        self.validator = validator or get_operation_validator()

    def _max_tokens(self) -> int:
        return self.provider.max_context_size or DEFAULT_MAX_TOKENS

    @staticmethod
    def _safe_char_limit(doc: DeclarationDocument, token_count: int, max_tokens: int) -> int:
        chars_per_token = len(doc.content) / token_count
        return max(1, math.floor(max_tokens * chars_per_token * SAFE_CHAR_RATIO))

    def _stored_ids(self, documents: List[DeclarationDocument]) -> List[str]:
        """Ids the documents occupy in the store, including chunk ids of oversized ones."""
        ids = [doc.id for doc in documents]
        if not self.provider.supports_token_counting:
            return ids

        max_tokens = self._max_tokens()
        for doc in documents:
            token_count = self.provider.count_tokens(doc.content)
            if token_count > max_tokens:
                limit = self._safe_char_limit(doc, token_count, max_tokens)
                ids.extend(c.id for c in self.decomposer.chunk([doc], limit) if c.id != doc.id)
        return ids

    def _prepare_units(
        self, documents: List[DeclarationDocument], result: EmbedResult
    ) -> List[DeclarationDocument]:
        """Resolve documents into embeddable units, recording chunked and skipped ones."""
        if not self.provider.supports_token_counting:
            return list(documents)

        max_tokens = self._max_tokens()
        units: List[DeclarationDocument] = []

        for doc in documents:
            token_count = self.provider.count_tokens(doc.content)
            if token_count <= max_tokens:
                units.append(doc)
                continue

            chunks = self.decomposer.chunk(
                [doc], self._safe_char_limit(doc, token_count, max_tokens)
            )

            if len(chunks) > 1 and all(
                self.provider.count_tokens(c.content) <= max_tokens for c in chunks
            ):
                units.extend(chunks)
                result.chunked_documents.append(
                    ChunkedDocument(
                        id=doc.id,
                        name=doc.name,
                        original_token_count=token_count,
                        chunks=len(chunks),
                    )
                )
                logger.info(
                    f"Chunked oversized document: name={doc.name}, tokens={token_count}, "
                    f"chunks={len(chunks)}"
                )
            else:
                result.skipped_documents.append(
                    SkippedDocument(
                        id=doc.id,
                        name=doc.name,
                        token_count=token_count,
                        max_tokens=max_tokens,
                    )
                )
                logger.warning(
                    f"Skipping document over token limit: name={doc.name}, "
                    f"tokens={token_count}, max_tokens={max_tokens}"
                )

        return units

    async def embed_and_store(self, documents: List[DeclarationDocument]) -> EmbedResult:
        """
        Embed documents in one batch and upsert them.

        Args:
            documents: Declaration documents to index

        Returns:
            EmbedResult with counts of embedded units, chunked and skipped documents

        Raises:
            EmbeddingError: If the provider fails or returns the wrong number of vectors
        """
        result = EmbedResult()
        if not documents:
            return result

        units = self._prepare_units(documents, result)
        result.skipped_count = len(result.skipped_documents)
        result.chunked_count = len(result.chunked_documents)

        if units:
            vectors = await self.provider.embed_batch([u.content for u in units])
            if len(vectors) != len(units):
                raise EmbeddingError(
                    "Embedding response size mismatch",
                    details={"expected": len(units), "got": len(vectors)},
                )
            await self.store.store(
                [StoredDocument.from_document(u, v) for u, v in zip(units, vectors)]
            )
            result.embedded_count = len(units)

        logger.info(
            f"Embed and store complete: documents={len(documents)}, "
            f"embedded={result.embedded_count}, chunked={result.chunked_count}, "
            f"skipped={result.skipped_count}"
        )
        return result

    async def embed_schema(self, schema_sdl: str, clear_existing: bool = False) -> EmbedResult:
        """
        Decompose a schema, index its declarations and keep the SDL for validation.

        Raises:
            SchemaParseError: If the SDL does not parse or does not build a valid schema
        """
        documents = self.decomposer.parse(schema_sdl)
        await self.validator.check_schema(schema_sdl)
        logger.info(f"Schema decomposed: documents={len(documents)}")
        if clear_existing:
            await self.store.clear()
        result = await self.embed_and_store(documents)
        await self.store.store_schema_sdl(schema_sdl)
        return result

    async def embed_schema_incremental(self, schema_sdl: str) -> IncrementalEmbedResult:
        """
        Re-index a schema by diffing its declarations against the stored schema.

        Declarations that disappeared are deleted (with their chunks), new ones
        are embedded and unchanged ones are left alone. Without a stored schema,
        or when the stored one no longer parses, the store is rebuilt in full.

        Raises:
            SchemaParseError: If the new SDL does not parse or does not build
        """
        new_documents = self.decomposer.parse(schema_sdl)
        await self.validator.check_schema(schema_sdl)

        old_sdl = await self.store.get_schema_sdl()
        old_documents: Optional[List[DeclarationDocument]] = None
        if old_sdl:
            try:
                old_documents = self.decomposer.parse(old_sdl)
            except SchemaParseError as e:
                logger.warning(f"Stored schema does not parse, re-indexing in full: {e.message}")

        if old_documents is None:
            result = await self.embed_schema(schema_sdl, clear_existing=True)
            return IncrementalEmbedResult(
                added_count=result.embedded_document_count,
                full_reindex=True,
                embed_result=result,
            )

        old_ids = {d.id for d in old_documents}
        new_ids = {d.id for d in new_documents}
        removed = [d for d in old_documents if d.id not in new_ids]
        added = [d for d in new_documents if d.id not in old_ids]
        unchanged = len(new_ids & old_ids)
        logger.info(
            f"Schema diff: add={len(added)}, delete={len(removed)}, unchanged={unchanged}"
        )

        if removed:
            await self.store.delete(self._stored_ids(removed))
        result = await self.embed_and_store(added)
        await self.store.store_schema_sdl(schema_sdl)

        return IncrementalEmbedResult(
            added_count=result.embedded_document_count,
            deleted_count=len(removed),
            unchanged_count=unchanged,
            embed_result=result,
        )

    async def search(self, query: str, limit: int = 10) -> List[SearchResult]:
        """Embed free text and return the closest declarations."""
        vector = await self.provider.embed(query)
        return await self.store.search(vector, SearchOptions(limit=limit))

    async def delete(self, ids: Iterable[str]) -> None:
        await self.store.delete(ids)

    async def clear(self) -> None:
        await self.store.clear()

    async def count(self) -> int:
        return await self.store.count()

    async def close(self) -> None:
        await self.store.close()
        await self.provider.dispose()
