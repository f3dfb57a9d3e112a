"""Qdrant backend."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Dict, Iterable, List, Optional

from qdrant_client import QdrantClient
from qdrant_client.http import models as qdrant_models
from qdrant_client.models import Distance, PointStruct, VectorParams

from graphql_synth.models.document import (
    ColumnOperator,
    DeclarationDocument,
    MetadataOperator,
    SearchOptions,
    SearchResult,
    StoredDocument,
)
from graphql_synth.stores.base import (
    SCHEMA_SDL_KEY,
    VectorStore,
    is_zero_vector,
    normalize_value,
    validate_identifier,
)
from graphql_synth.utils.errors import VectorStoreError
from graphql_synth.utils.logging import get_logger

logger = get_logger("qdrant_store")

# Deterministic namespace for mapping document ids to Qdrant point ids
_POINT_ID_NAMESPACE = uuid.UUID("0f7d3c52-9a41-4b8e-8d0c-5a3f2e61c7b4")


def make_point_id(document_id: str) -> str:
    """Create a stable UUID point id for a document id."""
    return str(uuid.uuid5(_POINT_ID_NAMESPACE, document_id))


def _match(value: Any) -> qdrant_models.MatchValue:
    return qdrant_models.MatchValue(value=normalize_value(value))


def build_filter(options: SearchOptions) -> Optional[qdrant_models.Filter]:
    """Translate metadata and column filters into a Qdrant payload filter."""
    must: List[Any] = []
    must_not: List[Any] = []

    for flt in options.metadata_filters:
        key = f"metadata.{validate_identifier(flt.field, 'field')}"
        if flt.operator == MetadataOperator.EQ:
            must.append(qdrant_models.FieldCondition(key=key, match=_match(flt.value)))
        elif flt.operator == MetadataOperator.NEQ:
            # A missing key never satisfies neq, same as SQL NULL comparison
            must.append(
                qdrant_models.Filter(
                    must_not=[
                        qdrant_models.FieldCondition(key=key, match=_match(flt.value)),
                        qdrant_models.IsEmptyCondition(is_empty=qdrant_models.PayloadField(key=key)),
                    ]
                )
            )
        elif flt.operator == MetadataOperator.IN:
            must.append(
                qdrant_models.FieldCondition(
                    key=key, match=qdrant_models.MatchAny(any=normalize_value(flt.value))
                )
            )
        else:
            must_not.append(
                qdrant_models.IsEmptyCondition(is_empty=qdrant_models.PayloadField(key=key))
            )

    for flt in options.column_filters:
        key = validate_identifier(flt.column.value, "column")
        if flt.operator == ColumnOperator.EQ:
            must.append(qdrant_models.FieldCondition(key=key, match=_match(flt.value)))
        else:
            must.append(
                qdrant_models.FieldCondition(
                    key=key, match=qdrant_models.MatchAny(any=normalize_value(flt.value))
                )
            )

    if not must and not must_not:
        return None
    return qdrant_models.Filter(must=must or None, must_not=must_not or None)


def _payload_to_document(payload: Dict[str, Any]) -> DeclarationDocument:
    return DeclarationDocument(
        id=payload["doc_id"],
        type=payload["type"],
        name=payload["name"],
        description=payload.get("description"),
        content=payload["content"],
        metadata=payload.get("metadata") or {},
    )


class QdrantVectorStore(VectorStore):
    """Stores declaration documents as points in one Qdrant collection.

    The client is synchronous, so calls run in a worker thread. The schema
    text lives in a one-point side collection named ``<collection>_meta``.
    """

    name = "qdrant"

    def __init__(
        self,
        dimensions: int,
        collection_name: str = "graphql_embeddings",
        url: str = "http://localhost:6333",
        api_key: Optional[str] = None,
        timeout: int = 30,
        client: Optional[QdrantClient] = None,
    ):
        super().__init__(dimensions)
        self.collection_name = validate_identifier(collection_name, "collection")
        self.meta_collection_name = f"{collection_name}_meta"
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> QdrantClient:
        if self._client is not None:
            return self._client
        self._client = QdrantClient(url=self._url, api_key=self._api_key, timeout=self._timeout)
        return self._client

    async def _run(self, action: str, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except VectorStoreError:
            raise
        except Exception as e:
            raise VectorStoreError(
                f"Qdrant {action} failed",
                backend=self.name,
                details={"collection": self.collection_name, "error": str(e)},
            ) from e

    def _ensure_collections(self) -> None:
        client = self._get_client()
        if client.collection_exists(self.collection_name):
            info = client.get_collection(self.collection_name)
            current_size = getattr(getattr(info.config.params, "vectors", None), "size", None)
            if current_size is not None and int(current_size) != self.dimensions:
                raise VectorStoreError(
                    "Qdrant collection vector size mismatch",
                    backend=self.name,
                    details={
                        "collection": self.collection_name,
                        "expected": self.dimensions,
                        "actual": int(current_size),
                    },
                )
        else:
            client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(size=self.dimensions, distance=Distance.COSINE),
            )
        if not client.collection_exists(self.meta_collection_name):
            client.create_collection(
                collection_name=self.meta_collection_name,
                vectors_config=VectorParams(size=1, distance=Distance.DOT),
            )

    async def initialize(self) -> None:
        await self._run("initialize", self._ensure_collections)
        logger.info(
            f"Qdrant collection ensured: {self.collection_name} (vector_size={self.dimensions})"
        )

    async def close(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None

    async def store(self, documents: List[StoredDocument]) -> None:
        if not documents:
            return
        self._check_dimensions(documents)
        points = [
            PointStruct(
                id=make_point_id(doc.id),
                vector=doc.embedding,
                payload={
                    "doc_id": doc.id,
                    "type": doc.type.value,
                    "name": doc.name,
                    "description": doc.description,
                    "content": doc.content,
                    "metadata": doc.metadata,
                },
            )
            for doc in documents
        ]
        await self._run(
            "upsert",
            self._get_client().upsert,
            collection_name=self.collection_name,
            points=points,
            wait=True,
        )
        logger.info(
            f"Qdrant upsert complete: collection={self.collection_name}, points={len(points)}"
        )

    async def search(
        self, embedding: List[float], options: Optional[SearchOptions] = None
    ) -> List[SearchResult]:
        options = self._prepare_search(embedding, options)
        query_filter = build_filter(options)
        client = self._get_client()

        if is_zero_vector(embedding):
            # Cosine is undefined for a zero query; list filter matches instead
            points, _ = await self._run(
                "scroll",
                client.scroll,
                collection_name=self.collection_name,
                scroll_filter=query_filter,
                limit=options.limit,
                with_payload=True,
            )
            return [SearchResult(document=_payload_to_document(p.payload), score=0.0) for p in points]

        response = await self._run(
            "search",
            client.query_points,
            collection_name=self.collection_name,
            query=embedding,
            query_filter=query_filter,
            limit=options.limit,
            with_payload=True,
        )
        return [
            SearchResult(document=_payload_to_document(p.payload), score=float(p.score))
            for p in response.points
        ]

    async def delete(self, ids: Iterable[str]) -> None:
        point_ids = [make_point_id(i) for i in ids]
        if not point_ids:
            return
        await self._run(
            "delete",
            self._get_client().delete,
            collection_name=self.collection_name,
            points_selector=qdrant_models.PointIdsList(points=point_ids),
        )

    def _recreate(self) -> None:
        client = self._get_client()
        client.delete_collection(collection_name=self.collection_name)
        client.delete_collection(collection_name=self.meta_collection_name)
        self._ensure_collections()

    async def clear(self) -> None:
        await self._run("clear", self._recreate)
        logger.info(f"Qdrant collection cleared: {self.collection_name}")

    async def count(self) -> int:
        result = await self._run(
            "count", self._get_client().count, collection_name=self.collection_name, exact=True
        )
        return int(result.count)

    async def store_schema_sdl(self, sdl: str) -> None:
        await self._run(
            "upsert",
            self._get_client().upsert,
            collection_name=self.meta_collection_name,
            points=[
                PointStruct(
                    id=make_point_id(SCHEMA_SDL_KEY),
                    vector=[1.0],
                    payload={"key": SCHEMA_SDL_KEY, "value": sdl},
                )
            ],
            wait=True,
        )

    async def get_schema_sdl(self) -> Optional[str]:
        points = await self._run(
            "retrieve",
            self._get_client().retrieve,
            collection_name=self.meta_collection_name,
            ids=[make_point_id(SCHEMA_SDL_KEY)],
            with_payload=True,
        )
        if not points:
            return None
        return points[0].payload.get("value")
