"""PostgreSQL + pgvector backend."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

from pgvector.asyncpg import register_vector
from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, Index, MetaData, Table, Text, event, func, literal, select, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql import Select

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

logger = get_logger("postgres_store")


def to_async_url(db_url: str) -> str:
    """Convert a PostgreSQL URL to the asyncpg driver form."""
    if db_url.startswith("postgresql://"):
        return db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if db_url.startswith("postgres://"):
        return db_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if db_url.startswith("postgresql+psycopg2://"):
        return db_url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)
    return db_url


def _json_text(value: Any) -> str:
    """Render a filter operand the way ``metadata->>'key'`` renders the stored value."""
    value = normalize_value(value)
    if isinstance(value, str):
        return value
    return json.dumps(value)


def build_tables(table_name: str, dimensions: int) -> tuple:
    """Describe the documents table, its key/value side table and the ANN index."""
    validate_identifier(table_name, "table")
    metadata = MetaData()
    documents = Table(
        table_name,
        metadata,
        Column("id", Text, primary_key=True),
        Column("type", Text, nullable=False),
        Column("name", Text, nullable=False),
        Column("description", Text, nullable=True),
        Column("content", Text, nullable=False),
        Column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb")),
        Column("embedding", Vector(dimensions), nullable=False),
    )
    Index(
        f"{table_name}_embedding_idx",
        documents.c.embedding,
        postgresql_using="ivfflat",
        postgresql_with={"lists": 100},
        postgresql_ops={"embedding": "vector_cosine_ops"},
    )
    meta = Table(
        f"{table_name}_meta",
        metadata,
        Column("key", Text, primary_key=True),
        Column("value", Text, nullable=False),
    )
    return metadata, documents, meta


class PgVectorStore(VectorStore):
    """Stores declaration documents in a PostgreSQL table with a vector column.

    Similarity is ``1 - (embedding <=> query)``. Metadata filters compare the
    text form of ``metadata->>'key'``; every operand is a bound parameter.
    """

    name = "pgvector"

    def __init__(
        self,
        dimensions: int,
        database_url: Optional[str] = None,
        table_name: str = "graphql_embeddings",
        engine: Optional[AsyncEngine] = None,
        pool_size: int = 5,
        max_overflow: int = 10,
    ):
        super().__init__(dimensions)
        if engine is None and not database_url:
            raise ValueError("PgVectorStore needs a database_url or an engine")
        self.table_name = table_name
        self._database_url = database_url
        self._engine = engine
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._metadata, self.documents, self.meta = build_tables(table_name, dimensions)

    def _get_engine(self) -> AsyncEngine:
        if self._engine is not None:
            return self._engine

        engine = create_async_engine(
            to_async_url(self._database_url),
            pool_size=self._pool_size,
            max_overflow=self._max_overflow,
            pool_pre_ping=True,
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _register_vector(dbapi_connection, connection_record):
            dbapi_connection.run_async(register_vector)

        self._engine = engine
        logger.info(
            f"Database engine created: pool_size={self._pool_size}, "
            f"max_overflow={self._max_overflow}"
        )
        return engine

    async def initialize(self) -> None:
        engine = self._get_engine()
        try:
            async with engine.begin() as conn:
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                await conn.run_sync(self._metadata.create_all)
                result = await conn.execute(
                    text(
                        "SELECT atttypmod FROM pg_attribute "
                        "WHERE attrelid = CAST(:table AS regclass) AND attname = 'embedding'"
                    ),
                    {"table": self.table_name},
                )
                existing = result.scalar()
        except SQLAlchemyError as e:
            raise VectorStoreError(
                "Failed to initialize pgvector store",
                backend=self.name,
                details={"table": self.table_name, "error": str(e)},
            ) from e

        if existing is not None and existing > 0 and int(existing) != self.dimensions:
            raise VectorStoreError(
                "Existing table has a different embedding dimension",
                backend=self.name,
                details={
                    "table": self.table_name,
                    "expected": self.dimensions,
                    "actual": int(existing),
                },
            )
        logger.info(f"pgvector table ensured: {self.table_name} (dimensions={self.dimensions})")

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info("Database engine closed")

    def _document_row(self, doc: StoredDocument) -> Dict[str, Any]:
        return {
            "id": doc.id,
            "type": doc.type.value,
            "name": doc.name,
            "description": doc.description,
            "content": doc.content,
            "metadata": doc.metadata,
            "embedding": doc.embedding,
        }

    def build_upsert_statement(self, documents: List[StoredDocument]):
        stmt = pg_insert(self.documents).values([self._document_row(d) for d in documents])
        return stmt.on_conflict_do_update(
            index_elements=[self.documents.c.id],
            set_={
                col: stmt.excluded[col]
                for col in ("type", "name", "description", "content", "metadata", "embedding")
            },
        )

    async def store(self, documents: List[StoredDocument]) -> None:
        if not documents:
            return
        self._check_dimensions(documents)
        try:
            async with self._get_engine().begin() as conn:
                await conn.execute(self.build_upsert_statement(documents))
        except SQLAlchemyError as e:
            raise VectorStoreError(
                "Failed to upsert documents",
                backend=self.name,
                details={"count": len(documents), "error": str(e)},
            ) from e
        logger.info(f"pgvector upsert complete: table={self.table_name}, rows={len(documents)}")

    def build_search_statement(self, embedding: List[float], options: SearchOptions) -> Select:
        """Build the ranked, filtered SELECT for a search (filters already validated)."""
        docs = self.documents
        columns = [docs.c.id, docs.c.type, docs.c.name, docs.c.description, docs.c.content, docs.c["metadata"]]

        if is_zero_vector(embedding):
            # Cosine distance to a zero vector is undefined; return filter matches unranked
            stmt = select(*columns, literal(0.0).label("score")).order_by(docs.c.id)
        else:
            distance = docs.c.embedding.cosine_distance(embedding)
            stmt = select(*columns, (1 - distance).label("score")).order_by(distance)

        for flt in options.metadata_filters:
            field = validate_identifier(flt.field, "field")
            accessor = docs.c["metadata"][field].astext
            if flt.operator == MetadataOperator.EQ:
                stmt = stmt.where(accessor == _json_text(flt.value))
            elif flt.operator == MetadataOperator.NEQ:
                stmt = stmt.where(accessor != _json_text(flt.value))
            elif flt.operator == MetadataOperator.IN:
                stmt = stmt.where(accessor.in_([_json_text(v) for v in flt.value]))
            else:
                stmt = stmt.where(docs.c["metadata"].has_key(field))

        for flt in options.column_filters:
            column = docs.c[validate_identifier(flt.column.value, "column")]
            value = normalize_value(flt.value)
            if flt.operator == ColumnOperator.EQ:
                stmt = stmt.where(column == value)
            else:
                stmt = stmt.where(column.in_(value))

        return stmt.limit(options.limit)

    async def search(
        self, embedding: List[float], options: Optional[SearchOptions] = None
    ) -> List[SearchResult]:
        options = self._prepare_search(embedding, options)
        stmt = self.build_search_statement(embedding, options)
        try:
            async with self._get_engine().connect() as conn:
                result = await conn.execute(stmt)
                rows = result.mappings().all()
        except SQLAlchemyError as e:
            raise VectorStoreError(
                "Vector search failed",
                backend=self.name,
                details={"table": self.table_name, "error": str(e)},
            ) from e

        return [
            SearchResult(
                document=DeclarationDocument(
                    id=row["id"],
                    type=row["type"],
                    name=row["name"],
                    description=row["description"],
                    content=row["content"],
                    metadata=row["metadata"] or {},
                ),
                score=float(row["score"]),
            )
            for row in rows
        ]

    async def delete(self, ids: Iterable[str]) -> None:
        ids = list(ids)
        if not ids:
            return
        try:
            async with self._get_engine().begin() as conn:
                await conn.execute(self.documents.delete().where(self.documents.c.id.in_(ids)))
        except SQLAlchemyError as e:
            raise VectorStoreError(
                "Failed to delete documents", backend=self.name, details={"error": str(e)}
            ) from e

    async def clear(self) -> None:
        try:
            async with self._get_engine().begin() as conn:
                await conn.execute(text(f"TRUNCATE TABLE {self.table_name}"))
                await conn.execute(self.meta.delete().where(self.meta.c["key"] == SCHEMA_SDL_KEY))
        except SQLAlchemyError as e:
            raise VectorStoreError(
                "Failed to clear store", backend=self.name, details={"error": str(e)}
            ) from e
        logger.info(f"pgvector table cleared: {self.table_name}")

    async def count(self) -> int:
        try:
            async with self._get_engine().connect() as conn:
                result = await conn.execute(select(func.count()).select_from(self.documents))
                return int(result.scalar() or 0)
        except SQLAlchemyError as e:
            raise VectorStoreError(
                "Failed to count documents", backend=self.name, details={"error": str(e)}
            ) from e

    async def store_schema_sdl(self, sdl: str) -> None:
        stmt = pg_insert(self.meta).values(key=SCHEMA_SDL_KEY, value=sdl)
        stmt = stmt.on_conflict_do_update(
            index_elements=[self.meta.c["key"]], set_={"value": stmt.excluded["value"]}
        )
        try:
            async with self._get_engine().begin() as conn:
                await conn.execute(stmt)
        except SQLAlchemyError as e:
            raise VectorStoreError(
                "Failed to store schema text", backend=self.name, details={"error": str(e)}
            ) from e

    async def get_schema_sdl(self) -> Optional[str]:
        try:
            async with self._get_engine().connect() as conn:
                result = await conn.execute(
                    select(self.meta.c["value"]).where(self.meta.c["key"] == SCHEMA_SDL_KEY)
                )
                return result.scalar()
        except SQLAlchemyError as e:
            raise VectorStoreError(
                "Failed to read schema text", backend=self.name, details={"error": str(e)}
            ) from e
