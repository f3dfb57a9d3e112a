"""Service wiring and FastAPI dependencies.

Backends are chosen from settings once at startup and held in a
``ServiceContainer`` on ``app.state``; request handlers get them through the
``get_*`` dependencies below.
"""

from typing import Optional

from fastapi import HTTPException, Request, status

from graphql_synth.config import Settings, VectorStoreBackend, get_settings
from graphql_synth.models.operation import GenerationOptions
from graphql_synth.providers.embedding import EmbeddingProvider, OpenAIEmbeddingProvider
from graphql_synth.providers.llm import LiteLLMProvider, LLMProvider
from graphql_synth.services.embedding_service import EmbeddingService
from graphql_synth.services.operation_generator import OperationGenerator
from graphql_synth.stores.base import VectorStore
from graphql_synth.stores.memory import InMemoryVectorStore
from graphql_synth.utils.logging import get_logger

logger = get_logger("dependencies")


def create_embedding_provider(settings: Settings) -> EmbeddingProvider:
    """Create the embedding provider selected by EMBEDDING_PROVIDER."""
    return OpenAIEmbeddingProvider(settings.embedding)


def create_llm_provider(settings: Settings) -> LLMProvider:
    return LiteLLMProvider(settings.llm)


def create_vector_store(settings: Settings, dimensions: int) -> VectorStore:
    """
    Create the vector store selected by VECTOR_STORE_BACKEND.

    Backend modules are imported lazily so the in-memory store works without
    the database drivers installed.
    """
    store_settings = settings.vector_store
    backend = store_settings.backend

    if backend == VectorStoreBackend.MEMORY:
        return InMemoryVectorStore(dimensions)

    if backend == VectorStoreBackend.PGVECTOR:
        from graphql_synth.stores.postgres import PgVectorStore

        return PgVectorStore(
            dimensions,
            database_url=store_settings.database_url,
            table_name=store_settings.table_name,
            pool_size=store_settings.pool_size,
            max_overflow=store_settings.max_overflow,
        )

    if backend == VectorStoreBackend.QDRANT:
        from graphql_synth.stores.qdrant import QdrantVectorStore

        return QdrantVectorStore(
            dimensions,
            collection_name=store_settings.table_name,
            url=store_settings.qdrant_url,
            api_key=store_settings.qdrant_api_key,
            timeout=store_settings.qdrant_timeout,
        )

    raise ValueError(f"Unsupported vector store backend: {backend}")


def generation_options_from_settings(settings: Settings) -> GenerationOptions:
    g = settings.generation
    return GenerationOptions(
        min_similarity_score=g.min_similarity_score,
        score_relaxation_step=g.score_relaxation_step,
        max_documents=g.max_documents,
        max_type_documents=g.max_type_documents,
        max_type_depth=g.max_type_depth,
        max_validation_retries=g.max_validation_retries,
        classification_timeout=g.classification_timeout,
        generation_timeout=g.generation_timeout,
    )


class ServiceContainer:
    """Holds the long-lived providers, store and services of one application."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        store: VectorStore,
        llm: LLMProvider,
        options: Optional[GenerationOptions] = None,
    ) -> None:
        self.embedding_provider = embedding_provider
        self.store = store
        self.llm = llm
        self.embedding_service = EmbeddingService(embedding_provider, store)
        self.generator = OperationGenerator(
            embedding_provider, store, llm, options=options or GenerationOptions()
        )

    @classmethod
    async def from_settings(cls, settings: Optional[Settings] = None) -> "ServiceContainer":
        """Build and initialize every component from settings."""
        settings = settings or get_settings()

        embedding_provider = create_embedding_provider(settings)
        await embedding_provider.initialize()

        store = create_vector_store(settings, embedding_provider.dimensions)
        await store.initialize()

        llm = create_llm_provider(settings)
        await llm.initialize()

        logger.info(
            f"Services initialized: store={store.name}, llm={llm.model}, "
            f"dimensions={embedding_provider.dimensions}"
        )
        return cls(
            embedding_provider, store, llm, options=generation_options_from_settings(settings)
        )

    async def shutdown(self) -> None:
        await self.embedding_service.close()
        await self.llm.dispose()


def get_container(request: Request) -> ServiceContainer:
    """
    Get the ServiceContainer from app state.

    Raises:
        HTTPException: 503 if startup has not completed
    """
    container: Optional[ServiceContainer] = getattr(request.app.state, "services", None)
    if container is None:
        logger.error("Service container not available in app state")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services are not available (startup not complete)",
        )
    return container


def get_embedding_service(request: Request) -> EmbeddingService:
    return get_container(request).embedding_service


def get_operation_generator(request: Request) -> OperationGenerator:
    return get_container(request).generator
