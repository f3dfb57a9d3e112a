"""Embedding providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

import tiktoken
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from graphql_synth.config import EmbeddingProviderKind, EmbeddingSettings
from graphql_synth.utils.errors import EmbeddingError
from graphql_synth.utils.logging import get_logger

logger = get_logger("embedding_provider")


class EmbeddingProvider(ABC):
    """Turns text into fixed-length vectors.

    Providers that can count tokens advertise it via ``supports_token_counting``
    and expose ``max_context_size``; the embedding service only chunks
    documents for such providers.
    """

    name: str = "embedding"

    async def initialize(self) -> None:
        return None

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Length of every vector this provider returns."""

    @property
    def max_context_size(self) -> Optional[int]:
        return None

    @property
    def supports_token_counting(self) -> bool:
        return False

    def count_tokens(self, text: str) -> int:
        raise NotImplementedError(f"{self.name} provider cannot count tokens")

    async def embed(self, text: str) -> List[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed texts, preserving order."""

    async def dispose(self) -> None:
        return None


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    OpenAI-compatible embeddings.

    Providers:
    - openai: OpenAI direct API
    - azure: Azure OpenAI (requires a deployment name)
    """

    name = "openai"

    def __init__(self, settings: EmbeddingSettings, client=None) -> None:
        self._settings = settings
        self._provider = settings.embedding_provider
        self._model_name = settings.resolved_model_name
        self._client = client
        self._dimensions: Optional[int] = settings.embedding_dimension
        self._encoding = None

    def _get_client(self):
        """Create the appropriate OpenAI client for the selected provider."""
        if self._client is not None:
            return self._client

        from openai import AsyncAzureOpenAI, AsyncOpenAI

        if self._provider == EmbeddingProviderKind.OPENAI:
            if not self._settings.openai_api_key:
                raise EmbeddingError(
                    "OPENAI_API_KEY is required when EMBEDDING_PROVIDER=openai",
                    model=self._model_name,
                )
            self._client = AsyncOpenAI(
                api_key=self._settings.openai_api_key,
                base_url=self._settings.openai_base_url,
                timeout=self._settings.embedding_timeout,
            )
            return self._client

        if self._provider == EmbeddingProviderKind.AZURE:
            if not self._settings.is_configured:
                raise EmbeddingError(
                    "Azure embeddings require AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY, and EMBEDDING_DEPLOYMENT_NAME",
                    model=self._model_name,
                )
            self._client = AsyncAzureOpenAI(
                api_key=self._settings.azure_openai_api_key,
                azure_endpoint=self._settings.azure_openai_endpoint,
                api_version=self._settings.azure_openai_api_version,
                timeout=self._settings.embedding_timeout,
            )
            return self._client

        raise EmbeddingError(f"Unsupported embedding provider: {self._provider}", model=self._model_name)

    async def initialize(self) -> None:
        """Create the client and learn the vector length if it was not configured."""
        self._get_client()
        if self._dimensions is None:
            sample = await self._embed_batch_with_retry(["dimension check"])
            self._dimensions = len(sample[0])
        logger.info(
            f"Embedding provider ready: provider={self._provider.value}, "
            f"model={self._model_name}, dimensions={self._dimensions}"
        )

    @property
    def dimensions(self) -> int:
        if self._dimensions is None:
            raise EmbeddingError(
                "Embedding dimension unknown; call initialize() or set EMBEDDING_DIMENSION",
                model=self._model_name,
            )
        return self._dimensions

    @property
    def max_context_size(self) -> Optional[int]:
        return self._settings.embedding_max_context_size

    @property
    def supports_token_counting(self) -> bool:
        return True

    def count_tokens(self, text: str) -> int:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self._settings.embedding_token_encoding)
        return len(self._encoding.encode(text))

    async def _embed_once(self, inputs: List[str]) -> List[List[float]]:
        client = self._get_client()
        try:
            resp = await client.embeddings.create(model=self._model_name, input=inputs)
            return [d.embedding for d in resp.data]
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}", model=self._model_name) from e

    async def _embed_batch_with_retry(self, inputs: List[str]) -> List[List[float]]:
        """Embed a batch with retry logic (rate limits, transient failures)."""
        async for attempt in AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.embedding_max_retries)),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            retry=retry_if_exception_type(EmbeddingError),
        ):
            with attempt:
                return await self._embed_once(inputs)
        raise EmbeddingError("Embedding retries exhausted", model=self._model_name)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        out: List[List[float]] = []
        batch_size = max(1, self._settings.embedding_batch_size)
        for start in range(0, len(texts), batch_size):
            batch = texts[start : start + batch_size]
            vectors = await self._embed_batch_with_retry(batch)
            if len(vectors) != len(batch):
                raise EmbeddingError(
                    "Embedding response size mismatch",
                    model=self._model_name,
                    details={"expected": len(batch), "got": len(vectors)},
                )
            for vector in vectors:
                if self._dimensions is not None and len(vector) != self._dimensions:
                    raise EmbeddingError(
                        "Embedding dimension mismatch",
                        model=self._model_name,
                        details={
                            "expected_dimension": self._dimensions,
                            "actual_dimension": len(vector),
                        },
                    )
            out.extend(vectors)

        logger.debug(f"Embedded {len(out)} texts with {self._model_name}")
        return out

    async def dispose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
