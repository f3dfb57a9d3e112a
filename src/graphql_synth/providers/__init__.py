"""Embedding and language model providers."""

from graphql_synth.providers.embedding import EmbeddingProvider, OpenAIEmbeddingProvider
from graphql_synth.providers.llm import LiteLLMProvider, LLMProvider

__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "LLMProvider",
    "LiteLLMProvider",
]
