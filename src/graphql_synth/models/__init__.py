"""Data models."""

from graphql_synth.models.chat import ChatMessage, ChatRole, CompletionOptions
from graphql_synth.models.document import (
    ColumnFilter,
    ColumnOperator,
    DeclarationDocument,
    DocumentKind,
    FilterColumn,
    MetadataFilter,
    MetadataOperator,
    RootOperationType,
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
from graphql_synth.models.operation import (
    GeneratedOperation,
    GenerationContext,
    GenerationDiagnostics,
    GenerationOptions,
    ValidationResult,
)

__all__ = [
    "ChatMessage",
    "ChatRole",
    "CompletionOptions",
    "ColumnFilter",
    "ColumnOperator",
    "DeclarationDocument",
    "DocumentKind",
    "FilterColumn",
    "MetadataFilter",
    "MetadataOperator",
    "RootOperationType",
    "SearchOptions",
    "SearchResult",
    "StoredDocument",
    "ChunkedDocument",
    "EmbedResult",
    "IncrementalEmbedResult",
    "SkippedDocument",
    "GeneratedOperation",
    "GenerationContext",
    "GenerationDiagnostics",
    "GenerationOptions",
    "ValidationResult",
]
