"""Services package."""

from graphql_synth.services.embedding_service import EmbeddingService
from graphql_synth.services.operation_generator import OperationGenerator
from graphql_synth.services.schema_parser import SchemaDecomposer, get_schema_decomposer
from graphql_synth.services.validator import OperationValidator, get_operation_validator

__all__ = [
    "EmbeddingService",
    "OperationGenerator",
    "SchemaDecomposer",
    "OperationValidator",
    "get_schema_decomposer",
    "get_operation_validator",
]
