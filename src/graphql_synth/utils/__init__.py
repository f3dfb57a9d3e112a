"""Utility functions."""

from graphql_synth.utils.errors import (
    EmbeddingError,
    InvalidFilterError,
    LLMError,
    NoRelevantFieldsError,
    SchemaParseError,
    SynthException,
    VectorStoreError,
)
from graphql_synth.utils.logging import (
    get_logger,
    get_request_id,
    log_error,
    log_request,
    pipeline_stage,
    set_request_id,
    setup_logging,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "set_request_id",
    "get_request_id",
    "log_request",
    "log_error",
    "pipeline_stage",
    # Errors
    "SynthException",
    "EmbeddingError",
    "LLMError",
    "VectorStoreError",
    "InvalidFilterError",
    "SchemaParseError",
    "NoRelevantFieldsError",
]
