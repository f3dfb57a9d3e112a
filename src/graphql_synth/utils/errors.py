"""Custom exception classes for the GraphQL synthesis service."""

from typing import Any, Dict, Optional


class SynthException(Exception):
    """Base exception for all synthesis service errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "status_code": self.status_code,
                "details": self.details,
            }
        }


class EmbeddingError(SynthException):
    """Exception raised when the embedding provider fails."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        model: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if model:
            error_details["model"] = model
        super().__init__(
            message=message,
            status_code=502,
            code="EMBEDDING_ERROR",
            details=error_details,
        )


class LLMError(SynthException):
    """Exception raised for LLM-related errors."""

    def __init__(
        self,
        message: str = "LLM operation failed",
        model: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if model:
            error_details["model"] = model
        super().__init__(
            message=message,
            status_code=502,
            code="LLM_ERROR",
            details=error_details,
        )


class VectorStoreError(SynthException):
    """Exception raised for vector store failures."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        backend: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if backend:
            error_details["backend"] = backend
        super().__init__(
            message=message,
            status_code=502,
            code="VECTOR_STORE_ERROR",
            details=error_details,
        )


class InvalidFilterError(SynthException):
    """Exception raised for malformed or unsafe search filters."""

    def __init__(
        self,
        message: str = "Invalid search filter",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=400,
            code="INVALID_FILTER",
            details=details,
        )


class SchemaParseError(SynthException):
    """Exception raised when a schema document cannot be parsed."""

    def __init__(
        self,
        message: str = "Failed to parse GraphQL schema",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=422,
            code="SCHEMA_PARSE_ERROR",
            details=details,
        )


class NoRelevantFieldsError(SynthException):
    """Raised when no root field clears the similarity threshold."""

    def __init__(
        self,
        message: str = "No relevant root fields found in the schema for the given input",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=404,
            code="NO_RELEVANT_FIELDS",
            details=details,
        )
