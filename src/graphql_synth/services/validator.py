"""Operation validation against a GraphQL schema."""

import asyncio
from typing import Dict, Optional

from graphql import GraphQLError, GraphQLSchema, build_schema, parse, validate, validate_schema

from graphql_synth.models.operation import ValidationResult
from graphql_synth.utils.errors import SchemaParseError
from graphql_synth.utils.logging import get_logger

logger = get_logger("validator")


class OperationValidator:
    """Parses operations and, when a schema is known, validates them with graphql-core.

    Built schemas are cached by SDL text, so repeated validation during the
    repair loop does not rebuild the schema. graphql-core is synchronous, so
    the public methods run it in a worker thread.
    """

    def __init__(self, max_cached_schemas: int = 4):
        self._schemas: Dict[str, GraphQLSchema] = {}
        self._max_cached = max_cached_schemas

    def build(self, schema_sdl: str) -> GraphQLSchema:
        """Build (or fetch from cache) an executable schema.

        Raises:
            SchemaParseError: If the SDL does not build or the schema is invalid
        """
        schema = self._schemas.get(schema_sdl)
        if schema is not None:
            return schema
        try:
            schema = build_schema(schema_sdl)
        except (GraphQLError, TypeError) as e:
            raise SchemaParseError(f"Failed to build GraphQL schema: {e}") from e

        schema_errors = validate_schema(schema)
        if schema_errors:
            raise SchemaParseError(
                f"Invalid GraphQL schema: {schema_errors[0].message}",
                details={"schema_errors": [e.message for e in schema_errors]},
            )

        if len(self._schemas) >= self._max_cached:
            self._schemas.pop(next(iter(self._schemas)))
        self._schemas[schema_sdl] = schema
        return schema

    async def check_schema(self, schema_sdl: str) -> None:
        """Raise SchemaParseError unless ``schema_sdl`` builds a valid schema."""
        await asyncio.to_thread(self.build, schema_sdl)

    def _validate(self, schema_sdl: Optional[str], operation: str) -> ValidationResult:
        if not operation or not operation.strip():
            return ValidationResult(valid=False, errors=["Operation is empty"])

        try:
            document = parse(operation)
        except GraphQLError as e:
            return ValidationResult(valid=False, errors=[f"Syntax error: {e.message}"])

        if not schema_sdl:
            return ValidationResult(valid=True)

        errors = validate(self.build(schema_sdl), document)
        if errors:
            logger.debug(f"Operation failed validation with {len(errors)} errors")
        return ValidationResult(valid=not errors, errors=[e.message for e in errors])

    async def validate(self, schema_sdl: Optional[str], operation: str) -> ValidationResult:
        """Validate ``operation``; only syntax is checked when ``schema_sdl`` is empty."""
        return await asyncio.to_thread(self._validate, schema_sdl, operation)


_validator: Optional[OperationValidator] = None


def get_operation_validator() -> OperationValidator:
    """Get the global operation validator instance."""
    global _validator
    if _validator is None:
        _validator = OperationValidator()
    return _validator
