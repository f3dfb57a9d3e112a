"""Unit tests for the operation validator."""

import pytest

from graphql_synth.services.validator import OperationValidator
from graphql_synth.utils.errors import SchemaParseError

SCHEMA = "type Query { user(id: ID!): User } type User { id: ID! name: String }"

# Federation directive that graphql-core does not know about
FEDERATED_SCHEMA = 'type User @key(fields: "id") { id: ID! } type Query { u: User }'


@pytest.fixture
def validator():
    return OperationValidator()


class TestOperationValidator:
    """Syntax and schema validation."""

    @pytest.mark.asyncio
    async def test_valid_operation(self, validator):
        result = await validator.validate(SCHEMA, 'query { user(id: "1") { id name } }')
        assert result.valid is True
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_unknown_field(self, validator):
        result = await validator.validate(SCHEMA, 'query { user(id: "1") { nickname } }')
        assert result.valid is False
        assert any("nickname" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_missing_required_argument(self, validator):
        result = await validator.validate(SCHEMA, "query { user { id } }")
        assert result.valid is False

    @pytest.mark.asyncio
    async def test_syntax_error(self, validator):
        result = await validator.validate(SCHEMA, "query { user(id: ")
        assert result.valid is False
        assert result.errors[0].startswith("Syntax error:")

    @pytest.mark.asyncio
    async def test_empty_operation(self, validator):
        result = await validator.validate(SCHEMA, "   ")
        assert result.valid is False
        assert result.errors == ["Operation is empty"]

    @pytest.mark.asyncio
    async def test_syntax_only_without_schema(self, validator):
        assert (await validator.validate(None, "{ anything { goes } }")).valid is True

    @pytest.mark.asyncio
    async def test_invalid_schema_raises(self, validator):
        with pytest.raises(SchemaParseError):
            await validator.validate("type Query { a: Missing }", "{ a }")

    @pytest.mark.asyncio
    async def test_schema_cache_is_bounded(self):
        validator = OperationValidator(max_cached_schemas=2)
        for i in range(3):
            await validator.validate(f"type Query {{ f{i}: Int }}", f"{{ f{i} }}")
        assert len(validator._schemas) == 2


class TestCheckSchema:
    """Build checks run before a schema is accepted."""

    @pytest.mark.asyncio
    async def test_buildable_schema_passes(self, validator):
        await validator.check_schema(SCHEMA)
        assert SCHEMA in validator._schemas

    @pytest.mark.asyncio
    async def test_unknown_directive_raises(self, validator):
        with pytest.raises(SchemaParseError) as exc_info:
            await validator.check_schema(FEDERATED_SCHEMA)
        assert "key" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_schema_without_query_type_raises(self, validator):
        with pytest.raises(SchemaParseError) as exc_info:
            await validator.check_schema("type Mutation { ping: Boolean }")
        assert exc_info.value.details["schema_errors"]

    @pytest.mark.asyncio
    async def test_failed_build_is_not_cached(self, validator):
        with pytest.raises(SchemaParseError):
            await validator.check_schema(FEDERATED_SCHEMA)
        assert validator._schemas == {}
