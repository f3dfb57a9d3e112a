"""Unit tests for the operation synthesis pipeline."""

from unittest.mock import AsyncMock, patch

import pytest

from conftest import (
    CLASSIFY,
    DRAFT,
    REPAIR,
    SELECT,
    KeywordEmbeddingProvider,
    ScriptedLLM,
    graphql_block,
)
from graphql_synth.models.document import (
    DeclarationDocument,
    DocumentKind,
    RootOperationType,
    SearchResult,
    StoredDocument,
)
from graphql_synth.models.operation import GenerationContext, GenerationOptions
from graphql_synth.services.embedding_service import EmbeddingService
from graphql_synth.services.operation_generator import (
    OperationGenerator,
    _with_root_operation_type,
)
from graphql_synth.services.schema_parser import SchemaDecomposer
from graphql_synth.services.validator import OperationValidator
from graphql_synth.stores.memory import InMemoryVectorStore
from graphql_synth.utils.errors import LLMError, NoRelevantFieldsError

VALID_QUERY = graphql_block(
    "query GetUser($id: ID!) {\n  getUser(id: $id) {\n    id\n    name\n  }\n}",
    '{"id": "1"}',
)
INVALID_QUERY = graphql_block('query {\n  getUser(id: "1") {\n    id\n    nickname\n  }\n}')


def make_llm(
    draft=VALID_QUERY,
    repair=VALID_QUERY,
    classify="Query",
    select="getUser",
    delays=None,
) -> ScriptedLLM:
    return ScriptedLLM(
        [(CLASSIFY, classify), (SELECT, select), (DRAFT, draft), (REPAIR, repair)],
        delays=delays,
    )


@pytest.fixture
async def indexed_store(embedding_provider, memory_store, sample_schema):
    """Memory store holding the sample schema and its SDL."""
    await EmbeddingService(embedding_provider, memory_store).embed_schema(sample_schema)
    return memory_store


def make_generator(provider, store, llm, **options) -> OperationGenerator:
    return OperationGenerator(
        provider,
        store,
        llm,
        GenerationOptions(**options),
        validator=OperationValidator(),
    )


class TestValidationLoop:
    """Attempt counting of the draft/validate/repair loop."""

    @pytest.mark.asyncio
    async def test_valid_on_first_attempt(self, embedding_provider, indexed_store):
        llm = make_llm()
        generator = make_generator(embedding_provider, indexed_store, llm)

        result = await generator.generate("get the user by id")

        assert result.valid is True
        assert result.validation_attempts == 1
        assert result.operation_type == "query"
        assert result.root_field.name == "getUser"
        assert result.variables == {"id": "1"}
        assert "getUser(id: $id)" in result.operation
        assert llm.prompts_matching(REPAIR) == []

    @pytest.mark.asyncio
    async def test_invalid_once_then_valid(self, embedding_provider, indexed_store):
        llm = make_llm(draft=INVALID_QUERY, repair=VALID_QUERY)
        generator = make_generator(embedding_provider, indexed_store, llm)

        result = await generator.generate("get the user by id")

        assert result.valid is True
        assert result.validation_attempts == 2
        repairs = llm.prompts_matching(REPAIR)
        assert len(repairs) == 1
        assert "nickname" in repairs[0][-1].content
        assert result.diagnostics.validation_errors == []

    @pytest.mark.asyncio
    async def test_never_valid_returns_last_draft(self, embedding_provider, indexed_store):
        llm = make_llm(draft=INVALID_QUERY, repair=INVALID_QUERY)
        generator = make_generator(
            embedding_provider, indexed_store, llm, max_validation_retries=3
        )

        result = await generator.generate("get the user by id")

        assert result.valid is False
        assert result.validation_attempts == 3
        assert "nickname" in result.operation
        assert any("nickname" in e for e in result.diagnostics.validation_errors)
        assert len(llm.prompts_matching(REPAIR)) == 2

    @pytest.mark.asyncio
    async def test_repair_output_replaces_draft(self, embedding_provider, indexed_store):
        llm = make_llm(
            draft=INVALID_QUERY,
            repair=[INVALID_QUERY, graphql_block('{ getUser(id: "2") { email } }')],
        )
        generator = make_generator(
            embedding_provider, indexed_store, llm, max_validation_retries=5
        )

        result = await generator.generate("get the user by id")

        assert result.valid is True
        assert result.validation_attempts == 3
        assert result.operation == '{ getUser(id: "2") { email } }'

    @pytest.mark.asyncio
    async def test_per_call_override_does_not_change_defaults(
        self, embedding_provider, indexed_store
    ):
        llm = make_llm(draft=INVALID_QUERY, repair=INVALID_QUERY)
        generator = make_generator(
            embedding_provider, indexed_store, llm, max_validation_retries=4
        )

        result = await generator.generate("get the user by id", max_validation_retries=1)

        assert result.validation_attempts == 1
        assert generator.options.max_validation_retries == 4


class TestRootFieldSearch:
    """Root field retrieval and threshold relaxation."""

    @pytest.mark.asyncio
    async def test_empty_store_raises(self, embedding_provider, memory_store):
        llm = make_llm()
        generator = make_generator(embedding_provider, memory_store, llm)

        with pytest.raises(NoRelevantFieldsError) as exc_info:
            await generator.generate("get the user by id")

        assert exc_info.value.status_code == 404
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_threshold_is_relaxed_until_candidates_found(
        self, embedding_provider, indexed_store
    ):
        generator = make_generator(
            embedding_provider, indexed_store, make_llm(), min_similarity_score=1.0
        )

        result = await generator.generate("get the user by id")

        assert result.root_field.name == "getUser"
        assert result.diagnostics.similarity_threshold == pytest.approx(0.95)

    @pytest.mark.asyncio
    async def test_relaxation_disabled_raises(self, embedding_provider, indexed_store):
        generator = make_generator(
            embedding_provider,
            indexed_store,
            make_llm(),
            min_similarity_score=1.0,
            score_relaxation_step=0.0,
        )

        with pytest.raises(NoRelevantFieldsError):
            await generator.generate("get the user by id")

    @pytest.mark.asyncio
    async def test_relaxation_searches_the_store_once(self, embedding_provider, indexed_store):
        generator = make_generator(
            embedding_provider, indexed_store, make_llm(), min_similarity_score=1.0
        )
        generator._search_root_fields = AsyncMock(wraps=generator._search_root_fields)

        result = await generator.generate("get the user by id")

        assert result.diagnostics.similarity_threshold == pytest.approx(0.95)
        assert generator._search_root_fields.await_count == 1

    @pytest.mark.asyncio
    async def test_relaxation_stops_at_zero(self, embedding_provider, indexed_store):
        generator = make_generator(
            embedding_provider,
            indexed_store,
            make_llm(),
            min_similarity_score=0.3,
            score_relaxation_step=0.2,
        )
        generator._search_root_fields = AsyncMock(return_value=[])

        with pytest.raises(NoRelevantFieldsError) as exc_info:
            await generator.generate("get the user by id")

        assert exc_info.value.details["min_similarity_score"] == pytest.approx(0.1)
        assert generator._search_root_fields.await_count == 1

    @pytest.mark.asyncio
    async def test_only_root_fields_are_candidates(self, embedding_provider, indexed_store):
        llm = make_llm()
        generator = make_generator(embedding_provider, indexed_store, llm)

        result = await generator.generate("get the user by id")

        parents = {
            d.metadata.get("parent_type")
            for d in indexed_store._documents.values()
            if d.id in result.diagnostics.root_candidates
        }
        assert parents <= {"Query", "Mutation", "Subscription"}

    def test_root_operation_type_filled_from_parent_type(self):
        doc = DeclarationDocument.create(
            DocumentKind.FIELD,
            "legacy",
            "Query.legacy:String",
            metadata={"parent_type": "Query", "is_root_operation_field": True},
        )

        enriched = _with_root_operation_type(SearchResult(document=doc, score=0.8))

        assert enriched.document.root_operation_type == RootOperationType.QUERY
        assert enriched.score == 0.8
        assert "root_operation_type" not in doc.metadata


class TestClassificationAndSelection:
    """Operation type classification, filtering and root field selection."""

    @pytest.mark.asyncio
    async def test_mutation_request(self, embedding_provider, indexed_store):
        draft = graphql_block(
            "mutation Create($input: CreateUserInput!) {\n  createUser(input: $input) {\n    id\n  }\n}",
            '{"input": {"name": "Ada", "email": "ada@example.com"}}',
        )
        llm = make_llm(draft=draft, classify="Mutation", select="createUser")
        generator = make_generator(embedding_provider, indexed_store, llm)

        result = await generator.generate("create a new user named Ada")

        assert result.operation_type == "mutation"
        assert result.root_field.name == "createUser"
        assert result.valid is True
        names = {d.name for d in result.relevant_documents}
        assert {"CreateUserInput", "Role", "User"} <= names

    @pytest.mark.asyncio
    async def test_selection_prompt_only_lists_classified_type(
        self, embedding_provider, indexed_store
    ):
        llm = make_llm()
        generator = make_generator(embedding_provider, indexed_store, llm)

        await generator.generate("get the user by id")

        selection = llm.prompts_matching(SELECT)[0]
        listed = [m.content for m in selection if m.role.value == "assistant"]
        assert listed
        assert all("Query." in content for content in listed)

    @pytest.mark.asyncio
    async def test_unmatched_selection_falls_back_to_highest_score(
        self, embedding_provider, indexed_store
    ):
        llm = make_llm(select="I am not sure")
        generator = make_generator(embedding_provider, indexed_store, llm)

        result = await generator.generate("get the user by id")

        assert result.diagnostics.selection_strategy == "highest_score"
        assert result.root_field.id == result.diagnostics.root_candidates[0]

    def test_filter_falls_back_to_top_candidate_type(self, embedding_provider, memory_store):
        generator = make_generator(embedding_provider, memory_store, make_llm())
        query_doc = DeclarationDocument.create(
            DocumentKind.FIELD,
            "getUser",
            "Query.getUser:User",
            metadata={"root_operation_type": "Query", "is_root_operation_field": True},
        )
        context = GenerationContext(
            input_text="anything",
            root_candidates=[SearchResult(document=query_doc, score=0.9)],
            operation_type=RootOperationType.SUBSCRIPTION,
        )

        candidates = generator._filter_candidates(context)

        assert [c.document.id for c in candidates] == [query_doc.id]
        assert context.operation_type == RootOperationType.QUERY
        assert context.operation_type_fallback is True

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self, embedding_provider, indexed_store):
        llm = make_llm()
        llm.complete = AsyncMock(side_effect=LLMError("upstream unavailable", model="test"))
        generator = make_generator(embedding_provider, indexed_store, llm)

        with pytest.raises(LLMError):
            await generator.generate("get the user by id")


class TestTimeouts:
    """Timed-out model calls degrade instead of failing the request."""

    @pytest.mark.asyncio
    async def test_classification_timeout_defaults_to_query(
        self, embedding_provider, indexed_store
    ):
        llm = make_llm(classify="Mutation", delays={CLASSIFY: 0.5})
        generator = make_generator(
            embedding_provider, indexed_store, llm, classification_timeout=0.05
        )

        result = await generator.generate("get the user by id")

        assert result.operation_type == "query"
        assert "classification" in result.diagnostics.timeouts
        assert result.diagnostics.classification_raw is None

    @pytest.mark.asyncio
    async def test_selection_timeout_uses_highest_score(
        self, embedding_provider, indexed_store
    ):
        llm = make_llm(delays={SELECT: 0.5})
        generator = make_generator(
            embedding_provider, indexed_store, llm, classification_timeout=0.05
        )

        result = await generator.generate("get the user by id")

        assert "selection" in result.diagnostics.timeouts
        assert result.diagnostics.selection_strategy == "highest_score"

    @pytest.mark.asyncio
    async def test_generation_timeout_consumes_attempts(
        self, embedding_provider, indexed_store
    ):
        llm = make_llm(delays={DRAFT: 0.5})
        generator = make_generator(
            embedding_provider,
            indexed_store,
            llm,
            generation_timeout=0.05,
            max_validation_retries=2,
        )

        result = await generator.generate("get the user by id")

        assert result.valid is False
        assert result.validation_attempts == 2
        assert result.operation == ""
        assert result.diagnostics.timeouts.count("generation") == 2
        assert "timed out" in result.diagnostics.validation_errors[0]

    @pytest.mark.asyncio
    async def test_repair_timeout_keeps_previous_draft(
        self, embedding_provider, indexed_store
    ):
        llm = make_llm(draft=INVALID_QUERY, delays={REPAIR: 0.5})
        generator = make_generator(
            embedding_provider,
            indexed_store,
            llm,
            generation_timeout=0.2,
            max_validation_retries=2,
        )

        result = await generator.generate("get the user by id")

        assert result.valid is False
        assert result.validation_attempts == 2
        assert "nickname" in result.operation
        assert "repair" in result.diagnostics.timeouts
        assert any("nickname" in e for e in result.diagnostics.validation_errors)


class TestTypeDiscovery:
    """Breadth-first collection of the types a root field needs."""

    @pytest.mark.asyncio
    async def test_collects_reachable_types(self, embedding_provider, indexed_store):
        generator = make_generator(embedding_provider, indexed_store, make_llm())

        result = await generator.generate("get the user by id")

        names = set(result.diagnostics.type_closure)
        assert names == {"User", "Role", "Post", "Node"}
        assert result.relevant_documents[0].id == result.root_field.id

    @pytest.mark.asyncio
    async def test_union_members_are_followed(self, embedding_provider, indexed_store):
        llm = make_llm(
            draft=graphql_block('{ search(term: "x") { ... on User { id } } }'),
            select="search",
        )
        generator = make_generator(embedding_provider, indexed_store, llm)

        result = await generator.generate("search users and posts")

        assert result.root_field.name == "search"
        assert {"SearchResult", "User", "Post"} <= set(result.diagnostics.type_closure)

    @pytest.mark.asyncio
    async def test_depth_limit(self, embedding_provider, indexed_store):
        generator = make_generator(
            embedding_provider, indexed_store, make_llm(), max_type_depth=1
        )

        result = await generator.generate("get the user by id")

        assert result.diagnostics.type_closure == ["User"]

    @pytest.mark.asyncio
    async def test_document_limit(self, embedding_provider, indexed_store):
        generator = make_generator(
            embedding_provider, indexed_store, make_llm(), max_type_documents=2
        )

        result = await generator.generate("get the user by id")

        assert len(result.diagnostics.type_closure) == 2
        assert result.diagnostics.type_closure[0] == "User"

    @pytest.mark.asyncio
    async def test_chunked_type_is_reassembled(self):
        fields = " ".join(f"f{i}: String" for i in range(12))
        schema = f"type Query {{ big: Big }} type Big {{ {fields} }}"
        decomposer = SchemaDecomposer()
        documents = decomposer.parse(schema)
        big = next(d for d in documents if d.name == "Big" and d.type == DocumentKind.OBJECT)
        chunks = decomposer.chunk([big], 20)
        assert len(chunks) == 12

        provider = KeywordEmbeddingProvider()
        store = InMemoryVectorStore(provider.dimensions)
        units = [d for d in documents if d.id != big.id] + chunks
        await store.store(
            [StoredDocument.from_document(d, provider.vector_for(d.content)) for d in units]
        )
        llm = make_llm(draft=graphql_block("{ big { f0 f11 } }"), select="big")
        generator = make_generator(provider, store, llm)

        result = await generator.generate("big")

        merged = next(d for d in result.relevant_documents if d.name == "Big")
        assert merged.id == big.id
        assert not merged.is_chunk
        for i in range(12):
            assert f"f{i}:String" in merged.content
        assert result.valid is True


class TestSchemaSource:
    """Where the validator's schema comes from."""

    @pytest.mark.asyncio
    async def test_explicit_schema_overrides_store(
        self, embedding_provider, indexed_store
    ):
        llm = make_llm(draft=INVALID_QUERY)
        generator = OperationGenerator(
            embedding_provider,
            indexed_store,
            llm,
            GenerationOptions(max_validation_retries=1),
            schema_sdl="type Query { getUser(id: ID!): U } type U { id: ID nickname: String }",
            validator=OperationValidator(),
        )

        result = await generator.generate("get the user by id")

        assert result.valid is True

    @pytest.mark.asyncio
    async def test_without_schema_only_syntax_is_checked(self, embedding_provider, indexed_store):
        await indexed_store.clear()
        docs = SchemaDecomposer().parse("type Query { getUser(id: ID!): String }")
        await indexed_store.store(
            [
                StoredDocument.from_document(d, embedding_provider.vector_for(d.content))
                for d in docs
            ]
        )
        generator = make_generator(
            embedding_provider, indexed_store, make_llm(draft=INVALID_QUERY)
        )

        result = await generator.generate("get the user by id")

        assert result.valid is True
        assert result.validation_attempts == 1

    @pytest.mark.asyncio
    async def test_unbuildable_stored_schema_falls_back_to_syntax_check(
        self, embedding_provider, indexed_store
    ):
        await indexed_store.store_schema_sdl("type Query { getUser(id: ID!): Missing }")
        generator = make_generator(
            embedding_provider, indexed_store, make_llm(draft=INVALID_QUERY)
        )

        result = await generator.generate("get the user by id")

        assert result.valid is True
        assert result.validation_attempts == 1
        assert len(result.diagnostics.schema_errors) == 1
        assert "Missing" in result.diagnostics.schema_errors[0]

    @pytest.mark.asyncio
    async def test_schema_is_checked_before_any_completion(
        self, embedding_provider, indexed_store
    ):
        validator = OperationValidator()
        validator.check_schema = AsyncMock(side_effect=RuntimeError("boom"))
        llm = make_llm()
        generator = OperationGenerator(
            embedding_provider, indexed_store, llm, GenerationOptions(), validator=validator
        )

        with pytest.raises(RuntimeError):
            await generator.generate("get the user by id")

        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_buildable_schema_reports_no_schema_errors(
        self, embedding_provider, indexed_store
    ):
        generator = make_generator(embedding_provider, indexed_store, make_llm())

        result = await generator.generate("get the user by id")

        assert result.diagnostics.schema_errors == []


class TestFieldCap:
    """Types with more fields than one lookup returns."""

    @pytest.mark.asyncio
    async def test_truncated_type_is_reported(self, embedding_provider, indexed_store):
        generator = make_generator(embedding_provider, indexed_store, make_llm())

        with patch("graphql_synth.services.operation_generator.MAX_FIELDS_PER_TYPE", 1):
            result = await generator.generate("get the user by id")

        assert "User" in result.diagnostics.truncated_types

    @pytest.mark.asyncio
    async def test_no_truncation_under_cap(self, embedding_provider, indexed_store):
        generator = make_generator(embedding_provider, indexed_store, make_llm())

        result = await generator.generate("get the user by id")

        assert result.diagnostics.truncated_types == []
