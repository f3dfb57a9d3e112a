"""Natural-language to GraphQL operation pipeline.

Stages, in order:

1. Embed the request and search root operation fields, lowering the
   similarity threshold step by step until something matches.
2. Ask the model which root operation type (Query/Mutation/Subscription)
   the request is about and keep the candidates of that type.
3. Ask the model which candidate to use; resolve its answer through the
   root-field matchers.
4. Collect the types the chosen field needs by walking return, argument,
   field, interface and union member types breadth-first.
5. Draft an operation and validate it, repairing it with the model until it
   validates or the retry budget is used up.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Sequence, Set, Tuple

from graphql_synth.models.chat import ChatMessage, CompletionOptions
from graphql_synth.models.document import (
    ROOT_TYPE_NAMES,
    TYPE_KINDS,
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
)
from graphql_synth.models.operation import (
    GeneratedOperation,
    GenerationContext,
    GenerationOptions,
)
from graphql_synth.providers.embedding import EmbeddingProvider
from graphql_synth.providers.llm import LLMProvider
from graphql_synth.services.field_matching import (
    DEFAULT_MATCHERS,
    RootFieldMatcher,
    resolve_root_field,
)
from graphql_synth.services.prompt_builder import (
    CLASSIFICATION_OPTIONS,
    GENERATION_OPTIONS,
    REPAIR_OPTIONS,
    SELECTION_OPTIONS,
    PromptBuilder,
    extract_operation,
    extract_variables,
    parse_operation_type,
)
from graphql_synth.services.schema_parser import BUILTIN_SCALARS, merge_chunks, unwrap_type_name
from graphql_synth.services.validator import OperationValidator, get_operation_validator
from graphql_synth.stores.base import VectorStore
from graphql_synth.utils.errors import NoRelevantFieldsError, SchemaParseError
from graphql_synth.utils.logging import get_logger, pipeline_stage

logger = get_logger("operation_generator")

# Field documents fetched per type during type discovery
MAX_FIELDS_PER_TYPE = 100

# Type documents fetched per name before chunk re-query
TYPE_LOOKUP_LIMIT = 10


class OperationGenerator:
    """Synthesizes a validated GraphQL operation from a free-text request."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        store: VectorStore,
        llm: LLMProvider,
        options: Optional[GenerationOptions] = None,
        schema_sdl: Optional[str] = None,
        validator: Optional[OperationValidator] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        matchers: Sequence[RootFieldMatcher] = DEFAULT_MATCHERS,
    ) -> None:
        self.embedding_provider = embedding_provider
        self.store = store
        self.llm = llm
        self.options = options or GenerationOptions()
        self.schema_sdl = schema_sdl
        self.validator = validator or get_operation_validator()
        self.prompts = prompt_builder or PromptBuilder()
        self.matchers = tuple(matchers)

    async def generate(self, input_text: str, **overrides: Any) -> GeneratedOperation:
        """
        Run the full pipeline for one request.

        Args:
            input_text: The user's natural-language request
            **overrides: Per-call GenerationOptions overrides (None values are ignored)

        Returns:
            GeneratedOperation with the final (or last) draft and diagnostics

        Raises:
            NoRelevantFieldsError: If no root field matches even at a zero threshold
            LLMError: If the language model provider fails
            EmbeddingError: If the request cannot be embedded
        """
        options = self.options.merged(**overrides) if overrides else self.options
        context = GenerationContext(input_text=input_text)

        logger.info(f"Generating operation: input_length={len(input_text)}")

        context.input_vector = await self.embedding_provider.embed(input_text)
        with pipeline_stage("root_search"):
            await self._find_root_candidates(context, options)
        schema_sdl = await self._resolve_schema(context)

        with pipeline_stage("classification"):
            await self._classify(context, options)
        candidates = self._filter_candidates(context)
        with pipeline_stage("selection"):
            await self._select_root_field(context, candidates, options)
        with pipeline_stage("type_discovery"):
            await self._discover_types(context, options)

        valid = await self._draft_and_validate(context, options, schema_sdl)

        result = GeneratedOperation.from_context(context, valid)
        logger.info(
            f"Operation generated: root_field={result.root_field.id}, "
            f"type={result.operation_type}, valid={valid}, "
            f"attempts={result.validation_attempts}"
        )
        return result

    # Root field search

    async def _resolve_schema(self, context: GenerationContext) -> Optional[str]:
        """Schema used for validation, or None to check syntax only.

        A schema that does not build (unknown directives, missing types) is
        reported in the diagnostics instead of failing the request.
        """
        schema_sdl = self.schema_sdl or await self.store.get_schema_sdl()
        if not schema_sdl:
            return None
        try:
            await self.validator.check_schema(schema_sdl)
        except SchemaParseError as e:
            logger.warning(f"Schema does not build, validating syntax only: {e.message}")
            context.schema_errors.append(e.message)
            return None
        return schema_sdl

    async def _search_root_fields(self, vector: List[float], limit: int) -> List[SearchResult]:
        results = await self.store.search(
            vector,
            SearchOptions(
                limit=limit,
                metadata_filters=[
                    MetadataFilter(
                        field="is_root_operation_field",
                        operator=MetadataOperator.EQ,
                        value=True,
                    )
                ],
            ),
        )
        return [_with_root_operation_type(r) for r in results]

    async def _find_root_candidates(
        self, context: GenerationContext, options: GenerationOptions
    ) -> None:
        threshold = options.min_similarity_score
        step = options.score_relaxation_step

        # One search; relaxation refilters the same ranked list
        ranked = await self._search_root_fields(context.input_vector, options.max_documents)
        results = [r for r in ranked if r.score >= threshold]
        while not results and step > 0:
            lowered = round(threshold - step, 4)
            if lowered < 0:
                break
            threshold = lowered
            logger.debug(f"No root fields found, lowering threshold to {threshold}")
            results = [r for r in ranked if r.score >= threshold]

        if not results:
            raise NoRelevantFieldsError(details={"min_similarity_score": threshold})

        context.root_candidates = results
        context.similarity_threshold = threshold
        logger.info(f"Root field candidates: count={len(results)}, threshold={threshold}")

    # Classification and selection

    async def _complete_with_timeout(
        self,
        stage: str,
        messages: List[ChatMessage],
        completion_options: CompletionOptions,
        timeout: float,
        context: GenerationContext,
    ) -> Optional[str]:
        """Run one completion; a timeout is recorded and yields None."""
        try:
            return await asyncio.wait_for(
                self.llm.complete(messages, completion_options), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"{stage} timed out after {timeout}s")
            context.timeouts.append(stage)
            return None

    async def _classify(self, context: GenerationContext, options: GenerationOptions) -> None:
        response = await self._complete_with_timeout(
            "classification",
            self.prompts.classification_messages(context.root_candidates, context.input_text),
            CLASSIFICATION_OPTIONS,
            options.classification_timeout,
            context,
        )
        context.classification_raw = response
        operation_type, recognized = parse_operation_type(response)
        if response is not None and not recognized:
            logger.warning(f"Unrecognized operation type answer, using Query: {response!r}")
        context.operation_type = operation_type

    def _filter_candidates(self, context: GenerationContext) -> List[SearchResult]:
        candidates = [
            r
            for r in context.root_candidates
            if r.document.root_operation_type == context.operation_type
        ]
        if candidates:
            return candidates

        # Nothing of the classified type: follow the best-scoring candidate instead
        fallback = context.root_candidates[0].document.root_operation_type or RootOperationType.QUERY
        logger.info(
            f"No {context.operation_type.value} candidates, "
            f"falling back to {fallback.value}"
        )
        context.operation_type = fallback
        context.operation_type_fallback = True
        candidates = [
            r for r in context.root_candidates if r.document.root_operation_type == fallback
        ]
        return candidates or list(context.root_candidates)

    async def _select_root_field(
        self,
        context: GenerationContext,
        candidates: List[SearchResult],
        options: GenerationOptions,
    ) -> None:
        response = await self._complete_with_timeout(
            "selection",
            self.prompts.selection_messages(candidates, context.input_text),
            SELECTION_OPTIONS,
            options.classification_timeout,
            context,
        )
        context.selection_raw = response
        selected, strategy = resolve_root_field(response, candidates, self.matchers)
        context.root_field = selected
        context.selection_strategy = strategy
        logger.info(f"Selected root field: id={selected.document.id}, strategy={strategy}")

    # Type discovery

    async def _find_type_by_name(self, name: str, dimensions: int) -> Optional[DeclarationDocument]:
        """Fetch a named type, reassembling it when it was stored in chunks."""
        zero = [0.0] * dimensions
        column_filters = [
            ColumnFilter(column=FilterColumn.NAME, operator=ColumnOperator.EQ, value=name),
            ColumnFilter(column=FilterColumn.TYPE, operator=ColumnOperator.IN, value=list(TYPE_KINDS)),
        ]
        results = await self.store.search(
            zero, SearchOptions(limit=TYPE_LOOKUP_LIMIT, column_filters=column_filters)
        )
        if not results:
            return None

        chunks = [r.document for r in results if r.document.is_chunk]
        if not chunks:
            return results[0].document

        total = max(int(c.metadata.get("total_chunks", 1)) for c in chunks)
        if len(chunks) < total:
            results = await self.store.search(
                zero, SearchOptions(limit=total, column_filters=column_filters)
            )
            chunks = [r.document for r in results if r.document.is_chunk]
        if len(chunks) < total:
            logger.warning(f"Type {name} is missing chunks: found={len(chunks)}, total={total}")
        return merge_chunks(chunks)

    async def _find_fields_for_type(
        self, name: str, dimensions: int, context: GenerationContext
    ) -> List[DeclarationDocument]:
        results = await self.store.search(
            [0.0] * dimensions,
            SearchOptions(
                limit=MAX_FIELDS_PER_TYPE,
                column_filters=[
                    ColumnFilter(column=FilterColumn.TYPE, value=DocumentKind.FIELD.value)
                ],
                metadata_filters=[MetadataFilter(field="parent_type", value=name)],
            ),
        )
        if len(results) >= MAX_FIELDS_PER_TYPE:
            logger.warning(
                f"Type {name} has at least {MAX_FIELDS_PER_TYPE} fields; "
                f"types referenced by the rest are not followed"
            )
            context.truncated_types.append(name)
        return [r.document for r in results]

    async def _discover_types(self, context: GenerationContext, options: GenerationOptions) -> None:
        """Breadth-first closure over the types reachable from the chosen root field."""
        root = context.root_field.document
        dimensions = len(context.input_vector) or self.store.dimensions

        queue: Deque[Tuple[str, int]] = deque((name, 0) for name in _referenced_types(root))
        discovered: Dict[str, DeclarationDocument] = {}
        visited: Set[str] = set()

        while queue and len(discovered) < options.max_type_documents:
            name, depth = queue.popleft()
            if name in visited or name in BUILTIN_SCALARS or depth >= options.max_type_depth:
                continue
            visited.add(name)

            document = await self._find_type_by_name(name, dimensions)
            if document is None:
                logger.debug(f"Type not found in store: {name}")
                continue
            discovered[name] = document

            referenced: List[str] = []
            for field_doc in await self._find_fields_for_type(name, dimensions, context):
                referenced.extend(_referenced_types(field_doc))
            referenced.extend(document.metadata.get("possible_types") or [])
            referenced.extend(document.metadata.get("interfaces") or [])

            for ref in referenced:
                if ref not in visited:
                    queue.append((ref, depth + 1))

        context.type_documents = list(discovered.values())
        logger.info(f"Discovered types: count={len(discovered)}")

    # Drafting and repair

    async def _draft(self, context: GenerationContext, options: GenerationOptions) -> bool:
        response = await self._complete_with_timeout(
            "generation",
            self.prompts.generation_messages(
                context.root_field.document, context.type_documents, context.input_text
            ),
            GENERATION_OPTIONS,
            options.generation_timeout,
            context,
        )
        if response is None:
            return False
        context.draft = extract_operation(response)
        context.variables = extract_variables(response)
        return True

    async def _repair(self, context: GenerationContext, options: GenerationOptions) -> bool:
        response = await self._complete_with_timeout(
            "repair",
            self.prompts.repair_messages(
                context.draft,
                context.validation_errors,
                [context.root_field.document, *context.type_documents],
                context.input_text,
            ),
            REPAIR_OPTIONS,
            options.generation_timeout,
            context,
        )
        if response is None:
            return False
        context.draft = extract_operation(response)
        return True

    async def _draft_and_validate(
        self,
        context: GenerationContext,
        options: GenerationOptions,
        schema_sdl: Optional[str],
    ) -> bool:
        """Validate-and-repair loop; each attempt drafts or repairs once, then validates.

        A timed-out draft or repair uses up its attempt and keeps the previous draft.
        """
        for attempt in range(1, options.max_validation_retries + 1):
            context.validation_attempts = attempt

            if not context.draft:
                with pipeline_stage("generation"):
                    produced = await self._draft(context, options)
            else:
                with pipeline_stage("repair"):
                    produced = await self._repair(context, options)

            if not produced:
                # A kept draft keeps its validation errors for the next repair
                if not context.draft:
                    context.validation_errors = [
                        f"Generation timed out after {options.generation_timeout}s"
                    ]
                continue

            with pipeline_stage("validation"):
                result = await self.validator.validate(schema_sdl, context.draft)
            context.validation_errors = list(result.errors)
            if result.valid:
                return True

            logger.info(
                f"Validation failed: attempt={attempt}/{options.max_validation_retries}, "
                f"errors={len(result.errors)}"
            )

        logger.warning(
            f"Operation still invalid after {context.validation_attempts} attempts"
        )
        return False


def _with_root_operation_type(result: SearchResult) -> SearchResult:
    """Fill in root_operation_type from parent_type for documents indexed without it."""
    doc = result.document
    if doc.metadata.get("root_operation_type") or doc.parent_type not in ROOT_TYPE_NAMES:
        return result
    enriched = doc.model_copy(
        update={"metadata": {**doc.metadata, "root_operation_type": doc.parent_type}}
    )
    return SearchResult(document=enriched, score=result.score)


def _referenced_types(field_doc: DeclarationDocument) -> List[str]:
    """Named types a field document points at: its return type and argument types."""
    names: List[str] = []
    field_type = field_doc.metadata.get("field_type")
    if field_type:
        names.append(unwrap_type_name(field_type))
    for argument in field_doc.metadata.get("arguments") or []:
        arg_type = argument.get("type")
        if arg_type:
            names.append(unwrap_type_name(arg_type))
    return [n for n in names if n not in BUILTIN_SCALARS]
