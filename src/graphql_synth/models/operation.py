"""Operation synthesis models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from graphql_synth.models.document import DeclarationDocument, RootOperationType, SearchResult


class GenerationOptions(BaseModel):
    """Tunable limits for one pipeline instance."""

    min_similarity_score: float = Field(default=0.4, ge=0.0, le=1.0)
    score_relaxation_step: float = Field(default=0.05, ge=0.0, le=1.0)
    max_documents: int = Field(default=50, gt=0)
    max_type_documents: int = Field(default=50, gt=0)
    max_type_depth: int = Field(default=5, ge=0)
    max_validation_retries: int = Field(default=3)
    classification_timeout: float = Field(default=30.0, gt=0)
    generation_timeout: float = Field(default=120.0, gt=0)

    @field_validator("max_validation_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError("max_validation_retries must be between 1 and 10")
        return v

    def merged(self, **overrides: Any) -> GenerationOptions:
        """Return a copy with the non-None overrides applied (and re-validated)."""
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return GenerationOptions(**data)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating an operation against a schema."""

    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class GenerationContext:
    """Per-request state threaded through the pipeline stages."""

    input_text: str
    input_vector: List[float] = field(default_factory=list)
    root_candidates: List[SearchResult] = field(default_factory=list)
    similarity_threshold: Optional[float] = None
    operation_type: RootOperationType = RootOperationType.QUERY
    root_field: Optional[SearchResult] = None
    type_documents: List[DeclarationDocument] = field(default_factory=list)
    draft: str = ""
    variables: Dict[str, Any] = field(default_factory=dict)
    validation_attempts: int = 0
    validation_errors: List[str] = field(default_factory=list)
    classification_raw: Optional[str] = None
    selection_raw: Optional[str] = None
    selection_strategy: Optional[str] = None
    operation_type_fallback: bool = False
    timeouts: List[str] = field(default_factory=list)
    schema_errors: List[str] = field(default_factory=list)
    truncated_types: List[str] = field(default_factory=list)


class GenerationDiagnostics(BaseModel):
    """How the pipeline arrived at its result."""

    root_candidates: List[str] = Field(default_factory=list, description="Candidate root field ids by score")
    similarity_threshold: Optional[float] = None
    classification_raw: Optional[str] = None
    selection_raw: Optional[str] = None
    selection_strategy: Optional[str] = None
    operation_type_fallback: bool = False
    type_closure: List[str] = Field(default_factory=list, description="Type names included in the prompt")
    validation_errors: List[str] = Field(default_factory=list, description="Errors from the last validation")
    timeouts: List[str] = Field(default_factory=list, description="Stages that timed out")
    schema_errors: List[str] = Field(
        default_factory=list, description="Why the schema was not used for validation, if it was not"
    )
    truncated_types: List[str] = Field(
        default_factory=list, description="Types whose field list hit the per-type lookup cap"
    )


class GeneratedOperation(BaseModel):
    """Final output of the synthesis pipeline."""

    operation: str = Field(..., description="GraphQL operation text (last draft if never valid)")
    variables: Dict[str, Any] = Field(default_factory=dict)
    operation_type: str = Field(..., description="query, mutation or subscription")
    root_field: DeclarationDocument
    valid: bool = Field(..., description="Whether the returned operation passed validation")
    validation_attempts: int = Field(..., ge=1)
    relevant_documents: List[DeclarationDocument] = Field(default_factory=list)
    diagnostics: GenerationDiagnostics = Field(default_factory=GenerationDiagnostics)

    @classmethod
    def from_context(cls, context: GenerationContext, valid: bool) -> GeneratedOperation:
        root = context.root_field
        return cls(
            operation=context.draft,
            variables=context.variables,
            operation_type=context.operation_type.operation_keyword,
            root_field=root.document,
            valid=valid,
            validation_attempts=context.validation_attempts,
            relevant_documents=[root.document, *context.type_documents],
            diagnostics=GenerationDiagnostics(
                root_candidates=[r.document.id for r in context.root_candidates],
                similarity_threshold=context.similarity_threshold,
                classification_raw=context.classification_raw,
                selection_raw=context.selection_raw,
                selection_strategy=context.selection_strategy,
                operation_type_fallback=context.operation_type_fallback,
                type_closure=[d.name for d in context.type_documents],
                validation_errors=list(context.validation_errors),
                timeouts=list(context.timeouts),
                schema_errors=list(context.schema_errors),
                truncated_types=list(context.truncated_types),
            ),
        )
