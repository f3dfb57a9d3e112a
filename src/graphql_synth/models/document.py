"""Declaration documents and vector search models."""

import hashlib
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

ROOT_TYPE_NAMES = ("Query", "Mutation", "Subscription")


class DocumentKind(str, Enum):
    """Kind of schema construct a declaration document represents."""

    FIELD = "field"
    OBJECT = "object"
    INPUT = "input"
    INTERFACE = "interface"
    ENUM = "enum"
    UNION = "union"
    SCALAR = "scalar"


# Kinds that describe a named type (as opposed to a member of one)
TYPE_KINDS = [
    DocumentKind.OBJECT,
    DocumentKind.INPUT,
    DocumentKind.INTERFACE,
    DocumentKind.UNION,
    DocumentKind.ENUM,
    DocumentKind.SCALAR,
]


class RootOperationType(str, Enum):
    """Root operation types of a GraphQL schema."""

    QUERY = "Query"
    MUTATION = "Mutation"
    SUBSCRIPTION = "Subscription"

    @property
    def operation_keyword(self) -> str:
        """Lowercase keyword used in operation documents."""
        return self.value.lower()


def make_document_id(kind: str, name: str, content: str) -> str:
    """Derive a stable identifier from a document's kind, name and content."""
    digest = hashlib.sha256(f"{kind}\x00{name}\x00{content}".encode("utf-8")).hexdigest()
    return f"{kind}-{name}-{digest[:16]}"


class DeclarationDocument(BaseModel):
    """One indexable schema construct (a field, type, input, enum, ...)."""

    id: str = Field(..., description="Stable content-derived identifier")
    type: DocumentKind = Field(..., description="Kind of schema construct")
    name: str = Field(..., description="Construct name (field or type name)")
    description: Optional[str] = Field(default=None, description="Schema description, if any")
    content: str = Field(..., description="Text that is embedded and shown to the model")
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="parent_type, field_type, is_root_operation_field, root_operation_type, ...",
    )

    @classmethod
    def create(
        cls,
        kind: DocumentKind,
        name: str,
        content: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "DeclarationDocument":
        """Build a document whose id is derived from its content."""
        return cls(
            id=make_document_id(kind.value, name, content),
            type=kind,
            name=name,
            description=description,
            content=content,
            metadata=metadata or {},
        )

    @property
    def parent_type(self) -> Optional[str]:
        return self.metadata.get("parent_type")

    @property
    def root_operation_type(self) -> Optional[RootOperationType]:
        value = self.metadata.get("root_operation_type")
        if value is None:
            return None
        try:
            return RootOperationType(value)
        except ValueError:
            return None

    @property
    def is_chunk(self) -> bool:
        return "chunk_index" in self.metadata


class StoredDocument(DeclarationDocument):
    """A declaration document paired with its embedding vector."""

    embedding: List[float] = Field(..., description="Embedding vector")

    @classmethod
    def from_document(
        cls, document: DeclarationDocument, embedding: List[float]
    ) -> "StoredDocument":
        return cls(**document.model_dump(), embedding=embedding)

    def to_document(self) -> DeclarationDocument:
        return DeclarationDocument(**self.model_dump(exclude={"embedding"}))


class SearchResult(BaseModel):
    """A document and its cosine similarity to the query vector."""

    document: DeclarationDocument
    score: float = Field(..., description="Cosine similarity, higher is closer")


class MetadataOperator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    IN = "in"
    EXISTS = "exists"


class ColumnOperator(str, Enum):
    EQ = "eq"
    IN = "in"


class FilterColumn(str, Enum):
    NAME = "name"
    TYPE = "type"


class MetadataFilter(BaseModel):
    """Filter on a key of the document metadata."""

    field: str = Field(..., description="Metadata key")
    operator: MetadataOperator = Field(default=MetadataOperator.EQ)
    value: Any = Field(default=None, description="Comparison value (list for 'in')")


class ColumnFilter(BaseModel):
    """Filter on a first-class document column."""

    column: FilterColumn
    operator: ColumnOperator = Field(default=ColumnOperator.EQ)
    value: Any = Field(..., description="Comparison value (list for 'in')")


class SearchOptions(BaseModel):
    """Options for a similarity search. All filters are combined with AND."""

    limit: int = Field(default=10, description="Maximum number of results")
    metadata_filters: List[MetadataFilter] = Field(default_factory=list)
    column_filters: List[ColumnFilter] = Field(default_factory=list)

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("limit must be positive")
        return v
