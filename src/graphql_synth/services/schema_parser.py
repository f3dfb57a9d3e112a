"""Schema decomposition: SDL text to indexable declaration documents."""

from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from graphql import GraphQLError, parse, print_ast, strip_ignored_characters
from graphql.language import (
    DocumentNode,
    EnumTypeDefinitionNode,
    EnumTypeExtensionNode,
    FieldDefinitionNode,
    InputObjectTypeDefinitionNode,
    InputObjectTypeExtensionNode,
    InputValueDefinitionNode,
    InterfaceTypeDefinitionNode,
    InterfaceTypeExtensionNode,
    ListTypeNode,
    NonNullTypeNode,
    ObjectTypeDefinitionNode,
    ObjectTypeExtensionNode,
    ScalarTypeDefinitionNode,
    ScalarTypeExtensionNode,
    SchemaDefinitionNode,
    SchemaExtensionNode,
    TypeNode,
    UnionTypeDefinitionNode,
    UnionTypeExtensionNode,
)

from graphql_synth.models.document import (
    ROOT_TYPE_NAMES,
    DeclarationDocument,
    DocumentKind,
    RootOperationType,
)
from graphql_synth.utils.errors import SchemaParseError
from graphql_synth.utils.logging import get_logger

logger = get_logger("schema_parser")

BUILTIN_SCALARS = frozenset(["ID", "String", "Int", "Float", "Boolean"])

# Type documents whose body can be split between members
_CHUNKABLE_KINDS = (
    DocumentKind.OBJECT,
    DocumentKind.INTERFACE,
    DocumentKind.INPUT,
    DocumentKind.ENUM,
)

_OBJECT_NODES = (ObjectTypeDefinitionNode, ObjectTypeExtensionNode)
_INTERFACE_NODES = (InterfaceTypeDefinitionNode, InterfaceTypeExtensionNode)
_INPUT_NODES = (InputObjectTypeDefinitionNode, InputObjectTypeExtensionNode)
_ENUM_NODES = (EnumTypeDefinitionNode, EnumTypeExtensionNode)
_UNION_NODES = (UnionTypeDefinitionNode, UnionTypeExtensionNode)
_SCALAR_NODES = (ScalarTypeDefinitionNode, ScalarTypeExtensionNode)

_OPERATION_TO_ROOT = {
    "query": RootOperationType.QUERY,
    "mutation": RootOperationType.MUTATION,
    "subscription": RootOperationType.SUBSCRIPTION,
}


def unwrap_type_name(type_ref: str) -> str:
    """Strip list and non-null wrappers: ``[User!]!`` -> ``User``."""
    return type_ref.replace("[", "").replace("]", "").replace("!", "").strip()


def _base_type(node: TypeNode) -> str:
    while isinstance(node, (NonNullTypeNode, ListTypeNode)):
        node = node.type
    return node.name.value


def _description(node) -> Optional[str]:
    return node.description.value if getattr(node, "description", None) else None


class SchemaDecomposer:
    """
    Turn a GraphQL schema into declaration documents and split oversized ones.

    Content is taken from the schema with ignored characters stripped, so the
    embedded text is compact. Root types (Query/Mutation/Subscription, or the
    names a ``schema {}`` block assigns) only contribute their fields.
    """

    def parse(self, schema: Union[str, DocumentNode]) -> List[DeclarationDocument]:
        """Parse SDL text and return one document per type, field and input field.

        Raises:
            SchemaParseError: If the schema text is not valid SDL
        """
        if isinstance(schema, DocumentNode):
            if schema.loc is None:
                raise SchemaParseError("Parsed schema has no source location information")
            schema = schema.loc.source.body

        if not schema or not schema.strip():
            raise SchemaParseError("Schema is empty")

        try:
            stripped = strip_ignored_characters(schema)
            ast = parse(stripped)
        except GraphQLError as e:
            raise SchemaParseError(
                f"Failed to parse GraphQL schema: {e.message}",
                details={
                    "locations": [
                        {"line": loc.line, "column": loc.column} for loc in (e.locations or [])
                    ]
                },
            ) from e

        root_types = self._root_type_names(ast)
        documents: List[DeclarationDocument] = []

        for definition in ast.definitions:
            if isinstance(definition, _OBJECT_NODES):
                self._object_type(definition, stripped, root_types, documents)
            elif isinstance(definition, _INTERFACE_NODES):
                self._interface_type(definition, stripped, documents)
            elif isinstance(definition, _INPUT_NODES):
                self._input_type(definition, stripped, documents)
            elif isinstance(definition, _ENUM_NODES):
                self._enum_type(definition, stripped, documents)
            elif isinstance(definition, _UNION_NODES):
                self._union_type(definition, stripped, documents)
            elif isinstance(definition, _SCALAR_NODES):
                self._scalar_type(definition, stripped, documents)

        logger.info(
            f"Schema parsed: definitions={len(ast.definitions)}, documents={len(documents)}"
        )
        return documents

    def _root_type_names(self, ast: DocumentNode) -> Dict[str, RootOperationType]:
        roots = {name: RootOperationType(name) for name in ROOT_TYPE_NAMES}
        for definition in ast.definitions:
            if isinstance(definition, (SchemaDefinitionNode, SchemaExtensionNode)):
                for op in definition.operation_types or ():
                    roots[op.type.name.value] = _OPERATION_TO_ROOT[op.operation.value]
        return roots

    def _slice(self, source: str, node) -> str:
        return source[node.loc.start : node.loc.end]

    def _member_content(self, source: str, member, parent: str) -> str:
        """Render a member as ``"description"Parent.name(args):Type``."""
        text = self._slice(source, member)
        offset = member.name.loc.start - member.loc.start
        return text[:offset] + parent + "." + text[offset:]

    def _arguments(self, field: FieldDefinitionNode) -> List[Dict[str, Any]]:
        return [
            {
                "name": arg.name.value,
                "type": print_ast(arg.type),
                "description": _description(arg),
            }
            for arg in field.arguments or ()
        ]

    def _field_document(
        self,
        field: FieldDefinitionNode,
        source: str,
        parent: str,
        root: Optional[RootOperationType],
    ) -> DeclarationDocument:
        referenced = [_base_type(field.type)]
        referenced.extend(_base_type(arg.type) for arg in field.arguments or ())
        metadata: Dict[str, Any] = {
            "parent_type": parent,
            "field_type": print_ast(field.type),
            "arguments": self._arguments(field),
            "referenced_types": list(dict.fromkeys(referenced)),
            "is_root_operation_field": root is not None,
        }
        if root is not None:
            metadata["root_operation_type"] = root.value
        return DeclarationDocument.create(
            DocumentKind.FIELD,
            field.name.value,
            self._member_content(source, field, parent),
            description=_description(field),
            metadata=metadata,
        )

    def _object_type(self, node, source, root_types, documents) -> None:
        name = node.name.value
        root = root_types.get(name)
        fields = node.fields or ()

        # Root types can be huge; only their fields are indexed
        if root is None:
            documents.append(
                DeclarationDocument.create(
                    DocumentKind.OBJECT,
                    name,
                    self._slice(source, node),
                    description=_description(node),
                    metadata={
                        "interfaces": [i.name.value for i in node.interfaces or ()],
                        "fields": [f.name.value for f in fields],
                    },
                )
            )

        for field in fields:
            documents.append(self._field_document(field, source, name, root))

    def _interface_type(self, node, source, documents) -> None:
        name = node.name.value
        fields = node.fields or ()
        documents.append(
            DeclarationDocument.create(
                DocumentKind.INTERFACE,
                name,
                self._slice(source, node),
                description=_description(node),
                metadata={
                    "interfaces": [i.name.value for i in node.interfaces or ()],
                    "fields": [f.name.value for f in fields],
                },
            )
        )
        for field in fields:
            documents.append(self._field_document(field, source, name, None))

    def _input_type(self, node, source, documents) -> None:
        name = node.name.value
        fields: Sequence[InputValueDefinitionNode] = node.fields or ()
        documents.append(
            DeclarationDocument.create(
                DocumentKind.INPUT,
                name,
                self._slice(source, node),
                description=_description(node),
                metadata={"fields": [f.name.value for f in fields]},
            )
        )
        for field in fields:
            documents.append(
                DeclarationDocument.create(
                    DocumentKind.FIELD,
                    field.name.value,
                    self._member_content(source, field, name),
                    description=_description(field),
                    metadata={
                        "parent_type": name,
                        "field_type": print_ast(field.type),
                        "referenced_types": [_base_type(field.type)],
                        "is_root_operation_field": False,
                    },
                )
            )

    def _enum_type(self, node, source, documents) -> None:
        documents.append(
            DeclarationDocument.create(
                DocumentKind.ENUM,
                node.name.value,
                self._slice(source, node),
                description=_description(node),
                metadata={"enum_values": [v.name.value for v in node.values or ()]},
            )
        )

    def _union_type(self, node, source, documents) -> None:
        documents.append(
            DeclarationDocument.create(
                DocumentKind.UNION,
                node.name.value,
                self._slice(source, node),
                description=_description(node),
                metadata={"possible_types": [t.name.value for t in node.types or ()]},
            )
        )

    def _scalar_type(self, node, source, documents) -> None:
        documents.append(
            DeclarationDocument.create(
                DocumentKind.SCALAR,
                node.name.value,
                self._slice(source, node),
                description=_description(node),
            )
        )

    # Chunking

    def chunk(
        self, documents: List[DeclarationDocument], char_limit: int
    ) -> List[DeclarationDocument]:
        """Split type documents longer than ``char_limit`` at member boundaries.

        Each chunk keeps the type header (``type Foo implements Bar{``), holds a
        run of whole fields or enum values and ends with ``}``. Documents that
        fit, or whose kind has no members to split, are returned unchanged, as
        is any document that would only produce a single chunk.
        """
        if char_limit <= 0:
            raise ValueError("char_limit must be positive")

        result: List[DeclarationDocument] = []
        for doc in documents:
            if len(doc.content) <= char_limit or doc.type not in _CHUNKABLE_KINDS:
                result.append(doc)
                continue
            result.extend(self._chunk_document(doc, char_limit))
        return result

    def _chunk_document(
        self, doc: DeclarationDocument, char_limit: int
    ) -> List[DeclarationDocument]:
        split = split_members(doc.content)
        if split is None:
            return [doc]
        header, members = split

        groups: List[List[str]] = []
        current: List[str] = []
        length = len(header) + 1
        for member in members:
            added = len(member) + (1 if current else 0)
            if current and length + added > char_limit:
                groups.append(current)
                current = [member]
                length = len(header) + 1 + len(member)
            else:
                current.append(member)
                length += added
        if current:
            groups.append(current)

        if len(groups) <= 1:
            return [doc]

        logger.debug(f"Chunked {doc.type.value} {doc.name} into {len(groups)} parts")
        return [
            DeclarationDocument(
                id=f"{doc.id}#{index}",
                type=doc.type,
                name=doc.name,
                description=doc.description,
                content=header + " ".join(group) + "}",
                metadata={
                    **doc.metadata,
                    "parent_id": doc.id,
                    "chunk_index": index,
                    "total_chunks": len(groups),
                },
            )
            for index, group in enumerate(groups)
        ]


def split_members(content: str) -> Optional[Tuple[str, List[str]]]:
    """Return (header, member texts) for a single type definition, or None."""
    try:
        ast = parse(content)
    except GraphQLError:
        return None
    if len(ast.definitions) != 1:
        return None
    node = ast.definitions[0]
    members = getattr(node, "fields", None) or getattr(node, "values", None)
    if not members:
        return None
    header = content[: members[0].loc.start]
    return header, [content[m.loc.start : m.loc.end] for m in members]


def merge_chunks(chunks: List[DeclarationDocument]) -> DeclarationDocument:
    """Reassemble the chunks of one type document into a single document."""
    ordered = sorted(chunks, key=lambda d: d.metadata.get("chunk_index", 0))
    first = ordered[0]
    if len(ordered) == 1 and not first.is_chunk:
        return first

    header = None
    members: List[str] = []
    for chunk in ordered:
        split = split_members(chunk.content)
        if split is None:
            raise SchemaParseError(
                "Stored chunk is not a single type definition",
                details={"document_id": chunk.id},
            )
        header = header or split[0]
        members.extend(split[1])

    metadata = {
        k: v
        for k, v in first.metadata.items()
        if k not in ("chunk_index", "total_chunks", "parent_id")
    }
    return DeclarationDocument(
        id=first.metadata.get("parent_id", first.id),
        type=first.type,
        name=first.name,
        description=first.description,
        content=header + " ".join(members) + "}",
        metadata=metadata,
    )


_decomposer: Optional[SchemaDecomposer] = None


def get_schema_decomposer() -> SchemaDecomposer:
    """Get the global schema decomposer instance."""
    global _decomposer
    if _decomposer is None:
        _decomposer = SchemaDecomposer()
    return _decomposer
