"""Prompt construction for each language-model stage of operation synthesis.

Schema passages are sent as assistant messages so the model treats them as
context it already retrieved; the request itself is always the last user
message.
"""

import json
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from graphql_synth.models.chat import ChatMessage, CompletionOptions
from graphql_synth.models.document import DeclarationDocument, RootOperationType, SearchResult
from graphql_synth.utils.logging import get_logger

logger = get_logger("prompt_builder")

CLASSIFICATION_OPTIONS = CompletionOptions(temperature=0.1, max_tokens=50)
SELECTION_OPTIONS = CompletionOptions(temperature=0.1, max_tokens=100)
GENERATION_OPTIONS = CompletionOptions(temperature=0.2, max_tokens=2000)
REPAIR_OPTIONS = CompletionOptions(temperature=0.1, max_tokens=2000)

SELECTION_SYSTEM_PROMPT = (
    "Your goal is to select what you think is the most relevant field related to the "
    "users input. The assistant messages are the text for root Query/Mutation/Subscription "
    "fields of a GraphQL API."
)

GENERATION_SYSTEM_PROMPT = (
    "Your goal is to generate a valid GraphQL operation and example variables based on the "
    "assistant documents in the chat history. Return the operation in a ```graphql code "
    "block and variables in a ```json code block."
)

REPAIR_SYSTEM_PROMPT = (
    "You are a GraphQL expert. Fix the errors in the provided GraphQL operation. Return "
    "ONLY the corrected operation in a ```graphql code block."
)


class PromptBuilder:
    """Builds the message lists for classification, selection, drafting and repair."""

    def classification_messages(
        self, candidates: Sequence[SearchResult], input_text: str
    ) -> List[ChatMessage]:
        messages = []
        for r in candidates:
            op_type = r.document.metadata.get("root_operation_type")
            messages.append(ChatMessage.assistant(f"{op_type}:{r.document.content}"))
        messages.append(
            ChatMessage.user(
                f'My assistant returned the most relevant root fields based on my input: "{input_text}", '
                "which root field (Query, Mutation, Subscription) is most relevant? Respond with ONLY "
                "the root field (i.e Query, Mutation, Subscription)"
            )
        )
        return messages

    def selection_messages(
        self, candidates: Sequence[SearchResult], input_text: str
    ) -> List[ChatMessage]:
        messages = [ChatMessage.system(SELECTION_SYSTEM_PROMPT)]
        for r in candidates:
            messages.append(ChatMessage.assistant(f"{r.document.id}:{r.document.content}"))
        messages.append(
            ChatMessage.user(
                "Based on the above information, which root field (Query, Mutation, Subscription) "
                f"is most relevant to the user request: {input_text}? Respond with ONLY the id of "
                "the most relevant field"
            )
        )
        return messages

    def generation_messages(
        self,
        root_field: DeclarationDocument,
        types: Sequence[DeclarationDocument],
        input_text: str,
    ) -> List[ChatMessage]:
        messages = [
            ChatMessage.system(GENERATION_SYSTEM_PROMPT),
            ChatMessage.assistant(f"Root Field:\n{root_field.content}"),
        ]
        for doc in types:
            messages.append(ChatMessage.assistant(f"Type {doc.name}:\n{doc.content}"))
        messages.append(
            ChatMessage.user(
                "My assistant returned the most relevant pieces of the GraphQL schema, can you "
                f'generate me a valid GraphQL operation for my initial question: "{input_text}"'
            )
        )
        return messages

    def repair_messages(
        self,
        operation: str,
        errors: Sequence[str],
        context: Sequence[DeclarationDocument],
        input_text: str,
    ) -> List[ChatMessage]:
        messages = [ChatMessage.system(REPAIR_SYSTEM_PROMPT)]
        for doc in context:
            messages.append(ChatMessage.assistant(f"Schema: {doc.content}"))
        error_lines = "\n".join(f"- {e}" for e in errors)
        messages.append(
            ChatMessage.user(
                "The following GraphQL operation has errors:\n\n"
                f"```graphql\n{operation}\n```\n\n"
                f"Errors:\n{error_lines}\n\n"
                f'Original request: "{input_text}"\n\n'
                "Please fix the operation and return only the corrected GraphQL operation."
            )
        )
        return messages


def parse_operation_type(response: Optional[str]) -> Tuple[RootOperationType, bool]:
    """Map a free-text answer to an operation type.

    Returns the type and whether it was recognized; anything that mentions
    neither mutation nor subscription is a query.
    """
    normalized = (response or "").strip().lower()
    if "mutation" in normalized:
        return RootOperationType.MUTATION, True
    if "subscription" in normalized:
        return RootOperationType.SUBSCRIPTION, True
    return RootOperationType.QUERY, "query" in normalized


def extract_code_block(text: str, language: str = "") -> Optional[str]:
    """Return the body of the first fenced block tagged ``language`` (untagged if empty)."""
    if language:
        pattern = re.compile(r"```" + re.escape(language) + r"[ \t]*\n(.*?)```", re.IGNORECASE | re.DOTALL)
    else:
        pattern = re.compile(r"```[ \t]*\n(.*?)```", re.DOTALL)
    match = pattern.search(text or "")
    return match.group(1).strip() if match else None


def extract_operation(response: str) -> str:
    """Prefer a ```graphql block, then any untagged block, then the raw text."""
    return (
        extract_code_block(response, "graphql")
        or extract_code_block(response, "gql")
        or extract_code_block(response)
        or (response or "").strip()
    )


def extract_variables(response: str) -> Dict[str, Any]:
    """Parse the ```json variables block; malformed or missing blocks give ``{}``."""
    block = extract_code_block(response, "json")
    if not block:
        return {}
    try:
        variables = json.loads(block)
    except json.JSONDecodeError:
        logger.debug("Failed to parse JSON variables block")
        return {}
    return variables if isinstance(variables, dict) else {}
