"""Pytest configuration and fixtures for graphql-synth tests."""

import asyncio
import re
from typing import Dict, List, Optional, Sequence, Tuple, Union
from unittest.mock import patch

import pytest

from graphql_synth.config import Settings
from graphql_synth.models.chat import ChatMessage, ChatRole, CompletionOptions
from graphql_synth.providers.embedding import EmbeddingProvider
from graphql_synth.providers.llm import LLMProvider
from graphql_synth.stores.memory import InMemoryVectorStore

SAMPLE_SCHEMA = '''
type Query {
  "Fetch a single user by id"
  getUser(id: ID!): User
  "Fetch a single post by id"
  getPost(id: ID!): Post
  "Search users and posts"
  search(term: String!): [SearchResult!]!
}

type Mutation {
  "Create a new user account"
  createUser(input: CreateUserInput!): User
}

type Subscription {
  "Notified when a user is created"
  userCreated: User
}

interface Node {
  id: ID!
}

type User implements Node {
  id: ID!
  name: String!
  email: String
  role: Role
  posts: [Post!]!
}

type Post implements Node {
  id: ID!
  title: String!
  author: User!
}

union SearchResult = User | Post

input CreateUserInput {
  name: String!
  email: String!
  role: Role
}

enum Role {
  ADMIN
  EDITOR
  VIEWER
}
'''

VOCABULARY = ["user", "post", "create", "search", "notif", "id", "name", "role"]


@pytest.fixture(autouse=True)
def mock_settings():
    """Mock settings for all tests to avoid environment variable issues."""
    settings = Settings()
    with patch("graphql_synth.config.get_settings", return_value=settings):
        yield settings


class KeywordEmbeddingProvider(EmbeddingProvider):
    """Deterministic embeddings: one dimension per vocabulary word plus a bias term.

    With ``max_tokens`` set it counts whitespace-separated tokens, which lets
    tests exercise chunking without tiktoken.
    """

    name = "keyword"

    def __init__(
        self,
        vocabulary: Sequence[str] = VOCABULARY,
        max_tokens: Optional[int] = None,
        fixed: Optional[Dict[str, List[float]]] = None,
    ):
        self.vocabulary = list(vocabulary)
        self.max_tokens = max_tokens
        self.fixed = fixed or {}
        self.batches: List[List[str]] = []

    @property
    def dimensions(self) -> int:
        return len(self.vocabulary) + 1

    @property
    def max_context_size(self) -> Optional[int]:
        return self.max_tokens

    @property
    def supports_token_counting(self) -> bool:
        return self.max_tokens is not None

    def count_tokens(self, text: str) -> int:
        return len(re.findall(r"\w+|[^\w\s]", text))

    def vector_for(self, text: str) -> List[float]:
        if text in self.fixed:
            return list(self.fixed[text])
        lowered = text.lower()
        return [float(lowered.count(word)) for word in self.vocabulary] + [0.5]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.batches.append(list(texts))
        return [self.vector_for(t) for t in texts]


Response = Union[str, Sequence[str]]


class ScriptedLLM(LLMProvider):
    """LLM double answering by regex on the last user message.

    A rule's response may be a list, consumed in order with the last entry
    repeating. ``delays`` makes matching calls sleep, for timeout tests.
    """

    def __init__(
        self,
        rules: Sequence[Tuple[str, Response]],
        delays: Optional[Dict[str, float]] = None,
    ):
        self.rules = [(re.compile(p, re.IGNORECASE | re.DOTALL), r) for p, r in rules]
        self.delays = {re.compile(p, re.IGNORECASE | re.DOTALL): d for p, d in (delays or {}).items()}
        self.calls: List[Tuple[List[ChatMessage], Optional[CompletionOptions]]] = []
        self._positions: Dict[int, int] = {}

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def model(self) -> str:
        return "scripted/test"

    async def complete(
        self, messages: List[ChatMessage], options: Optional[CompletionOptions] = None
    ) -> str:
        self.calls.append((list(messages), options))
        prompt = next(m.content for m in reversed(messages) if m.role == ChatRole.USER)

        for pattern, delay in self.delays.items():
            if pattern.search(prompt):
                await asyncio.sleep(delay)

        for index, (pattern, response) in enumerate(self.rules):
            if not pattern.search(prompt):
                continue
            if isinstance(response, str):
                return response
            position = self._positions.get(index, 0)
            self._positions[index] = position + 1
            return response[min(position, len(response) - 1)]
        return ""

    def prompts_matching(self, pattern: str) -> List[List[ChatMessage]]:
        compiled = re.compile(pattern, re.IGNORECASE | re.DOTALL)
        return [
            messages
            for messages, _ in self.calls
            if compiled.search(next(m.content for m in reversed(messages) if m.role == ChatRole.USER))
        ]


# Patterns matching the last user message of each pipeline stage
CLASSIFY = r"Respond with ONLY the root field \(i\.e"
SELECT = r"Respond with ONLY the id"
DRAFT = r"generate me a valid GraphQL operation"
REPAIR = r"has errors"


def graphql_block(operation: str, variables: Optional[str] = None) -> str:
    text = f"```graphql\n{operation}\n```"
    if variables is not None:
        text += f"\n```json\n{variables}\n```"
    return text


@pytest.fixture
def sample_schema() -> str:
    return SAMPLE_SCHEMA


@pytest.fixture
def embedding_provider() -> KeywordEmbeddingProvider:
    return KeywordEmbeddingProvider()


@pytest.fixture
def memory_store(embedding_provider) -> InMemoryVectorStore:
    return InMemoryVectorStore(embedding_provider.dimensions)
