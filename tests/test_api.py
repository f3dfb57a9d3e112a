"""API tests using FastAPI's TestClient with in-process services."""

import pytest
from fastapi.testclient import TestClient

from conftest import CLASSIFY, DRAFT, SELECT, KeywordEmbeddingProvider, ScriptedLLM, graphql_block
from graphql_synth.dependencies import ServiceContainer
from graphql_synth.main import create_app
from graphql_synth.models.operation import GenerationOptions
from graphql_synth.stores.memory import InMemoryVectorStore
from graphql_synth.utils.errors import VectorStoreError

VALID_QUERY = graphql_block(
    "query GetUser($id: ID!) {\n  getUser(id: $id) {\n    id\n    name\n  }\n}",
    '{"id": "1"}',
)


@pytest.fixture
def container():
    provider = KeywordEmbeddingProvider()
    llm = ScriptedLLM([(CLASSIFY, "Query"), (SELECT, "getUser"), (DRAFT, VALID_QUERY)])
    return ServiceContainer(
        provider,
        InMemoryVectorStore(provider.dimensions),
        llm,
        options=GenerationOptions(),
    )


@pytest.fixture
def app(container):
    application = create_app()
    application.state.services = container
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_versioned_health(self, client):
        assert client.get("/api/v1/health").status_code == 200

    def test_ready(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"] == {"services": True, "vector_store": True}

    def test_not_ready_without_services(self, app, client):
        app.state.services = None
        response = client.get("/ready")
        assert response.status_code == 503
        assert response.json()["checks"]["services"] is False

    def test_not_ready_when_store_fails(self, container, client, monkeypatch):
        async def failing_count():
            raise VectorStoreError("connection refused", backend="memory")

        monkeypatch.setattr(container.store, "count", failing_count)
        response = client.get("/ready")
        assert response.status_code == 503
        assert response.json()["checks"]["vector_store"] is False

    def test_request_id_header(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-Process-Time" in response.headers

    def test_api_info(self, client):
        response = client.get("/api/v1/")
        assert response.status_code == 200
        assert response.json()["version"] == "v1"


class TestSchemaEndpoints:
    def test_embed_count_and_clear(self, client, sample_schema):
        response = client.post("/api/v1/schemas/embed", json={"schema_sdl": sample_schema})
        assert response.status_code == 200
        embedded = response.json()["embedded_count"]
        assert embedded > 0
        assert response.json()["skipped_count"] == 0

        count = client.get("/api/v1/schemas/embeddings/count")
        assert count.json() == {"count": embedded}

        cleared = client.delete("/api/v1/schemas/embeddings")
        assert cleared.json() == {"cleared": True}
        assert client.get("/api/v1/schemas/embeddings/count").json() == {"count": 0}

    def test_invalid_schema(self, client):
        response = client.post("/api/v1/schemas/embed", json={"schema_sdl": "type Query {"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "SCHEMA_PARSE_ERROR"

    def test_empty_schema_rejected(self, client):
        response = client.post("/api/v1/schemas/embed", json={"schema_sdl": ""})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_services_unavailable(self, app, client, sample_schema):
        app.state.services = None
        response = client.post("/api/v1/schemas/embed", json={"schema_sdl": sample_schema})
        assert response.status_code == 503

    def test_unbuildable_schema_rejected(self, client):
        response = client.post(
            "/api/v1/schemas/embed",
            json={"schema_sdl": 'type User @key(fields: "id") { id: ID! } type Query { u: User }'},
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "SCHEMA_PARSE_ERROR"
        assert client.get("/api/v1/schemas/embeddings/count").json() == {"count": 0}

    def test_incremental_embed(self, client):
        first = client.post(
            "/api/v1/schemas/embed/incremental",
            json={"schema_sdl": "type Query { getUser: String getPost: String }"},
        )
        assert first.status_code == 200
        assert first.json()["full_reindex"] is True
        assert first.json()["added_count"] == 2

        second = client.post(
            "/api/v1/schemas/embed/incremental",
            json={"schema_sdl": "type Query { getPost: String }"},
        )
        assert second.status_code == 200
        data = second.json()
        assert data["full_reindex"] is False
        assert data["deleted_count"] == 1
        assert data["unchanged_count"] == 1
        assert data["added_count"] == 0
        assert client.get("/api/v1/schemas/embeddings/count").json() == {"count": 1}

    def test_incremental_embed_invalid_schema(self, client):
        response = client.post(
            "/api/v1/schemas/embed/incremental", json={"schema_sdl": "type Query {"}
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "SCHEMA_PARSE_ERROR"


class TestSearch:
    def test_search_returns_ranked_results(self, client, sample_schema):
        client.post("/api/v1/schemas/embed", json={"schema_sdl": sample_schema})

        response = client.post("/api/v1/search", json={"query": "user", "limit": 3})

        assert response.status_code == 200
        results = response.json()["results"]
        assert len(results) == 3
        scores = [r["score"] for r in results]
        assert scores == sorted(scores, reverse=True)


class TestGenerate:
    def test_generate_operation(self, client, sample_schema):
        client.post("/api/v1/schemas/embed", json={"schema_sdl": sample_schema})

        response = client.post(
            "/api/v1/operations/generate", json={"input_text": "get the user by id"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["operation_type"] == "query"
        assert data["root_field"]["name"] == "getUser"
        assert data["variables"] == {"id": "1"}
        assert data["validation_attempts"] == 1
        assert "getUser(id: $id)" in data["operation"]

    def test_no_relevant_fields(self, client):
        response = client.post(
            "/api/v1/operations/generate", json={"input_text": "get the user by id"}
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NO_RELEVANT_FIELDS"

    def test_rejects_out_of_range_overrides(self, client):
        response = client.post(
            "/api/v1/operations/generate",
            json={"input_text": "get the user", "max_validation_retries": 0},
        )
        assert response.status_code == 422
