"""Configuration management using pydantic-settings."""

import warnings
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class EmbeddingProviderKind(str, Enum):
    """Embedding provider selection."""

    OPENAI = "openai"
    AZURE = "azure"


class VectorStoreBackend(str, Enum):
    """Vector store backend selection."""

    MEMORY = "memory"
    PGVECTOR = "pgvector"
    QDRANT = "qdrant"


class EmbeddingSettings(BaseSettings):
    """Embedding configuration (provider-agnostic)."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    embedding_provider: EmbeddingProviderKind = Field(
        default=EmbeddingProviderKind.OPENAI,
        description="Embedding provider: openai or azure. Env var: EMBEDDING_PROVIDER",
    )

    # OpenAI (direct) embeddings
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key (direct) for embeddings. Env var: OPENAI_API_KEY",
    )
    open_ai_api_key: Optional[str] = Field(
        default=None,
        description="Alternate OpenAI API key env var name. Env var: OPEN_AI_API_KEY",
    )
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Optional OpenAI base URL (advanced). Env var: OPENAI_BASE_URL",
    )
    open_ai_base_url: Optional[str] = Field(
        default=None,
        description="Alternate OpenAI base URL env var name. Env var: OPEN_AI_BASE_URL",
    )

    # Azure OpenAI embeddings
    azure_openai_endpoint: Optional[str] = Field(
        default=None, description="Azure OpenAI endpoint URL. Env var: AZURE_OPENAI_ENDPOINT"
    )
    azure_openai_api_key: Optional[str] = Field(
        default=None, description="Azure OpenAI API key. Env var: AZURE_OPENAI_API_KEY"
    )
    azure_openai_api_version: str = Field(
        default="2024-02-15-preview",
        description="Azure OpenAI API version. Env var: AZURE_OPENAI_API_VERSION",
    )

    # Model configuration
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model name (OpenAI direct). Env var: EMBEDDING_MODEL",
    )
    embedding_deployment_name: Optional[str] = Field(
        default=None,
        description="Embedding deployment name (Azure OpenAI). Env var: EMBEDDING_DEPLOYMENT_NAME",
    )
    embedding_dimension: Optional[int] = Field(
        default=None,
        description="Embedding dimension. Detected from the provider when unset. Env var: EMBEDDING_DIMENSION",
    )
    embedding_max_context_size: int = Field(
        default=8191,
        description="Maximum tokens the embedding model accepts per input. Env var: EMBEDDING_MAX_CONTEXT_SIZE",
    )
    embedding_token_encoding: str = Field(
        default="cl100k_base",
        description="tiktoken encoding used to count tokens. Env var: EMBEDDING_TOKEN_ENCODING",
    )
    embedding_batch_size: int = Field(
        default=100,
        description="Batch size for embedding generation. Env var: EMBEDDING_BATCH_SIZE",
    )
    embedding_timeout: float = Field(
        default=30.0,
        description="Embedding request timeout in seconds. Env var: EMBEDDING_TIMEOUT",
    )
    embedding_max_retries: int = Field(
        default=5,
        description="Max retries for embedding requests. Env var: EMBEDDING_MAX_RETRIES",
    )

    @model_validator(mode="after")
    def normalize_openai_env_vars(self) -> "EmbeddingSettings":
        """Accept OPEN_AI_* as aliases for OPENAI_* for convenience."""
        if not self.openai_api_key and self.open_ai_api_key:
            self.openai_api_key = self.open_ai_api_key
        if not self.openai_base_url and self.open_ai_base_url:
            self.openai_base_url = self.open_ai_base_url
        return self

    @field_validator("embedding_dimension")
    @classmethod
    def validate_dimension(cls, v: Optional[int]) -> Optional[int]:
        """Reject non-positive dimensions."""
        if v is not None and v <= 0:
            raise ValueError("Embedding dimension must be positive")
        return v

    @property
    def is_configured(self) -> bool:
        """Check if the selected embedding provider is configured."""
        if self.embedding_provider == EmbeddingProviderKind.OPENAI:
            return bool(self.openai_api_key)
        if self.embedding_provider == EmbeddingProviderKind.AZURE:
            return bool(
                self.azure_openai_endpoint
                and self.azure_openai_api_key
                and self.embedding_deployment_name
            )
        return False

    @property
    def resolved_model_name(self) -> str:
        """Get the effective model/deployment name to use for embeddings."""
        if self.embedding_provider == EmbeddingProviderKind.AZURE:
            return self.embedding_deployment_name or ""
        return self.embedding_model


class LLMSettings(BaseSettings):
    """LLM configuration for operation synthesis."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False, populate_by_name=True)

    default_model_name: str = Field(
        default="openai/gpt-4o-mini",
        description="Default LLM model name (LiteLLM format)",
        alias="DEFAULT_MODEL_NAME",
    )

    # OpenAI
    openai_api_key: Optional[str] = Field(
        default=None, description="OpenAI API key", alias="OPENAI_API_KEY"
    )

    # Azure OpenAI
    azure_api_key: Optional[str] = Field(
        default=None, description="Azure OpenAI API key", alias="AZURE_API_KEY"
    )
    azure_api_base: Optional[str] = Field(
        default=None, description="Azure OpenAI endpoint URL", alias="AZURE_API_BASE"
    )
    azure_api_version: str = Field(
        default="2024-02-15-preview",
        description="Azure OpenAI API version",
        alias="AZURE_API_VERSION",
    )

    # Anthropic
    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key", alias="ANTHROPIC_API_KEY"
    )

    # Ollama (local)
    ollama_api_base: Optional[str] = Field(
        default=None, description="Ollama server URL", alias="OLLAMA_API_BASE"
    )

    llm_timeout: float = Field(
        default=60.0,
        description="Per-request LLM timeout in seconds",
        alias="LLM_TIMEOUT",
    )
    llm_max_retries: int = Field(
        default=3,
        description="Retries for transient LLM provider failures",
        alias="LLM_MAX_RETRIES",
    )

    @property
    def has_openai(self) -> bool:
        """Check if OpenAI is configured."""
        return bool(self.openai_api_key)

    @property
    def has_azure_openai(self) -> bool:
        """Check if Azure OpenAI is configured."""
        return bool(self.azure_api_key and self.azure_api_base)

    @property
    def has_anthropic(self) -> bool:
        """Check if Anthropic is configured."""
        return bool(self.anthropic_api_key)

    @property
    def has_ollama(self) -> bool:
        """Check if an Ollama server is configured."""
        return bool(self.ollama_api_base)


class VectorStoreSettings(BaseSettings):
    """Vector store configuration."""

    model_config = SettingsConfigDict(env_prefix="VECTOR_STORE_", case_sensitive=False)

    backend: VectorStoreBackend = Field(
        default=VectorStoreBackend.MEMORY,
        description="Vector store backend: memory, pgvector or qdrant. Env var: VECTOR_STORE_backend",
    )
    table_name: str = Field(
        default="graphql_embeddings",
        description="Table (pgvector) or collection (qdrant) name. Env var: VECTOR_STORE_table_name",
    )
    database_url: Optional[str] = Field(
        default=None,
        description="PostgreSQL connection URL for the pgvector backend. Env var: VECTOR_STORE_database_url",
    )
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Max overflow connections")
    qdrant_url: str = Field(
        default="http://localhost:6333", description="Qdrant connection URL"
    )
    qdrant_api_key: Optional[str] = Field(
        default=None, description="Qdrant API key (for Qdrant Cloud)"
    )
    qdrant_timeout: int = Field(default=30, description="Qdrant request timeout in seconds")

    @field_validator("table_name")
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        """Table names are interpolated into SQL and must be plain identifiers."""
        if not v or not v.replace("_", "").isalnum():
            raise ValueError("Table name may contain only letters, digits and underscores")
        return v

    @property
    def is_configured(self) -> bool:
        """Check if the selected backend has its connection settings."""
        if self.backend == VectorStoreBackend.PGVECTOR:
            return bool(self.database_url)
        return True


class GenerationSettings(BaseSettings):
    """Defaults for the operation synthesis pipeline."""

    model_config = SettingsConfigDict(env_prefix="GENERATION_", case_sensitive=False)

    min_similarity_score: float = Field(
        default=0.4, description="Minimum cosine similarity for root-field candidates"
    )
    score_relaxation_step: float = Field(
        default=0.05,
        description="Step used to lower the similarity threshold when nothing matches (0 disables)",
    )
    max_documents: int = Field(
        default=50, description="Maximum root-field candidates to retrieve"
    )
    max_type_documents: int = Field(
        default=50, description="Maximum type declarations gathered for the type closure"
    )
    max_type_depth: int = Field(
        default=5, description="Maximum BFS depth when following type references"
    )
    max_validation_retries: int = Field(
        default=3, description="Maximum generate/validate attempts"
    )
    classification_timeout: float = Field(
        default=30.0, description="Timeout in seconds for classification and selection calls"
    )
    generation_timeout: float = Field(
        default=120.0, description="Timeout in seconds for draft and repair calls"
    )

    @field_validator("min_similarity_score")
    @classmethod
    def validate_score(cls, v: float) -> float:
        """Validate similarity threshold range."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("min_similarity_score must be between 0 and 1")
        return v

    @field_validator("max_validation_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        """Validate validation retry bounds."""
        if not 1 <= v <= 10:
            raise ValueError("max_validation_retries must be between 1 and 10")
        return v


class ServerSettings(BaseSettings):
    """Server configuration."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    host: str = Field(default="0.0.0.0", description="Server host. Env var: HOST")
    port: int = Field(default=8004, description="HTTP server port. Env var: PORT")
    reload: bool = Field(
        default=False, description="Enable auto-reload (development only). Env var: RELOAD"
    )


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(
        default="graphql-synth", description="Application name. Env var: APP_NAME"
    )
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment. Env var: ENVIRONMENT",
    )
    debug: bool = Field(default=False, description="Enable debug mode. Env var: DEBUG")
    log_level: str = Field(default="INFO", description="Logging level. Env var: LOG_LEVEL")

    # Sub-settings
    embedding: Optional[EmbeddingSettings] = None
    llm: Optional[LLMSettings] = None
    vector_store: Optional[VectorStoreSettings] = None
    generation: Optional[GenerationSettings] = None
    server: Optional[ServerSettings] = None

    @model_validator(mode="after")
    def initialize_nested_settings(self) -> "Settings":
        """Initialize nested settings to ensure they read from environment."""
        if self.embedding is None:
            self.embedding = EmbeddingSettings()
        if self.llm is None:
            self.llm = LLMSettings()
        if self.vector_store is None:
            self.vector_store = VectorStoreSettings()
        if self.generation is None:
            self.generation = GenerationSettings()
        if self.server is None:
            self.server = ServerSettings()
        return self

    @field_validator("environment", mode="before")
    @classmethod
    def parse_environment(cls, v):
        """Parse environment from string."""
        if isinstance(v, str):
            try:
                return Environment(v.lower())
            except ValueError:
                return Environment.DEVELOPMENT
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def validate_configuration(self) -> None:
        """Warn about providers that are selected but not configured."""
        if not self.embedding.is_configured:
            warnings.warn(
                "Embeddings are not configured. For OpenAI direct set EMBEDDING_PROVIDER=openai and OPENAI_API_KEY. "
                "For Azure set EMBEDDING_PROVIDER=azure and AZURE_OPENAI_ENDPOINT/AZURE_OPENAI_API_KEY/"
                "EMBEDDING_DEPLOYMENT_NAME.",
                UserWarning,
            )

        if not self.vector_store.is_configured:
            warnings.warn(
                "VECTOR_STORE_BACKEND=pgvector requires VECTOR_STORE_DATABASE_URL",
                UserWarning,
            )

    def validate_production_settings(self) -> None:
        """Validate that production settings are secure."""
        if self.is_production:
            if self.debug:
                raise ValueError("DEBUG must be False in production")

            if not self.embedding.is_configured:
                raise ValueError("Embeddings must be configured in production.")

            if self.vector_store.backend == VectorStoreBackend.MEMORY:
                raise ValueError(
                    "The in-memory vector store is not persistent. "
                    "Set VECTOR_STORE_BACKEND=pgvector or qdrant in production."
                )

            if not self.vector_store.is_configured:
                raise ValueError("Vector store connection settings are missing.")


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
        _settings.validate_configuration()
        try:
            _settings.validate_production_settings()
        except ValueError as e:
            import logging

            logging.error(f"Configuration validation failed: {e}")
            if _settings.is_production:
                raise
    return _settings
