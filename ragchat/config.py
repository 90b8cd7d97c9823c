"""
Configuration for ragchat.

Supports loading from:
1. Environment variables (highest priority)
2. YAML config file
3. Default values (fallback)
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator


class LLMConfig(BaseModel):
    """Chat runtime (Ollama) configuration."""

    base_url: str = "http://localhost:11434"
    default_model: str = "qwen2.5:14b"
    code_model: str = "qwen2.5-coder:14b"
    reasoning_model: str = "qwen2.5:32b"
    timeout: float = 300.0


class EmbedderConfig(BaseModel):
    """Embedder configuration."""

    provider: str = "ollama"  # ollama, openai
    model: str = "nomic-embed-text"
    base_url: str = "http://localhost:11434"
    api_key: str | None = None
    timeout: float = 60.0
    batch_timeout: float = 120.0
    # Optional: embedding dimension (fallback to auto-detect)
    dimension: int | None = None


class RAGConfig(BaseModel):
    """Knowledge base ingestion and retrieval configuration."""

    enabled: bool = True
    chunk_size: int = Field(default=500, ge=1)
    chunk_overlap: int = Field(default=50, ge=0)
    top_k: int = Field(default=5, ge=1)
    similarity_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    watched_folders: list[str] = Field(default_factory=list)
    supported_types: list[str] = Field(
        default_factory=lambda: ["md", "txt", "pdf", "py", "ts", "js"]
    )
    url_timeout: float = 30.0
    user_agent: str = "Mozilla/5.0 (compatible; RagChat/1.0; +http://localhost)"

    @model_validator(mode="after")
    def _check_overlap(self) -> "RAGConfig":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self


class GroundingConfig(BaseModel):
    """Similarity-to-confidence thresholds."""

    high_similarity: float = Field(default=0.86, ge=0.0, le=1.0)
    medium_similarity: float = Field(default=0.72, ge=0.0, le=1.0)
    high_min_chunks: int = Field(default=2, ge=1)


class MemoryConfig(BaseModel):
    """Memory selection and auto-capture configuration."""

    token_budget: int = Field(default=2000, ge=0)
    lexical_weight: float = 0.7
    recency_weight: float = 0.2
    frequency_weight: float = 0.1
    recency_decay_days: float = 30.0
    frequency_cap: int = 20
    header_overhead_tokens: int = 25
    per_item_overhead_tokens: int = 5
    max_captures_per_turn: int = 3


class ChatConfig(BaseModel):
    """Conversation behaviour."""

    title_placeholder: str = "New Chat"
    title_max_length: int = 50


class StorageConfig(BaseModel):
    """Relational and vector storage configuration."""

    db_path: str = "data/ragchat.db"
    vector_backend: str = "sqlite"  # sqlite, qdrant


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"
    file_rotation: str = "10 MB"
    file_retention: str = "7 days"
    compression: str = "zip"
    serialize: bool = True


class QdrantConfig(BaseModel):
    """Qdrant configuration (used when storage.vector_backend is "qdrant")."""

    url: str = "http://localhost:6333"
    collection_name: str = "chunks"
    use_grpc: bool = False
    hnsw_m: int = 16
    hnsw_ef_construct: int = 100
    use_quantization: bool = False
    on_disk: bool = False
    batch_size: int = 100
    timeout: int = 30


class Config(BaseModel):
    """Main configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    embedder: EmbedderConfig = Field(default_factory=EmbedderConfig)
    rag: RAGConfig = Field(default_factory=RAGConfig)
    grounding: GroundingConfig = Field(default_factory=GroundingConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    qdrant: QdrantConfig = Field(default_factory=QdrantConfig)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Config":
        """
        Load configuration from environment variables.

        Priority: .env file -> system environment variables -> defaults

        Args:
            env_file: Optional path to .env file (default: .env in project root)

        Returns:
            Config instance

        Environment variables:
            RAGCHAT_LLM_BASE_URL: Ollama URL for chat
            RAGCHAT_LLM_DEFAULT_MODEL / _CODE_MODEL / _REASONING_MODEL: routed models
            RAGCHAT_EMBEDDER_PROVIDER: Embedder provider (ollama, openai)
            RAGCHAT_EMBEDDER_MODEL: Embedder model name
            RAGCHAT_EMBEDDER_API_KEY: Embedder API key (for OpenAI)
            RAGCHAT_EMBEDDER_DIMENSION: Embedding dimension (optional)
            RAGCHAT_RAG_ENABLED: Global retrieval switch
            RAGCHAT_RAG_CHUNK_SIZE / _CHUNK_OVERLAP / _TOP_K / _SIMILARITY_THRESHOLD
            RAGCHAT_RAG_WATCHED_FOLDERS: Comma separated folder list
            RAGCHAT_RAG_SUPPORTED_TYPES: Comma separated extensions (no dot)
            RAGCHAT_MEMORY_TOKEN_BUDGET: Memory injection budget in tokens
            RAGCHAT_DB_PATH: SQLite database path
            RAGCHAT_VECTOR_BACKEND: sqlite or qdrant
            RAGCHAT_QDRANT_URL / RAGCHAT_QDRANT_COLLECTION
        """
        if env_file:
            load_dotenv(env_file)
        elif Path(".env").exists():
            load_dotenv()

        def get_env(key: str, default: Any = None) -> Any:
            """Get environment variable with type conversion."""
            value = os.getenv(key)
            if value is None:
                return default
            if value == "":
                return default
            if isinstance(default, bool):
                return str(value).lower() in ("true", "1", "yes")
            if isinstance(default, int):
                return int(value)
            if isinstance(default, float):
                return float(value)
            if isinstance(default, list):
                return [part.strip() for part in value.split(",") if part.strip()]
            return value

        rag_defaults = RAGConfig()

        return cls(
            llm=LLMConfig(
                base_url=get_env("RAGCHAT_LLM_BASE_URL", "http://localhost:11434"),
                default_model=get_env("RAGCHAT_LLM_DEFAULT_MODEL", "qwen2.5:14b"),
                code_model=get_env("RAGCHAT_LLM_CODE_MODEL", "qwen2.5-coder:14b"),
                reasoning_model=get_env("RAGCHAT_LLM_REASONING_MODEL", "qwen2.5:32b"),
                timeout=get_env("RAGCHAT_LLM_TIMEOUT", 300.0),
            ),
            embedder=EmbedderConfig(
                provider=get_env("RAGCHAT_EMBEDDER_PROVIDER", "ollama"),
                model=get_env("RAGCHAT_EMBEDDER_MODEL", "nomic-embed-text"),
                base_url=get_env("RAGCHAT_EMBEDDER_BASE_URL", "http://localhost:11434"),
                api_key=get_env("RAGCHAT_EMBEDDER_API_KEY"),
                timeout=get_env("RAGCHAT_EMBEDDER_TIMEOUT", 60.0),
                batch_timeout=get_env("RAGCHAT_EMBEDDER_BATCH_TIMEOUT", 120.0),
                dimension=get_env("RAGCHAT_EMBEDDER_DIMENSION"),
            ),
            rag=RAGConfig(
                enabled=get_env("RAGCHAT_RAG_ENABLED", True),
                chunk_size=get_env("RAGCHAT_RAG_CHUNK_SIZE", rag_defaults.chunk_size),
                chunk_overlap=get_env("RAGCHAT_RAG_CHUNK_OVERLAP", rag_defaults.chunk_overlap),
                top_k=get_env("RAGCHAT_RAG_TOP_K", rag_defaults.top_k),
                similarity_threshold=get_env(
                    "RAGCHAT_RAG_SIMILARITY_THRESHOLD", rag_defaults.similarity_threshold
                ),
                watched_folders=get_env("RAGCHAT_RAG_WATCHED_FOLDERS", []),
                supported_types=get_env(
                    "RAGCHAT_RAG_SUPPORTED_TYPES", list(rag_defaults.supported_types)
                ),
            ),
            memory=MemoryConfig(
                token_budget=get_env("RAGCHAT_MEMORY_TOKEN_BUDGET", 2000),
            ),
            storage=StorageConfig(
                db_path=get_env("RAGCHAT_DB_PATH", "data/ragchat.db"),
                vector_backend=get_env("RAGCHAT_VECTOR_BACKEND", "sqlite"),
            ),
            qdrant=QdrantConfig(
                url=get_env("RAGCHAT_QDRANT_URL", "http://localhost:6333"),
                collection_name=get_env("RAGCHAT_QDRANT_COLLECTION", "chunks"),
                use_grpc=get_env("RAGCHAT_QDRANT_USE_GRPC", False),
                use_quantization=get_env("RAGCHAT_QDRANT_USE_QUANTIZATION", False),
                on_disk=get_env("RAGCHAT_QDRANT_ON_DISK", False),
            ),
            logging=LoggingConfig(
                level=get_env("RAGCHAT_LOG_LEVEL", "INFO"),
                log_to_file=get_env("RAGCHAT_LOG_TO_FILE", True),
                log_dir=get_env("RAGCHAT_LOG_DIR", "logs"),
                file_rotation=get_env("RAGCHAT_LOG_FILE_ROTATION", "10 MB"),
                file_retention=get_env("RAGCHAT_LOG_FILE_RETENTION", "7 days"),
                compression=get_env("RAGCHAT_LOG_COMPRESSION", "zip"),
                serialize=get_env("RAGCHAT_LOG_SERIALIZE", True),
            ),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "Config":
        """
        Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def from_env_or_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str | Path | None = None
    ) -> "Config":
        """
        Load configuration with priority: env vars > YAML > defaults.

        Args:
            yaml_path: Optional path to YAML config
            env_file: Optional path to .env file

        Returns:
            Config instance
        """
        if yaml_path and Path(yaml_path).exists():
            with open(yaml_path) as f:
                config_dict = yaml.safe_load(f) or {}
        else:
            config_dict = {}

        env_config = cls.from_env(env_file=env_file)

        final_dict = {**config_dict}

        # Apply env overrides (non-default sections only)
        default = cls()
        for section in ("llm", "embedder", "rag", "memory", "storage", "qdrant", "logging"):
            env_section = getattr(env_config, section)
            if env_section != getattr(default, section):
                final_dict[section] = env_section.model_dump()

        return cls(**final_dict) if final_dict else env_config


# Default config instance
default_config = Config()
