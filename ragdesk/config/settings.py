"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values come from, highest priority first:
#
#   1. Environment variables   e.g. OPENAI_API_KEY=sk-abc123
#   2. .env file in the working directory
#   3. config/config.yaml      (see ragdesk.config.loader)
#   4. The defaults below
#
# Field `embedding_dimension` maps to env var `EMBEDDING_DIMENSION`, and
# so on; pydantic-settings matches case-insensitively.
#
# A single Settings instance is built at startup by
# ragdesk.main.build_application and handed to every component that needs
# it.  Business logic never constructs its own Settings.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """ragdesk application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Model Providers ===
    # Empty string = "not configured"; main.py skips providers with empty
    # keys and falls through to the next one in the chain.
    openai_api_key: str = ""
    openai_base_url: str = ""
    anthropic_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"

    # === Models ===
    chat_model: str = ""  # Empty = provider default
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = Field(default=1536, gt=0)
    generation_temperature: float = 0.2
    generation_max_tokens: int = 1500
    ollama_chat_model: str = "llama3.1"
    ollama_embedding_model: str = "nomic-embed-text"

    # === Chunking ===
    chunk_size: int = Field(default=800, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    tokenizer_encoding: str = "cl100k_base"

    # === Retrieval ===
    retrieval_limit: int = Field(default=5, gt=0)
    # Cosine distance in [0, 2]; 1.0 = orthogonal.
    retrieval_distance_threshold: float = Field(default=1.0, ge=0.0, le=2.0)

    # === Processing ===
    embedding_batch_size: int = Field(default=50, gt=0)
    worker_concurrency: int = Field(default=2, gt=0)
    processing_max_attempts: int = Field(default=1, ge=1)
    processing_retry_backoff_s: float = 5.0

    # === Storage ===
    database_path: str = "data/ragdesk.db"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "ragdesk_chunks"

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_llm_providers(self) -> list[str]:
        """Return generator provider names in fallback order, skipping unconfigured ones."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
