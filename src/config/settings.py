"""Application settings loaded from environment variables via pydantic-settings.

Values come from two sources, environment variables first and then the
project-root ``.env`` file.  Field ``openai_api_key`` maps to the
``OPENAI_API_KEY`` variable, and so on.

Knowledge base tuning (chunk sizes, thresholds, executor sizes) lives in
``config/config.yaml``; the optional ``KB_*`` fields below override single
values from it at deploy time without editing the YAML.  ``None`` means
"keep the YAML value".
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Knowledge base service settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Generation / embeddings ===
    # Empty string = "not configured"; the providers report themselves
    # unavailable and the health endpoint says so.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (TogetherAI, vLLM, ...)
    openai_text_model: str = ""
    openai_embedding_model: str = ""
    generation_temperature: float = 0.3
    generation_max_tokens: int = 2000

    # === Vector index ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "knowledge_base"

    # === State store ===
    database_path: str = "data/knowledge_base.db"

    # === Identity ===
    # Header carrying the authenticated caller id, set by the gateway in
    # front of this service.
    user_id_header: str = "X-User-Id"

    # === Config file ===
    config_path: str = "config/config.yaml"

    # === Knowledge base overrides (see config/config.yaml) ===
    kb_storage_path: str | None = None
    kb_max_file_size: int | None = None
    kb_chunk_size: int | None = None
    kb_chunk_overlap: int | None = None
    kb_batch_size: int | None = None
    kb_max_results: int | None = None
    kb_similarity_threshold: float | None = None
    kb_max_history: int | None = None

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]
