"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (in priority
# order):
#
#   1. **Environment variables**: e.g. OPENAI_API_KEY=sk-abc123
#   2. **.env file**: key=value lines in the project root .env file
#
# Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  Defaults
# below apply when neither source sets a value.
#
# List-valued settings (``transcript_languages``) are read from the
# environment as JSON, e.g. TRANSCRIPT_LANGUAGES='["en", "en-GB"]'.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """MindLens application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === LLM / embedding providers ===
    # Empty string = "not configured" → provider selection in main.py skips it.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_text_model: str = ""
    openai_embedding_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = ""
    # Local ONNX embedding model used when no OpenAI key is configured.
    fastembed_model: str = ""

    # === Answer generation ===
    generation_temperature: float = 0.7
    generation_max_tokens: int = 2000

    # === Vector index ===
    # "chromadb" persists to disk; "memory" keeps vectors in-process.
    vector_store_backend: str = "chromadb"
    chromadb_persist_dir: str = "./data/chromadb"
    # Tenant namespaces are named "<prefix>-<owner_id>".
    namespace_prefix: str = "mindlens"

    # === Chunking / retrieval ===
    chunk_size: int = 1000
    chunk_overlap: int = 200
    retrieval_top_k: int = 6

    # === Source loaders ===
    web_fetch_timeout: float = 30.0
    web_max_depth: int = 2
    web_max_pages: int = 50
    github_branch: str = "main"
    transcript_languages: list[str] = ["en"]

    # === Metadata store / uploads ===
    metadata_db_path: str = "data/mindlens.db"
    upload_dir: str = "data/uploads"
    max_upload_bytes: int = 50 * 1024 * 1024

    # === Identity ===
    # Empty secret = development mode: the X-Owner-Id header is trusted.
    auth_secret: str = ""
    auth_token_ttl_hours: int = 168

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    def get_available_llm_providers(self) -> list[str]:
        """Return a list of LLM provider names that have non-empty API keys configured."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.anthropic_api_key:
            providers.append("anthropic")
        return providers
