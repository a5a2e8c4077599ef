"""Application settings loaded from environment variables via pydantic-settings.

Values come from environment variables first, then from a ``.env`` file in
the working directory, then from the defaults below.  Field ``openai_api_key``
maps to the ``OPENAI_API_KEY`` variable and so on.

Tuning knobs for chunking, retrieval and chat live in ``config/config.yaml``
(see :mod:`thinkfolio.config.loader`); this class only holds credentials,
model overrides, paths and server options.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """ThinkFolio application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === LLM / Embedding Providers ===
    # Empty string = "not configured"; provider selection in main.py
    # skips providers with empty keys and falls through to the next.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_text_model: str = ""
    openai_embedding_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = ""
    ollama_base_url: str = "http://localhost:11434"

    # === Storage ===
    database_path: str = "data/thinkfolio.db"
    storage_dir: str = "data/storage"
    storage_bucket: str = "papers"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    config_path: str = "config/config.yaml"

    def get_available_llm_providers(self) -> list[str]:
        """Return the LLM provider names that have credentials or a URL configured."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
