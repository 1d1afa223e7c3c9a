"""Application settings loaded from environment variables."""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Memory chat configuration. All values come from environment variables."""

    # OpenAI
    openai_api_key: str = Field(default="")
    chat_model: str = Field(default="gpt-4o")
    extraction_model: str = Field(default="gpt-4o")
    embedding_model: str = Field(default="text-embedding-3-small")
    embedding_dimensions: int = Field(default=1536)

    # Realtime API
    realtime_url: str = Field(default="wss://api.openai.com/v1/realtime")
    realtime_model: str = Field(default="gpt-4o-realtime-preview-2024-10-01")

    # Qdrant
    qdrant_url: str = Field(default="http://localhost:6333")
    qdrant_api_key: str = Field(default="")
    memory_collection: str = Field(default="chat_memories")
    memory_reset_on_start: bool = Field(default=False)

    # Memory behaviour
    memory_extraction_enabled: bool = Field(default=True)
    memory_list_limit: int = Field(default=50)
    chat_memory_limit: int = Field(default=3)

    # HTTP server
    server_host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    cors_origin: str = Field(default="*")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_realtime_endpoint(self) -> str:
        """Full upstream WebSocket URL including the model query parameter."""
        return f"{self.realtime_url}?model={self.realtime_model}"


settings = Settings()
