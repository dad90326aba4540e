"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Mnemo configuration. All values come from environment variables."""

    # Anthropic
    anthropic_api_keys: str = Field(default="")
    default_model: str = Field(default="sonnet")
    memory_model: str = Field(default="haiku")
    max_tokens: int = Field(default=4096)

    # Database
    database_path: Path = Field(default=Path("data/mnemo.db"))

    # Turso (hosted libSQL); when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Assistant
    assistant_name: str = Field(default="Mnemo")
    client_name: str = Field(default="mnemo-cli")
    timezone: str = Field(default="")

    # Memory
    memory_extraction_enabled: bool = Field(default=True)
    retrieval_limit: int = Field(default=5)

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

    def get_api_keys(self) -> list[str]:
        """Parse ANTHROPIC_API_KEYS (comma or newline separated) into a list."""
        raw = self.anthropic_api_keys.replace("\n", ",")
        return [key.strip() for key in raw.split(",") if key.strip()]


settings = Settings()
