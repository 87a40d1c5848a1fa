"""Application settings and environment configuration loading."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BACKEND_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_ENV_FILE = BACKEND_ROOT / ".env"
LINEAR_API_KEY_PLACEHOLDERS = frozenset({"undefined", "null"})


class Settings(BaseSettings):
    """Typed runtime configuration sourced from environment variables.

    Built once at startup and handed to each component; instances are frozen.
    """

    model_config = SettingsConfigDict(
        # Load `backend/.env` regardless of current working directory.
        env_file=[DEFAULT_ENV_FILE, ".env"],
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    environment: str = "dev"
    database_url: str = "sqlite+aiosqlite:///./data/customer_requests.sqlite"
    db_auto_create: bool = False

    # Lifecycle API credential
    api_bearer_token: str = ""

    # Webhook credentials (either may be set; neither means accept-all)
    webhook_bearer_token: str = ""
    linear_webhook_secret: str = ""
    webhook_conditional_updates: bool = True
    webhook_update_max_attempts: int = Field(default=3, ge=1, le=10)

    # Linear issue tracker
    linear_api_key: str = ""
    linear_api_url: str = "https://api.linear.app/graphql"
    linear_timeout_seconds: float = Field(default=10.0, gt=0)
    linear_team_id: str = ""
    linear_default_label_id: str = ""

    # Text generation (OpenAI-compatible chat completions)
    enable_ai: bool = False
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = Field(default=20.0, gt=0)

    # Collection paging
    list_default_limit: int = Field(default=20, ge=1)
    list_max_limit: int = Field(default=100, ge=1)

    # Logging
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"
    log_use_utc: bool = False

    @model_validator(mode="after")
    def _defaults(self) -> Self:
        if self.list_default_limit > self.list_max_limit:
            raise ValueError("LIST_DEFAULT_LIMIT must not exceed LIST_MAX_LIMIT.")
        # In dev, create the table at startup unless told otherwise.
        if "db_auto_create" not in self.model_fields_set and self.environment == "dev":
            object.__setattr__(self, "db_auto_create", True)
        return self

    def linear_api_key_value(self) -> str | None:
        """Return the configured Linear key, treating blank/placeholder values as unset."""
        raw = self.linear_api_key.strip()
        if not raw or raw.lower() in LINEAR_API_KEY_PLACEHOLDERS:
            return None
        return raw

    def ai_enabled(self) -> bool:
        """Text generation runs only when flagged on and a key is present."""
        return self.enable_ai and bool(self.openai_api_key.strip())

    def webhook_auth_configured(self) -> bool:
        return bool(self.webhook_bearer_token.strip() or self.linear_webhook_secret.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance, constructed on first use."""
    return Settings()
