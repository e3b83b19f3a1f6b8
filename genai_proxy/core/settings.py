from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from genai_proxy.core.errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="Tiny GenAI Proxy", alias="APP_NAME")
    environment: Literal["local", "dev", "staging", "prod", "test"] = Field(
        default="local", alias="ENVIRONMENT"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    gemini_default_model: str = Field(
        default="gemini-2.0-flash", alias="GEMINI_DEFAULT_MODEL"
    )
    gemini_evaluation_model: str = Field(
        default="gemini-2.0-flash", alias="GEMINI_EVALUATION_MODEL"
    )

    allowed_origin: str | None = Field(default=None, alias="ALLOWED_ORIGIN")

    rate_limit_max_requests: int = Field(
        default=5, ge=1, alias="RATE_LIMIT_MAX_REQUESTS"
    )
    rate_limit_window_seconds: float = Field(
        default=60.0, gt=0, alias="RATE_LIMIT_WINDOW_SECONDS"
    )

    # "redact" withholds the flagged text entirely; "context" quotes it
    # inside the marker turn so the assistant can refer to it.
    mitigation_policy: Literal["redact", "context"] = Field(
        default="redact", alias="MITIGATION_POLICY"
    )
    expose_classifier_reason: bool = Field(
        default=True, alias="EXPOSE_CLASSIFIER_REASON"
    )

    def require_gemini_api_key(self) -> str:
        if not self.gemini_api_key:
            raise ConfigurationError(
                "Gemini API key is not configured. "
                "Set GEMINI_API_KEY or GOOGLE_API_KEY."
            )
        return self.gemini_api_key


@lru_cache
def get_settings() -> Settings:
    return Settings()
