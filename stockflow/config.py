"""Application configuration objects."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional
import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings used to configure the application."""

    model_config = SettingsConfigDict(
        env_prefix="STOCKFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(
        default="StockFlow AI",
        description="Human friendly name shown in reports and exports.",
    )
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Deployment environment flag.",
    )
    secret_key: str = Field(
        default="stockflow-secret-key",
        description="Flask session signing key.",
    )
    storage_path: str = Field(
        default="stockflow_data.json",
        description="JSON document holding the persisted collections.",
    )
    log_level: str = Field(
        default="INFO",
        description="Level applied to the 'stockflow' logger.",
    )
    max_shared_sessions: int = Field(
        default=128,
        ge=1,
        description="Shared snapshot sessions kept in memory before the oldest is dropped.",
    )
    report_api_key: Optional[str] = Field(
        default=None,
        description="Credential for the text generation API used by AI reports.",
    )
    report_model: str = Field(
        default="gemini-2.5-flash",
        description="Model name passed to the text generation API.",
    )
    report_endpoint: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
        description="Text generation endpoint; '{model}' is replaced with report_model.",
    )
    report_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for an AI report before giving up.",
    )

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"Unknown log level '{value}'")
        return normalized


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of :class:`Settings`."""

    return Settings()


__all__ = ["Settings", "get_settings"]
