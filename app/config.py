"""Application configuration and settings management."""

from __future__ import annotations

from datetime import timedelta
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="CONFLICTS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Resource Conflict Service"
    debounce_ms: int = Field(
        default=250,
        ge=0,
        le=5000,
        description="Quiet period before a changed candidate is re-checked.",
    )
    severity_escalation_ratio: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Overlap share of the candidate window that raises severity one step.",
    )
    seed_sample_orders: bool = Field(
        default=True,
        description="Pre-load the in-memory repository with sample orders.",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @property
    def debounce(self) -> timedelta:
        return timedelta(milliseconds=self.debounce_ms)


settings = Settings()
