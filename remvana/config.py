"""Centralized configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide settings sourced from .env / environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────────────
    remvana_env: str = "development"
    remvana_log_level: str = "INFO"
    remvana_encryption_key: str = ""
    company_name: str = "Remvana Travel Services"

    # ── API Server ───────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "*"

    # ── Database ─────────────────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///data/remvana.db"

    # ── Booking provider (Duffel) ────────────────────────────────────
    duffel_api_key: str = ""
    duffel_base_url: str = "https://api.duffel.com"

    # ── Card issuing (Stripe Issuing) ────────────────────────────────
    stripe_secret_key: str = ""
    stripe_base_url: str = "https://api.stripe.com/v1"

    # ── LLM (proposal notes) ─────────────────────────────────────────
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # ── Workflow tuning ──────────────────────────────────────────────
    wizard_session_ttl_minutes: int = 120
    proposal_validity_days: int = 30

    @field_validator("wizard_session_ttl_minutes", "proposal_validity_days")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    # ── Derived ──────────────────────────────────────────────────────
    @property
    def data_dir(self) -> Path:
        """Return the data directory, creating it if needed."""
        path = Path("data")
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def allowed_origins(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def has_provider(self, provider: str) -> bool:
        """Check if a given external provider has credentials configured."""
        key_map = {
            "duffel": self.duffel_api_key,
            "stripe": self.stripe_secret_key,
            "openai": self.openai_api_key,
        }
        return bool(key_map.get(provider, ""))


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
