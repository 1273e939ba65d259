"""
Application configuration using Pydantic settings.
"""

from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class FxBand(BaseModel):
    """Accepted local-currency range per one unit of a foreign currency."""
    min: Decimal
    max: Decimal


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_name: str = "LedgerMatch"
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./data/db.sqlite"

    # Currency
    local_currency: str = "ILS"
    # Wide bands standing in for unknown historical FX rates
    fx_tolerance_bands: Dict[str, FxBand] = {
        "USD": FxBand(min=Decimal("3.4"), max=Decimal("4.0")),
        "EUR": FxBand(min=Decimal("3.6"), max=Decimal("4.3")),
        "GBP": FxBand(min=Decimal("4.2"), max=Decimal("5.0")),
    }
    fx_rate_url: Optional[str] = None  # e.g. https://api.frankfurter.app/latest
    fx_rate_timeout_seconds: float = 5.0

    # SMS ingestion
    sms_duplicate_window_minutes: int = 60
    sms_stale_days: int = 30

    # AI Provider
    ai_provider: str = "openrouter"  # openrouter, ollama, openai, anthropic
    ai_model: str = "anthropic/claude-3-haiku"
    ai_base_url: Optional[str] = None  # For Ollama: http://localhost:11434

    # API Keys (optional based on provider)
    openrouter_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # AI categorization
    ai_auto_categorize: bool = True
    classifier_chunk_size: int = 50
    classifier_timeout_seconds: float = 30.0

    # Server
    frontend_url: str = "http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )


# Global settings instance
settings = Settings()
