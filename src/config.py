"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.errors import ConfigurationError


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Service configuration. All values come from environment variables."""

    # Anthropic
    anthropic_api_key: str = Field(default="")
    claude_model: str = Field(default="claude-sonnet-4-5-20250929")
    llm_max_tokens: int = Field(default=600)
    llm_temperature: float = Field(default=0.3)

    # OpenWeather
    openweather_api_key: str = Field(default="")
    openweather_base_url: str = Field(default="https://api.openweathermap.org/data/2.5")
    weather_timeout_seconds: float = Field(default=10.0)

    # Dates are resolved against this timezone ("today", weekday offsets)
    timezone: str = Field(default="UTC")

    # HTTP server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    static_dir: Path = Field(default=Path("static"))

    # Conversation
    history_window: int = Field(default=6)
    context_lookback_messages: int = Field(default=6)
    max_forecast_days: int = Field(default=5)

    # Validation. With the defaults the threshold sits above the cap, so the
    # regeneration branch never fires until one of them is changed.
    validator_confidence_cap: int = Field(default=65)
    validator_fix_ceiling: int = Field(default=65)
    regenerate_confidence_threshold: int = Field(default=70)

    # Memory store eviction
    memory_ttl_seconds: int = Field(default=6 * 60 * 60)
    memory_max_conversations: int = Field(default=1000)

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

    def missing_required(self) -> list[str]:
        """Names of required environment variables that are empty."""
        missing = []
        if not self.anthropic_api_key.strip():
            missing.append("ANTHROPIC_API_KEY")
        if not self.openweather_api_key.strip():
            missing.append("OPENWEATHER_API_KEY")
        if not self.openweather_base_url.strip():
            missing.append("OPENWEATHER_BASE_URL")
        return missing


def require_settings(config: "Settings | None" = None) -> None:
    """Fail fast when an external endpoint or key is not configured."""
    config = config or settings
    missing = config.missing_required()
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")


settings = Settings()
