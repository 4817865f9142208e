"""Configuration management for tether."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ClassifiedError, ErrorKind

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_TOOL_SERVER_URL = "http://127.0.0.1:8080"


class ModelPrice(BaseModel):
    """Prices per million tokens for one model."""

    input_cost_per_million: float = Field(ge=0)
    output_cost_per_million: float = Field(ge=0)
    currency: str = "USD"


def _default_pricing() -> dict[str, ModelPrice]:
    # Verify against the provider's current price list before relying on the totals.
    return {
        "gemini-2.0-flash": ModelPrice(input_cost_per_million=0.35, output_cost_per_million=0.70),
        "gemini-2.5-pro-preview-03-25": ModelPrice(input_cost_per_million=1.25, output_cost_per_million=10.0),
    }


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="TETHER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Completion endpoint
    api_key: str | None = Field(default=None, description="API key for the completion endpoint")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="OpenAI-compatible API base URL")
    model: str = Field(default=DEFAULT_MODEL, description="Model name sent with every request")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    max_tokens: int = Field(default=1024, ge=1, description="Maximum output tokens per completion")
    request_timeout_seconds: float = Field(default=120.0, gt=0, description="Completion request timeout")

    # Retry
    max_retries: int = Field(default=3, ge=0, description="Retries after the first failed completion attempt")
    initial_retry_delay: float = Field(default=1.0, ge=0, description="First backoff delay in seconds")

    # Tools
    tool_server_url: str = Field(default=DEFAULT_TOOL_SERVER_URL, description="Tool server base URL")
    tool_timeout_seconds: float = Field(default=30.0, gt=0, description="Tool server request timeout")
    max_tool_rounds: int = Field(default=25, ge=0, description="Tool rounds allowed per turn, 0 for no limit")

    # Prompt
    system_prompt_file: Path = Field(default=Path("system_prompt.txt"), description="System prompt file")

    # Cost
    pricing: dict[str, ModelPrice] = Field(default_factory=_default_pricing, description="Price table by model")

    log_level: str = Field(default="WARNING", description="Log level")

    @property
    def currency(self) -> str:
        price = self.pricing.get(self.model)
        return price.currency if price is not None else "USD"

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ClassifiedError(
                ErrorKind.CONFIG_ERROR,
                "TETHER_API_KEY environment variable not set. Please provide your API key.",
            )
        return self.api_key


def load_settings(**overrides: object) -> Settings:
    """Read settings once from the environment and ``.env``."""
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ClassifiedError(ErrorKind.CONFIG_ERROR, details=str(exc), original=exc) from exc
