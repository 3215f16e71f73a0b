# charactergen/config.py

"""
Configuration for the character generation provider layer.

Two kinds of configuration live here:

- `Settings`: process-wide runtime configuration read once from the
  environment / `.env` via pydantic-settings (provider selection, API keys,
  retry and rate-limit knobs, template location, logging).
- `ProviderConfig` / `ImageProviderConfig`: the immutable connection
  parameters handed to a single client. Clients and the provider factory only
  ever receive these explicit objects; they never read `settings` themselves.

🔐 API keys come from the environment only and are excluded from reprs.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PROMPTS_DIR = Path(__file__).parent / "templates"

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
DALLE_API_URL = "https://api.openai.com/v1/images/generations"
FAL_API_URL = "https://fal.run"


class ProviderConfig(BaseModel):
    """
    Connection parameters for one LLM backend.

    `api_key` may be empty for the mock provider; live providers check it
    (and `model`) when they are constructed.
    """
    model_config = ConfigDict(frozen=True)

    api_key: Optional[str] = Field(default=None, repr=False)
    model: str = ""
    max_tokens: int = Field(default=4096, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    endpoint_url: str = ""

    # ─── Transport / resilience ────────────────────────────────────────────────
    timeout: float = Field(default=30.0, gt=0)          # per attempt, seconds
    max_retries: int = Field(default=3, ge=0)           # attempts beyond the first
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)
    rate_limit_requests: int = Field(default=50, ge=1)
    rate_limit_window: float = Field(default=60.0, gt=0)


class ImageProviderConfig(BaseModel):
    """Connection parameters for one image-generation backend."""
    model_config = ConfigDict(frozen=True)

    api_key: Optional[str] = Field(default=None, repr=False)
    model: str = ""
    endpoint_url: str = ""
    size: str = "1024x1024"
    quality: str = "standard"
    style: str = "vivid"
    timeout: float = Field(default=120.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)


class Settings(BaseSettings):
    # ─── Environment ───────────────────────────────────────────────────────────
    app_env: str = "development"          # selects environment-specific prompt templates
    log_level: str = "INFO"

    # ─── Provider Selection ────────────────────────────────────────────────────
    llm_provider: str = "mock"            # anthropic | openai | mock
    image_provider: Optional[str] = None  # dalle | fal, unset disables portraits

    # ─── Anthropic ─────────────────────────────────────────────────────────────
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    anthropic_max_tokens: int = 4096
    anthropic_temperature: float = 0.7
    anthropic_api_url: str = ANTHROPIC_API_URL

    # ─── OpenAI ────────────────────────────────────────────────────────────────
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4-turbo-preview"
    openai_max_tokens: int = 4096
    openai_temperature: float = 0.7
    openai_api_url: str = OPENAI_API_URL

    # ─── Image Generation ──────────────────────────────────────────────────────
    dalle_model: str = "dall-e-3"
    dalle_size: str = "1024x1024"
    dalle_quality: str = "standard"
    dalle_style: str = "vivid"
    dalle_api_url: str = DALLE_API_URL
    fal_api_key: Optional[str] = None
    fal_model: str = "fal-ai/recraft-v3"
    fal_api_url: str = FAL_API_URL

    # ─── Retry & Rate Limiting ─────────────────────────────────────────────────
    llm_request_timeout: float = 30.0
    llm_max_retries: int = 3
    llm_retry_base_delay: float = 1.0
    llm_retry_max_delay: float = 30.0
    llm_rate_limit_requests: int = 50     # requests per window, per client instance
    llm_rate_limit_window: float = 60.0   # seconds

    # ─── API Limits ────────────────────────────────────────────────────────────
    max_input_chars: int = 20000          # total message content per /v1/chat request

    # ─── Metrics ───────────────────────────────────────────────────────────────
    prometheus_multiproc_dir: Optional[str] = None  # set when several workers share one /metrics

    # ─── Prompt Templates ──────────────────────────────────────────────────────
    prompts_dir: Path = DEFAULT_PROMPTS_DIR

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ─── Validators ────────────────────────────────────────────────────────────
    @field_validator("llm_provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("llm_provider must not be empty")
        return v

    @field_validator("image_provider")
    @classmethod
    def normalize_image_provider(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unsupported log level: {v}")
        return v


# Instantiate a singleton config object, importable throughout the app
settings = Settings()
