"""Application configuration settings.

This module defines the application-wide settings using Pydantic's BaseSettings.
It allows for loading configurations from environment variables and .env files,
providing type validation and default values.
"""

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings

# Default list of CORS allowed origins
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:8000",
    "http://0.0.0.0:8000",
]

CLAUDE_SONNET = "claude-sonnet-4-5-20250929"
CLAUDE_OPUS = "claude-opus-4-1-20250805"


class Settings(BaseSettings):
    """Manages application settings, loading them from environment variables or an .env file.

    Attributes:
        gemini_api_key: API key for the Gemini backend.
        anthropic_api_key: API key for the Claude backend.
        default_provider: Backend used when a request does not name one.
        gemini_model: Gemini model identifier.
        claude_model: Default Claude model identifier.
        claude_models: Claude model identifiers a caller may select.
        default_token_budget: Output token budget for calls without extended reasoning.
        reasoning_token_budget: Output token budget for calls with extended reasoning.
        thinking_budget_tokens: Tokens reserved for extended reasoning.
        phase_timeout_seconds: Optional bound on the backend call of a single phase.
        phase_max_attempts: Attempts per phase for transient transport errors (1 = no retry).
        event_channel_size: Capacity of the bounded event channel.
        max_attachments: Maximum number of attachments per run.
        max_attachment_bytes: Maximum decoded size of one attachment.
        max_total_attachment_bytes: Maximum decoded size of all attachments of a run.
        attachment_excerpt_chars: Base64 characters kept for non-binary attachments.
        api_key: API key securing the HTTP endpoints.
        cors_allowed_origins: List of allowed origins for CORS.
        LLM_CONNECT_TIMEOUT: Backend client connect timeout in seconds.
        LLM_READ_TIMEOUT: Backend client read timeout in seconds.
    """

    gemini_api_key: str | None = Field(default=None)
    anthropic_api_key: str | None = Field(default=None)

    default_provider: str = Field(default="gemini")
    gemini_model: str = Field(default="gemini-2.5-flash")
    claude_model: str = Field(default=CLAUDE_SONNET)
    claude_models: list[str] = Field(default_factory=lambda: [CLAUDE_SONNET, CLAUDE_OPUS])

    default_token_budget: int = Field(default=8000)
    reasoning_token_budget: int = Field(default=16000)
    thinking_budget_tokens: int = Field(default=8000)

    phase_timeout_seconds: float | None = Field(default=None)
    phase_max_attempts: int = Field(default=1, ge=1)
    event_channel_size: int = Field(default=16, ge=1)

    max_attachments: int = Field(default=20)
    max_attachment_bytes: int = Field(default=25 * 1024 * 1024)
    max_total_attachment_bytes: int = Field(default=100 * 1024 * 1024)
    attachment_excerpt_chars: int = Field(default=50)

    api_key: str | None = Field(default=None)

    cors_allowed_origins: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CORS_ORIGINS),
    )

    LLM_CONNECT_TIMEOUT: float = Field(default=10.0, description="Backend client connect timeout in seconds.")
    LLM_READ_TIMEOUT: float = Field(default=180.0, description="Backend client read timeout in seconds.")

    model_config = {
        "env_file": ".env",
        "protected_namespaces": ("settings_",),
        "env_prefix": "",
        "extra": "ignore",
    }

    @field_validator("cors_allowed_origins", mode="before")  # type: ignore
    @classmethod
    def assemble_cors_origins(cls, v: str | list[str] | None) -> list[str]:
        """Assembles the list of CORS allowed origins.

        If 'v' is a string, it splits it by commas. If 'v' is already a list,
        it's used directly. Otherwise, returns the default list of origins.
        """
        if isinstance(v, str) and v:
            return [origin.strip() for origin in v.split(",")]
        elif isinstance(v, list):
            return v
        return list(DEFAULT_CORS_ORIGINS)


settings = Settings()
