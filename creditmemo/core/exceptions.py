"""Core custom exceptions for the application."""


class PipelineError(Exception):
    """Base exception for workflow-related errors."""


class ConfigurationError(PipelineError):
    """Exception for configuration-related errors (e.g., missing API keys, unknown providers, missing templates)."""


class LLMError(PipelineError):
    """Raised when a backend call fails (network, auth, rate limit)."""

    def __init__(self, message: str, provider: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class PhaseTimeoutError(LLMError):
    """Raised when a phase's backend call exceeds the configured bound."""


class JSONParsingError(PipelineError):
    """Raised when a backend response cannot be turned into a structured patch."""


class AttachmentError(PipelineError):
    """Raised when an attachment cannot be decoded or exceeds the configured limits."""

