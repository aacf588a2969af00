import logging

from creditmemo.core.config import settings
from creditmemo.core.exceptions import ConfigurationError
from creditmemo.models.workflow_models import BackendConfig
from creditmemo.models.workflow_models import ProviderName
from creditmemo.services.providers.base import BackendProvider
from creditmemo.services.providers.claude_provider import ClaudeProvider
from creditmemo.services.providers.gemini_provider import GeminiProvider

logger = logging.getLogger(__name__)

PROVIDERS: dict[ProviderName, type[BackendProvider]] = {
    ProviderName.GEMINI: GeminiProvider,
    ProviderName.CLAUDE: ClaudeProvider,
}


def available_models() -> dict[str, list[str]]:
    return {
        ProviderName.GEMINI.value: [settings.gemini_model],
        ProviderName.CLAUDE.value: list(settings.claude_models),
    }


def get_provider(name: ProviderName | str | None, backend_config: BackendConfig | None = None) -> BackendProvider:
    """Resolve a provider by name and build it with the run's overrides."""
    backend_config = backend_config or BackendConfig()
    try:
        provider_name = ProviderName(name or settings.default_provider)
    except ValueError:
        raise ConfigurationError(f"Unknown provider: {name!r}") from None

    if provider_name is ProviderName.CLAUDE and backend_config.model and backend_config.model not in settings.claude_models:
        raise ConfigurationError(f"Unsupported Claude model: {backend_config.model}")

    provider_cls = PROVIDERS[provider_name]
    logger.debug("Resolved provider %s (model override: %s)", provider_name.value, backend_config.model)
    return provider_cls(
        model=backend_config.model,
        thinking_budget_tokens=backend_config.thinking_budget_tokens,
    )
