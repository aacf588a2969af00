from unittest.mock import patch

import pytest

from creditmemo.core.config import CLAUDE_OPUS
from creditmemo.core.config import settings
from creditmemo.core.exceptions import ConfigurationError
from creditmemo.models.workflow_models import BackendConfig
from creditmemo.services.providers import registry
from creditmemo.services.providers.registry import available_models
from creditmemo.services.providers.registry import get_provider


class _Recorder:
    def __init__(self, model=None, thinking_budget_tokens=None):
        self.model = model
        self.thinking_budget_tokens = thinking_budget_tokens


@pytest.fixture
def recording_providers(monkeypatch):
    providers = {name: type(f"{name.value}Recorder", (_Recorder,), {}) for name in registry.PROVIDERS}
    monkeypatch.setattr(registry, "PROVIDERS", providers)
    return providers


def test_unknown_provider_raises_configuration_error():
    with pytest.raises(ConfigurationError):
        get_provider("openai")


def test_default_provider_is_used_when_none_given(recording_providers, monkeypatch):
    monkeypatch.setattr(settings, "default_provider", "claude")
    provider = get_provider(None)
    assert type(provider).__name__ == "claudeRecorder"


def test_backend_config_overrides_are_passed_through(recording_providers):
    provider = get_provider("claude", BackendConfig(model=CLAUDE_OPUS, thinking_budget_tokens=4096))
    assert provider.model == CLAUDE_OPUS
    assert provider.thinking_budget_tokens == 4096


def test_unsupported_claude_model_is_rejected(recording_providers):
    with pytest.raises(ConfigurationError):
        get_provider("claude", BackendConfig(model="claude-2.0"))


def test_available_models_lists_both_backends():
    with patch.object(settings, "claude_models", ["claude-a", "claude-b"]):
        models = available_models()
    assert models["gemini"] == [settings.gemini_model]
    assert models["claude"] == ["claude-a", "claude-b"]
