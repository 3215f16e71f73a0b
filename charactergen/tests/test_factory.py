import pytest

from charactergen.adapters import adapter as registry
from charactergen.adapters.adapter import available_providers, create_provider, register_provider
from charactergen.adapters.anthropic_adapter import AnthropicAdapter
from charactergen.adapters.mock_adapter import MockAdapter
from charactergen.adapters.openai_adapter import OpenAIAdapter
from charactergen.config import ProviderConfig, Settings
from charactergen.exceptions import ConfigurationError
from charactergen.route_logic import select_image_provider, select_provider


def test_builtin_providers_are_registered():
    assert {"anthropic", "openai", "mock"} <= set(available_providers())


@pytest.mark.parametrize("name, cls", [("anthropic", AnthropicAdapter), ("OpenAI", OpenAIAdapter)])
def test_live_providers_are_created_by_name(name, cls, live_config):
    client = create_provider(name, live_config)
    try:
        assert isinstance(client, cls)
        assert client.config is live_config
    finally:
        client.close()


def test_mock_needs_no_config():
    assert isinstance(create_provider("mock"), MockAdapter)


def test_unknown_provider_is_a_configuration_error():
    with pytest.raises(ConfigurationError) as exc:
        create_provider("cohere", ProviderConfig())
    assert exc.value.detail == "unknown provider: cohere"


def test_constructor_errors_are_wrapped():
    with pytest.raises(ConfigurationError) as exc:
        create_provider("anthropic", ProviderConfig(model="claude"))
    assert exc.value.detail == "failed to initialize provider: anthropic API key is not configured"


def test_client_options_are_passed_through(live_config, sleeps):
    client = create_provider("openai", live_config, sleep=sleeps.append)
    try:
        assert client._sleep == sleeps.append
    finally:
        client.close()


def test_new_providers_can_be_registered(monkeypatch):
    monkeypatch.setitem(registry.PROVIDERS, "echo", None)

    def build(config, **options):
        return MockAdapter(config, **options)

    register_provider("Echo", build)
    assert isinstance(create_provider("echo"), MockAdapter)


# ─── Settings → provider selection ────────────────────────────────────────────

def make_settings(**overrides):
    return Settings(_env_file=None, **overrides)


def test_select_provider_uses_configured_name():
    settings = make_settings(
        llm_provider="Anthropic",
        anthropic_api_key="sk-ant",
        anthropic_model="claude-test",
        llm_max_retries=5,
        llm_rate_limit_requests=10,
    )
    name, config = select_provider(settings)
    assert name == "anthropic"
    assert config.api_key == "sk-ant"
    assert config.model == "claude-test"
    assert config.max_retries == 5
    assert config.rate_limit_requests == 10
    assert config.endpoint_url == settings.anthropic_api_url


def test_select_provider_override_wins():
    name, config = select_provider(make_settings(llm_provider="mock", openai_api_key="sk"), "openai")
    assert name == "openai"
    assert config.api_key == "sk"


def test_settings_reject_empty_provider_and_bad_log_level():
    with pytest.raises(ValueError):
        make_settings(llm_provider="  ")
    with pytest.raises(ValueError):
        make_settings(log_level="chatty")


def test_image_provider_selection():
    assert select_image_provider(make_settings()) is None

    name, config = select_image_provider(make_settings(image_provider="FAL", fal_api_key="fal-key"))
    assert name == "fal"
    assert config.api_key == "fal-key"

    name, config = select_image_provider(make_settings(image_provider="dalle", openai_api_key="sk", dalle_quality="hd"))
    assert name == "dalle"
    assert config.quality == "hd"
