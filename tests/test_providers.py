"""
Tests for the provider table and registry overrides.
"""

import pytest

from provider_resilience._constants import COPILOT_TOKEN_URL, GITHUB_TOKEN_URL
from provider_resilience.exceptions import ProviderConfigError
from provider_resilience.providers import (
    DEFAULT_PROVIDERS,
    ProviderRegistry,
    ProviderSpec,
    env_prefix,
    normalize_provider_id,
)


class TestNormalizeProviderId:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("openai", "openai"),
            ("  OpenAI ", "openai"),
            ("GitHubCopilot", "githubcopilot"),
        ],
    )
    def test_normalizes(self, raw, expected):
        assert normalize_provider_id(raw) == expected

    def test_env_prefix(self):
        assert env_prefix("open-router") == "OPEN_ROUTER"
        assert env_prefix("acme") == "ACME"


class TestDefaultProviders:
    def test_only_copilot_exchanges_tokens(self):
        exchanging = [pid for pid, spec in DEFAULT_PROVIDERS.items() if spec.exchanges_tokens]
        assert exchanging == ["githubcopilot"]

    def test_copilot_endpoints_ranked(self):
        endpoints = DEFAULT_PROVIDERS["githubcopilot"].exchange_endpoints
        assert [endpoint.url for endpoint in endpoints] == [COPILOT_TOKEN_URL, GITHUB_TOKEN_URL]
        assert endpoints[0].authorization("abc") == "Bearer abc"
        assert endpoints[1].authorization("abc") == "token abc"

    def test_keys_match_ids(self):
        for provider_id, spec in DEFAULT_PROVIDERS.items():
            assert spec.id == provider_id


class TestProviderRegistry:
    def test_lookup_is_case_insensitive(self):
        registry = ProviderRegistry()
        assert registry.get("OpenAI") is DEFAULT_PROVIDERS["openai"]
        assert "OPENAI" in registry
        assert 42 not in registry

    def test_unknown_provider_is_synthesized(self):
        spec = ProviderRegistry().get("Acme")
        assert spec.id == "acme"
        assert spec.env_key == "ACME_API_KEY"
        assert spec.oauth_env_var == "ACME_OAUTH_TOKEN"
        assert spec.base_url is None
        assert not spec.exchanges_tokens
        assert "acme" not in ProviderRegistry()

    def test_override_existing_provider(self):
        registry = ProviderRegistry({"Ollama": {"base_url": "http://gpu-box:11434/v1"}})
        spec = registry.get("ollama")
        assert spec.base_url == "http://gpu-box:11434/v1"
        assert spec.env_key == "OLLAMA_API_KEY"

    def test_override_adds_provider(self):
        registry = ProviderRegistry({"acme": {"base_url": "https://api.acme.test/v1"}})
        assert "acme" in registry
        assert registry.get("acme").env_key == "ACME_API_KEY"
        assert "acme" in registry.ids()

    def test_override_with_spec_instance(self):
        custom = ProviderSpec(id="whatever", name="Local", base_url="http://localhost/v1")
        spec = ProviderRegistry({"local": custom}).get("local")
        assert spec.id == "local"
        assert spec.base_url == "http://localhost/v1"

    def test_override_does_not_mutate_defaults(self):
        ProviderRegistry({"openai": {"base_url": "http://proxy/v1"}})
        assert DEFAULT_PROVIDERS["openai"].base_url == "https://api.openai.com/v1"

    def test_unknown_override_key(self):
        with pytest.raises(ProviderConfigError, match="exchange_endpoints"):
            ProviderRegistry({"openai": {"exchange_endpoints": []}})

    def test_override_must_be_mapping(self):
        with pytest.raises(ProviderConfigError, match="must be a mapping"):
            ProviderRegistry({"openai": "http://proxy/v1"})

    def test_ids_sorted(self):
        ids = ProviderRegistry().ids()
        assert ids == sorted(ids)
        assert "githubcopilot" in ids
