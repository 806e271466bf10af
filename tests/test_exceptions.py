"""
Tests for provider resilience exceptions.

This module tests the exception classes, their attributes,
and message formatting.
"""

import pytest

from provider_resilience.exceptions import (
    CatalogFetchError,
    CredentialMissingError,
    NoCredentialError,
    ProviderConfigError,
    ProviderResilienceError,
    TokenExchangeError,
)


class TestProviderResilienceError:
    """Tests for base ProviderResilienceError."""

    def test_base_exception(self):
        """Base exception should be catchable."""
        with pytest.raises(ProviderResilienceError):
            raise ProviderResilienceError("Test error")

    def test_inheritance(self):
        """All specific exceptions should inherit from base."""
        assert issubclass(CredentialMissingError, ProviderResilienceError)
        assert issubclass(NoCredentialError, CredentialMissingError)
        assert issubclass(TokenExchangeError, ProviderResilienceError)
        assert issubclass(CatalogFetchError, ProviderResilienceError)
        assert issubclass(ProviderConfigError, ProviderResilienceError)


class TestCredentialMissingError:
    """Tests for CredentialMissingError and NoCredentialError."""

    def test_default_message(self):
        """Should name the provider."""
        err = CredentialMissingError("openai")
        assert err.provider_id == "openai"
        assert str(err) == "No credential configured for provider: openai"

    def test_custom_message(self):
        err = NoCredentialError("groq", "log in first")
        assert str(err) == "log in first"
        assert err.provider_id == "groq"

    def test_caught_by_parent(self):
        """NoCredentialError should be caught as CredentialMissingError."""
        with pytest.raises(CredentialMissingError):
            raise NoCredentialError("openai")


class TestTokenExchangeError:
    """Tests for TokenExchangeError."""

    def test_with_status_code(self):
        """Should include the status in the message."""
        err = TokenExchangeError("https://example.test/token", status_code=401)
        assert err.url == "https://example.test/token"
        assert err.status_code == 401
        assert "401" in str(err)

    def test_without_status_code(self):
        err = TokenExchangeError("https://example.test/token")
        assert err.status_code is None
        assert str(err) == "Token exchange at https://example.test/token failed"

    def test_custom_message_wins(self):
        err = TokenExchangeError("https://example.test/token", status_code=500, message="boom")
        assert str(err) == "boom"
        assert err.status_code == 500


class TestCatalogFetchError:
    """Tests for CatalogFetchError."""

    def test_default_message(self):
        err = CatalogFetchError("mistral")
        assert err.provider_id == "mistral"
        assert err.status_code is None
        assert "mistral" in str(err)

    def test_with_status_code(self):
        err = CatalogFetchError("mistral", "listing failed", status_code=503)
        assert err.status_code == 503
        assert str(err) == "listing failed"


class TestProviderConfigError:
    """Tests for ProviderConfigError."""

    def test_is_value_error(self):
        """Config errors should also be catchable as ValueError."""
        with pytest.raises(ValueError):
            raise ProviderConfigError("support_timeout must be positive, got 0")
