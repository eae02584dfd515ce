"""
Tests for the provider factory.
"""

import pytest

from sso_gateway.auth.errors import (
    DecryptionError,
    ProviderConfigurationError,
    UnknownProviderError,
)
from sso_gateway.auth.sso import ProviderFactory
from sso_gateway.auth.sso.oidc import GoogleProvider
from sso_gateway.auth.sso.saml import OktaProvider

GOOGLE_CONFIG = {"clientId": "client-123", "clientSecret": "secret-456"}


@pytest.fixture
def factory(encryption, state_store, mock_idp):
    return ProviderFactory(
        encryption,
        state_store,
        "https://sso.example.com/",
        http_timeout=4.0,
        transport=mock_idp.transport,
    )


class TestProviderFactory:
    def test_decrypts_stored_config(self, factory, encryption):
        provider = factory.create("google", encryption.encrypt(GOOGLE_CONFIG), "store-1", "prov-1")

        assert isinstance(provider, GoogleProvider)
        assert provider.oidc_config.client_id == "client-123"
        assert provider.store_id == "store-1"
        assert provider.provider_id == "prov-1"
        assert provider.http_timeout == 4.0
        assert provider._transport is factory.transport

    def test_accepts_decrypted_mapping(self, factory, saml_config):
        provider = factory.create("OKTA", saml_config, "store-1", "prov-2")
        assert isinstance(provider, OktaProvider)
        assert provider.saml_config.entry_point == saml_config["entryPoint"]

    def test_callback_url(self, factory):
        assert factory.callback_url == "https://sso.example.com/api/auth"
        provider = factory.create("google", GOOGLE_CONFIG, "s", "p")
        assert provider.build_callback_url() == (
            "https://sso.example.com/api/auth/oidc/google/callback"
        )

    def test_missing_callback_base(self, encryption, state_store):
        factory = ProviderFactory(encryption, state_store, None)
        with pytest.raises(ProviderConfigurationError) as exc_info:
            factory.create("google", GOOGLE_CONFIG, "s", "p")
        assert "OAUTH_CALLBACK_URL" in exc_info.value.message

    def test_undecryptable_config(self, factory):
        with pytest.raises(DecryptionError):
            factory.create("google", "not:a:valid-token", "s", "p")

    def test_config_must_be_an_object(self, factory, encryption):
        with pytest.raises(ProviderConfigurationError):
            factory.create("google", encryption.encrypt("just a string"), "s", "p")

    def test_unknown_type(self, factory):
        with pytest.raises(UnknownProviderError):
            factory.create("myspace", {}, "s", "p")

    def test_config_not_mutated(self, factory):
        config = dict(GOOGLE_CONFIG)
        provider = factory.create("google", config, "s", "p")
        provider.config["clientId"] = "changed"
        assert config["clientId"] == "client-123"
