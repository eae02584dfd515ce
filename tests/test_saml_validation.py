"""
Tests for SAML response validation with python3-saml unmocked.

Responses come from conftest.MockSAMLIdP: real XML, signed with a
certificate generated per session, validated by the engine in strict mode.
"""

import time
from urllib.parse import parse_qs, urlparse

import pytest
from onelogin.saml2.utils import OneLogin_Saml2_Utils

from sso_gateway.auth.errors import InvalidSamlResponseError
from sso_gateway.auth.sso.saml import OktaProvider, SalesforceProvider
from sso_gateway.auth.sso.saml.base import (
    EXPIRED_MESSAGE,
    REPLAY_MESSAGE,
    SIGNATURE_MESSAGE,
)
from sso_gateway.types.sso import AuthCallbackParams

CALLBACK_BASE = "https://sso.example.com/api/auth"
OKTA_ACS = f"{CALLBACK_BASE}/saml/okta/callback"


@pytest.fixture
def provider(saml_idp, state_store):
    return OktaProvider(saml_idp.provider_config(), CALLBACK_BASE, "store-1", "prov-1", state_store)


async def start_login(provider, state_store):
    result = await provider.initiate("/account")
    flow = await state_store.get_flow_state(result.state)
    return result, flow.request_id


async def post_response(provider, relay_state, saml_response):
    return await provider.handle_callback(
        AuthCallbackParams(saml_response=saml_response, relay_state=relay_state)
    )


class TestAuthnRequest:
    async def test_redirect_carries_request_and_relay_state(self, provider, state_store, saml_idp):
        result, request_id = await start_login(provider, state_store)

        assert result.redirect_url.startswith(saml_idp.sso_url)
        query = parse_qs(urlparse(result.redirect_url).query)
        assert query["RelayState"] == [result.state]
        assert saml_idp.request_id_from_redirect(result.redirect_url) == request_id

        request_xml = OneLogin_Saml2_Utils.decode_base64_and_inflate(query["SAMLRequest"][0])
        if isinstance(request_xml, bytes):
            request_xml = request_xml.decode("utf-8")
        assert f'AssertionConsumerServiceURL="{OKTA_ACS}"' in request_xml
        assert "https://sso.example.com/sp" in request_xml


class TestSignedResponses:
    async def test_valid_response(self, provider, state_store, saml_idp):
        result, request_id = await start_login(provider, state_store)
        saml_response = saml_idp.build_response(request_id, OKTA_ACS)

        auth_result = await post_response(provider, result.state, saml_response)

        assert auth_result.user.id == "00u1abcd"
        assert auth_result.user.email == "jane@example.com"
        assert auth_result.user.first_name == "Jane"
        assert auth_result.user.last_name == "Doe"
        assert auth_result.user.raw_profile["sessionIndex"] == "_session-1"

    async def test_response_cannot_be_replayed(self, provider, state_store, saml_idp):
        result, request_id = await start_login(provider, state_store)
        saml_response = saml_idp.build_response(request_id, OKTA_ACS)
        await post_response(provider, result.state, saml_response)

        with pytest.raises(InvalidSamlResponseError):
            await post_response(provider, result.state, saml_response)

    async def test_signature_from_another_key(
        self, provider, state_store, saml_idp, other_certificate
    ):
        result, request_id = await start_login(provider, state_store)
        saml_response = saml_idp.build_response(
            request_id, OKTA_ACS, signing_key=other_certificate
        )

        with pytest.raises(InvalidSamlResponseError) as exc_info:
            await post_response(provider, result.state, saml_response)
        assert exc_info.value.message == SIGNATURE_MESSAGE

    async def test_response_to_another_request(self, provider, state_store, saml_idp):
        result, _ = await start_login(provider, state_store)
        saml_response = saml_idp.build_response("ONELOGIN_someone-else", OKTA_ACS)

        with pytest.raises(InvalidSamlResponseError) as exc_info:
            await post_response(provider, result.state, saml_response)
        assert exc_info.value.message == REPLAY_MESSAGE

    async def test_expired_assertion(self, provider, state_store, saml_idp):
        result, request_id = await start_login(provider, state_store)
        issued_two_hours_ago = int(time.time()) - 7200
        saml_response = saml_idp.build_response(
            request_id, OKTA_ACS, issued_at=issued_two_hours_ago
        )

        with pytest.raises(InvalidSamlResponseError) as exc_info:
            await post_response(provider, result.state, saml_response)
        assert exc_info.value.message == EXPIRED_MESSAGE

    async def test_response_for_another_acs(self, provider, state_store, saml_idp):
        result, request_id = await start_login(provider, state_store)
        saml_response = saml_idp.build_response(
            request_id, f"{CALLBACK_BASE}/saml/azure/callback"
        )

        with pytest.raises(InvalidSamlResponseError):
            await post_response(provider, result.state, saml_response)

    async def test_provider_attribute_names(self, saml_idp, state_store):
        provider = SalesforceProvider(
            saml_idp.provider_config(), CALLBACK_BASE, "store-1", "prov-sf", state_store
        )
        result, request_id = await start_login(provider, state_store)
        saml_response = saml_idp.build_response(
            request_id,
            f"{CALLBACK_BASE}/saml/salesforce/callback",
            name_id="005xx000001",
            attributes={
                "email": ["ops@example.com"],
                "first_name": ["Ops"],
                "username": ["ops@example.com.sandbox"],
            },
        )

        auth_result = await post_response(provider, result.state, saml_response)

        assert auth_result.user.id == "005xx000001"
        assert auth_result.user.first_name == "Ops"
        assert auth_result.user.name == "ops@example.com.sandbox"


class TestMetadata:
    def test_generated_metadata(self, provider):
        metadata = provider.generate_metadata()

        assert 'entityID="https://sso.example.com/sp"' in metadata
        assert f'Location="{OKTA_ACS}"' in metadata
        assert "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST" in metadata

    def test_metadata_with_signing_certificate(self, saml_idp, state_store, sp_certificate):
        sp_key, sp_cert = sp_certificate
        provider = OktaProvider(
            saml_idp.provider_config(privateKey=sp_key, signingCert=sp_cert),
            CALLBACK_BASE,
            "store-1",
            "prov-1",
            state_store,
        )

        metadata = provider.generate_metadata()

        assert 'AuthnRequestsSigned="true"' in metadata
        assert "X509Certificate" in metadata
