"""
Pytest configuration and shared fixtures for SSO gateway tests.

This module provides common fixtures used across all test files:
- Environment setup (keys, callback URL)
- In-memory state store
- A mock OIDC identity provider served through httpx.MockTransport
- A mock SAML identity provider issuing responses signed with a real certificate
"""

import base64
import datetime
import json
import os
import sys
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import pytest

# Environment setup before any imports
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["ENCRYPTION_KEY"] = "0123456789abcdef" * 4
os.environ["PASSWORD_PEPPER"] = "test-pepper-0123456789"
os.environ["OAUTH_CALLBACK_URL"] = "https://sso.example.com"
os.environ.pop("REDIS_URL", None)
os.environ.pop("SENTRY_DSN", None)

# Ensure project root is in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import httpx
import jwt
from jwt.algorithms import RSAAlgorithm
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from onelogin.saml2.constants import OneLogin_Saml2_Constants
from onelogin.saml2.utils import OneLogin_Saml2_Utils
from onelogin.saml2.xml_utils import OneLogin_Saml2_XML

TEST_ENCRYPTION_KEY = os.environ["ENCRYPTION_KEY"]
CALLBACK_BASE = "https://sso.example.com/api/auth"


class MockOIDCProvider:
    """
    In-process OIDC identity provider.

    Serves discovery, JWKS, token and userinfo endpoints and signs ID tokens
    with a freshly generated RSA key. Tests tweak ``id_token_claims``,
    ``token_status`` or ``userinfo`` to drive failure paths.
    """

    def __init__(self, issuer: str = "https://idp.example.com", kid: str = "test-key"):
        self.issuer = issuer
        self.kid = kid
        self.private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        self.client_id = "client-123"
        self.client_secret = "secret-456"
        self.id_token_claims: Dict[str, Any] = {}
        self.include_id_token = True
        self.token_status = 200
        self.discovery_status = 200
        self.userinfo: Dict[str, Any] = {}
        self.requests: List[httpx.Request] = []
        self.token_requests: List[Dict[str, List[str]]] = []
        self.discovery_overrides: Dict[str, Any] = {}
        # Nonce echoed into the next issued ID token
        self.pending_nonce: Optional[str] = None

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def discovery(self) -> Dict[str, Any]:
        document = {
            "issuer": self.issuer,
            "authorization_endpoint": f"{self.issuer}/authorize",
            "token_endpoint": f"{self.issuer}/oauth/token",
            "userinfo_endpoint": f"{self.issuer}/userinfo",
            "jwks_uri": f"{self.issuer}/.well-known/jwks.json",
        }
        document.update(self.discovery_overrides)
        return document

    def jwks(self) -> Dict[str, Any]:
        jwk = json.loads(RSAAlgorithm.to_jwk(self.private_key.public_key()))
        jwk.update({"use": "sig", "alg": "RS256"})
        if self.kid:
            jwk["kid"] = self.kid
        return {"keys": [jwk]}

    def sign_id_token(self, nonce: Optional[str], **overrides: Any) -> str:
        now = int(time.time())
        claims = {
            "iss": self.issuer,
            "sub": "user-1",
            "aud": self.client_id,
            "iat": now,
            "exp": now + 300,
            "email": "jane@example.com",
            "given_name": "Jane",
            "family_name": "Doe",
            "name": "Jane Doe",
            "email_verified": True,
        }
        if nonce is not None:
            claims["nonce"] = nonce
        claims.update(self.id_token_claims)
        claims.update(overrides)
        headers = {"kid": self.kid} if self.kid else None
        return jwt.encode(claims, self.private_key, algorithm="RS256", headers=headers)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/.well-known/openid-configuration"):
            if self.discovery_status != 200:
                return httpx.Response(self.discovery_status, json={"error": "unavailable"})
            return httpx.Response(200, json=self.discovery())
        if path.endswith("/.well-known/jwks.json"):
            return httpx.Response(200, json=self.jwks())
        if path.endswith("/oauth/token"):
            form = parse_qs(request.content.decode())
            self.token_requests.append(form)
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            body = {
                "access_token": "access-abc",
                "token_type": "Bearer",
                "expires_in": 3600,
                "refresh_token": "refresh-def",
            }
            if self.include_id_token:
                body["id_token"] = self.sign_id_token(self.pending_nonce)
            return httpx.Response(200, json=body)
        if path.endswith("/userinfo"):
            return httpx.Response(200, json=self.userinfo)
        return httpx.Response(404, json={"error": "not_found"})


@pytest.fixture
def memory_backend():
    from sso_gateway.storage.state_store import MemoryStateBackend

    return MemoryStateBackend()


@pytest.fixture
def state_store(memory_backend):
    from sso_gateway.storage.state_store import SSOStateStore

    return SSOStateStore(memory_backend)


@pytest.fixture
def encryption():
    from sso_gateway.services.encryption import EncryptionService

    return EncryptionService(TEST_ENCRYPTION_KEY)


@pytest.fixture
def mock_idp():
    return MockOIDCProvider()


@pytest.fixture
def saml_config() -> Dict[str, Any]:
    return {
        "entryPoint": "https://idp.example.com/sso/saml",
        "issuer": "https://sso.example.com/sp",
        "cert": "-----BEGIN CERTIFICATE-----\nMIIBfakecert\n-----END CERTIFICATE-----\n",
    }


# =============================================================================
# SAML Identity Provider
# =============================================================================


SP_ENTITY_ID = "https://sso.example.com/sp"


def make_self_signed_certificate(common_name: str) -> Tuple[str, str]:
    """Return (private key PEM, certificate PEM) for a fresh RSA key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=365))
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    ).decode()
    return key_pem, certificate.public_bytes(serialization.Encoding.PEM).decode()


class MockSAMLIdP:
    """
    In-process SAML identity provider.

    Holds a self-signed certificate and issues Responses whose Assertion and
    Response are both signed with python3-saml's own signing helper, so the
    gateway validates them exactly as it would a real IdP's.
    """

    entity_id = "https://idp.example.com/metadata"
    sso_url = "https://idp.example.com/sso/saml"

    def __init__(self):
        self.private_key, self.cert = make_self_signed_certificate("idp.example.com")

    def provider_config(self, **overrides: Any) -> Dict[str, Any]:
        config = {
            "entryPoint": self.sso_url,
            "issuer": SP_ENTITY_ID,
            "idpIssuer": self.entity_id,
            "cert": self.cert,
        }
        config.update(overrides)
        return config

    @staticmethod
    def request_id_from_redirect(redirect_url: str) -> str:
        """Read the AuthnRequest ID out of an HTTP-Redirect binding URL."""
        query = parse_qs(urlparse(redirect_url).query)
        request_xml = OneLogin_Saml2_Utils.decode_base64_and_inflate(query["SAMLRequest"][0])
        return OneLogin_Saml2_XML.to_etree(request_xml).get("ID")

    def _sign(self, xml: str, key: str, cert: str) -> str:
        signed = OneLogin_Saml2_Utils.add_sign(
            xml,
            key,
            cert,
            sign_algorithm=OneLogin_Saml2_Constants.RSA_SHA256,
            digest_algorithm=OneLogin_Saml2_Constants.SHA256,
        )
        return signed.decode("utf-8") if isinstance(signed, bytes) else signed

    def build_response(
        self,
        in_response_to: str,
        acs_url: str,
        name_id: str = "00u1abcd",
        attributes: Optional[Dict[str, List[str]]] = None,
        issued_at: Optional[int] = None,
        lifetime: int = 300,
        signing_key: Optional[Tuple[str, str]] = None,
    ) -> str:
        """
        Build a base64-encoded SAMLResponse for ``in_response_to``.

        Args:
            issued_at: Unix time the assertion was issued (defaults to now)
            lifetime: Seconds the assertion stays valid after ``issued_at``
            signing_key: (key PEM, cert PEM) to sign with instead of the IdP's
        """
        key, cert = signing_key or (self.private_key, self.cert)
        issued = int(time.time()) if issued_at is None else issued_at
        issue_instant = OneLogin_Saml2_Utils.parse_time_to_SAML(issued)
        not_before = OneLogin_Saml2_Utils.parse_time_to_SAML(issued - 60)
        not_on_or_after = OneLogin_Saml2_Utils.parse_time_to_SAML(issued + lifetime)
        if attributes is None:
            attributes = {
                "email": ["jane@example.com"],
                "firstName": ["Jane"],
                "lastName": ["Doe"],
            }

        attribute_xml = "".join(
            f'<saml:Attribute Name="{name}">'
            + "".join(f"<saml:AttributeValue>{value}</saml:AttributeValue>" for value in values)
            + "</saml:Attribute>"
            for name, values in attributes.items()
        )

        assertion = (
            '<saml:Assertion xmlns:saml="urn:oasis:names:tc:SAML:2.0:assertion" '
            f'ID="_{uuid.uuid4().hex}" Version="2.0" IssueInstant="{issue_instant}">'
            f"<saml:Issuer>{self.entity_id}</saml:Issuer>"
            "<saml:Subject>"
            '<saml:NameID Format="urn:oasis:names:tc:SAML:1.1:nameid-format:unspecified">'
            f"{name_id}</saml:NameID>"
            '<saml:SubjectConfirmation Method="urn:oasis:names:tc:SAML:2.0:cm:bearer">'
            f'<saml:SubjectConfirmationData InResponseTo="{in_response_to}" '
            f'NotOnOrAfter="{not_on_or_after}" Recipient="{acs_url}"/>'
            "</saml:SubjectConfirmation>"
            "</saml:Subject>"
            f'<saml:Conditions NotBefore="{not_before}" NotOnOrAfter="{not_on_or_after}">'
            f"<saml:AudienceRestriction><saml:Audience>{SP_ENTITY_ID}</saml:Audience>"
            "</saml:AudienceRestriction>"
            "</saml:Conditions>"
            f'<saml:AuthnStatement AuthnInstant="{issue_instant}" SessionIndex="_session-1">'
            "<saml:AuthnContext><saml:AuthnContextClassRef>"
            "urn:oasis:names:tc:SAML:2.0:ac:classes:PasswordProtectedTransport"
            "</saml:AuthnContextClassRef></saml:AuthnContext>"
            "</saml:AuthnStatement>"
            f"<saml:AttributeStatement>{attribute_xml}</saml:AttributeStatement>"
            "</saml:Assertion>"
        )

        response = (
            '<samlp:Response xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol" '
            'xmlns:saml="urn:oasis:names:tc:SAML:2.0:assertion" '
            f'ID="_{uuid.uuid4().hex}" Version="2.0" IssueInstant="{issue_instant}" '
            f'Destination="{acs_url}" InResponseTo="{in_response_to}">'
            f"<saml:Issuer>{self.entity_id}</saml:Issuer>"
            "<samlp:Status>"
            '<samlp:StatusCode Value="urn:oasis:names:tc:SAML:2.0:status:Success"/>'
            "</samlp:Status>"
            f"{self._sign(assertion, key, cert)}"
            "</samlp:Response>"
        )

        signed_response = self._sign(response, key, cert)
        return base64.b64encode(signed_response.encode("utf-8")).decode("ascii")


@pytest.fixture(scope="session")
def saml_idp():
    return MockSAMLIdP()


@pytest.fixture(scope="session")
def other_certificate():
    """A key pair the IdP does not publish."""
    return make_self_signed_certificate("attacker.example.com")


@pytest.fixture(scope="session")
def sp_certificate():
    return make_self_signed_certificate("sso.example.com")
