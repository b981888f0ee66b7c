"""
Shared fixtures: application settings, a mock identity provider served over
httpx.MockTransport, and helpers to build inbound Starlette requests.
"""

import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm
from starlette.requests import Request

from oidc_bridge.config import Settings


OIDC_DOMAIN = "idp.example"
ISSUER = "https://idp.example/"
CLIENT_ID = "test-client-id"
APP_URL = "https://app.example"
SESSION_SECRET = "test-session-secret-0123456789abcdef"
TEST_KID = "test-key-id-2024"


def generate_test_keys():
    """Generate RSA key pair for testing"""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
        backend=default_backend()
    )

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )

    return private_pem.decode(), private_key.public_key()


# Generate test keys once for reuse
TEST_PRIVATE_KEY, TEST_PUBLIC_KEY = generate_test_keys()
OTHER_PRIVATE_KEY, _ = generate_test_keys()


class MockProvider:
    """
    In-memory identity provider.

    Serves discovery, JWKS and token endpoints and records every request
    it receives.
    """

    authorization_endpoint = "https://idp.example/authorize"
    token_endpoint = "https://idp.example/oauth/token"
    jwks_uri = "https://idp.example/.well-known/jwks.json"

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.discovery_status = 200
        self.unreachable = False
        self.token_status = 200
        self.token_response: Dict[str, Any] = {}

    def discovery_document(self) -> Dict[str, Any]:
        return {
            "issuer": ISSUER,
            "authorization_endpoint": self.authorization_endpoint,
            "token_endpoint": self.token_endpoint,
            "jwks_uri": self.jwks_uri,
            "response_types_supported": ["code", "id_token"],
            "id_token_signing_alg_values_supported": ["RS256"],
        }

    def jwks(self) -> Dict[str, Any]:
        key = RSAAlgorithm.to_jwk(TEST_PUBLIC_KEY, as_dict=True)
        key["kid"] = TEST_KID
        key["use"] = "sig"
        key["alg"] = "RS256"
        return {"keys": [key]}

    def id_token(
        self,
        nonce: Optional[str],
        *,
        groups: Optional[List[str]] = None,
        signing_key: str = TEST_PRIVATE_KEY,
        kid: str = TEST_KID,
        exp_delta_seconds: int = 3600,
        **overrides: Any,
    ) -> str:
        """Create an ID token signed with the provider key."""
        now = int(time.time())
        payload = {
            "iss": ISSUER,
            "sub": "user-sub-123",
            "aud": CLIENT_ID,
            "iat": now,
            "exp": now + exp_delta_seconds,
            "email": "user@app.example",
            "groups": ["editors", "admins"] if groups is None else groups,
        }
        if nonce is not None:
            payload["nonce"] = nonce
        payload.update(overrides)

        return jwt.encode(payload, signing_key, algorithm="RS256", headers={"kid": kid})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.unreachable:
            raise httpx.ConnectError("Connection refused", request=request)

        path = request.url.path
        if path == "/.well-known/openid-configuration":
            if self.discovery_status != 200:
                return httpx.Response(self.discovery_status)
            return httpx.Response(200, json=self.discovery_document())
        if path == "/.well-known/jwks.json":
            return httpx.Response(200, json=self.jwks())
        if path == "/oauth/token":
            return httpx.Response(self.token_status, json=self.token_response)
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


def make_request(
    method: str = "GET",
    path: str = "/",
    headers: Optional[Dict[str, str]] = None,
    body: bytes = b"",
    query_string: bytes = b"",
) -> Request:
    """Build a Starlette request as the ASGI server would hand it over."""
    raw_headers = [
        (key.lower().encode("latin-1"), value.encode("latin-1"))
        for key, value in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "https",
        "path": path,
        "raw_path": path.encode(),
        "query_string": query_string,
        "root_path": "",
        "headers": raw_headers,
        "server": ("app.example", 443),
        "client": ("203.0.113.5", 50000),
    }

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


def cookie_pair(set_cookie_header: str) -> str:
    """The name=value part of a Set-Cookie header, as a browser returns it."""
    return set_cookie_header.split(";")[0].strip()


def read_cookies(set_cookie_header: str) -> Dict[str, str]:
    """Parse a Set-Cookie header back through Starlette's cookie parser."""
    return make_request(headers={"cookie": cookie_pair(set_cookie_header)}).cookies


def callback_request(cookie: Optional[str], params: Dict[str, str]) -> Request:
    headers = {"content-type": "application/x-www-form-urlencoded"}
    if cookie is not None:
        headers["cookie"] = cookie
    return make_request(
        method="POST",
        path="/auth/callback",
        headers=headers,
        body=urlencode(params).encode(),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        OIDC_DOMAIN=OIDC_DOMAIN,
        OIDC_CLIENT_ID=CLIENT_ID,
        APP_URL=APP_URL,
        SESSION_TOKEN_SECRET=SESSION_SECRET,
    )


@pytest.fixture
def local_settings() -> Settings:
    return Settings(
        _env_file=None,
        OIDC_DOMAIN=OIDC_DOMAIN,
        OIDC_CLIENT_ID=CLIENT_ID,
        APP_URL="http://localhost:8888",
        SESSION_TOKEN_SECRET=SESSION_SECRET,
        LOCAL_DEV=True,
    )


@pytest.fixture
def idp() -> MockProvider:
    return MockProvider()
