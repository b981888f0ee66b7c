"""
Tests for the OpenID Connect client: discovery, authorization URLs, callback
parameter extraction and callback verification.
"""

from urllib.parse import parse_qs, urlsplit

import pytest

from oidc_bridge.auth.exceptions import InvalidRequestError, ProviderNetworkError, ProviderVerificationError
from oidc_bridge.auth.provider import OpenIDClient, get_openid_client, get_signing_key

from conftest import CLIENT_ID, ISSUER, OTHER_PRIVATE_KEY, TEST_KID

REDIRECT_URI = "https://app.example/auth/callback"
CHECKS = {"nonce": "expected-nonce", "state": "expected-state"}


async def discover(idp, **kwargs) -> OpenIDClient:
    return await OpenIDClient.discover(
        "https://idp.example",
        client_id=CLIENT_ID,
        redirect_uri=REDIRECT_URI,
        transport=idp.transport,
        **kwargs,
    )


class TestDiscovery:

    @pytest.mark.asyncio
    async def test_discover_reads_metadata(self, idp):
        client = await discover(idp)

        assert client.metadata.issuer == ISSUER
        assert client.metadata.authorization_endpoint == idp.authorization_endpoint
        assert client.metadata.jwks_uri == idp.jwks_uri
        assert idp.paths == ["/.well-known/openid-configuration"]

    @pytest.mark.asyncio
    async def test_discover_from_settings(self, settings, idp):
        client = await get_openid_client(settings, idp.transport)

        assert client.client_id == CLIENT_ID
        assert client.redirect_uri == "https://app.example/auth/callback"
        assert client.response_type == "id_token"

    @pytest.mark.asyncio
    async def test_discovery_error_status(self, idp):
        idp.discovery_status = 503

        with pytest.raises(ProviderNetworkError):
            await discover(idp)

    @pytest.mark.asyncio
    async def test_provider_unreachable(self, idp):
        idp.unreachable = True

        with pytest.raises(ProviderNetworkError):
            await discover(idp)

    @pytest.mark.asyncio
    async def test_incomplete_discovery_document(self, idp, monkeypatch):
        monkeypatch.setattr(idp, "discovery_document", lambda: {"issuer": ISSUER})

        with pytest.raises(ProviderNetworkError, match="discovery document"):
            await discover(idp)


class TestAuthorizationUrl:

    @pytest.mark.asyncio
    async def test_parameters(self, idp):
        client = await discover(idp)

        url = client.authorization_url(nonce="n-1", state="c3RhdGU+Lz0=")

        parts = urlsplit(url)
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == idp.authorization_endpoint
        query = parse_qs(parts.query)
        assert query == {
            "client_id": [CLIENT_ID],
            "response_type": ["id_token"],
            "redirect_uri": [REDIRECT_URI],
            "response_mode": ["form_post"],
            "scope": ["openid email profile"],
            "nonce": ["n-1"],
            "state": ["c3RhdGU+Lz0="],
        }


class TestCallbackParams:

    def test_form_post_body(self):
        params = OpenIDClient.callback_params(
            "POST", b"id_token=abc.def.ghi&state=c3RhdGU%2BLz0%3D", "https://app.example/auth/callback"
        )

        assert params == {"id_token": "abc.def.ghi", "state": "c3RhdGU+Lz0="}

    def test_query_string(self):
        params = OpenIDClient.callback_params(
            "GET", None, "https://app.example/auth/callback?code=xyz&state=s"
        )

        assert params == {"code": "xyz", "state": "s"}

    def test_body_not_utf8(self):
        with pytest.raises(InvalidRequestError, match="Malformed callback body"):
            OpenIDClient.callback_params("POST", b"state=\xff\xfe&id_token=x", "https://app.example/auth/callback")


class TestCallbackVerification:

    @pytest.mark.asyncio
    async def test_valid_id_token(self, idp):
        client = await discover(idp)
        params = {"id_token": idp.id_token("expected-nonce"), "state": "expected-state"}

        claims = await client.callback(REDIRECT_URI, params, CHECKS)

        assert claims["sub"] == "user-sub-123"
        assert claims["aud"] == CLIENT_ID
        assert claims["groups"] == ["editors", "admins"]
        assert idp.paths[-1] == "/.well-known/jwks.json"

    @pytest.mark.asyncio
    async def test_state_mismatch(self, idp):
        client = await discover(idp)
        params = {"id_token": idp.id_token("expected-nonce"), "state": "forged-state"}

        with pytest.raises(ProviderVerificationError, match="State mismatch"):
            await client.callback(REDIRECT_URI, params, CHECKS)

    @pytest.mark.asyncio
    async def test_missing_state(self, idp):
        client = await discover(idp)
        params = {"id_token": idp.id_token("expected-nonce")}

        with pytest.raises(ProviderVerificationError, match="State mismatch"):
            await client.callback(REDIRECT_URI, params, CHECKS)

    @pytest.mark.asyncio
    async def test_nonce_mismatch(self, idp):
        client = await discover(idp)
        params = {"id_token": idp.id_token("replayed-nonce"), "state": "expected-state"}

        with pytest.raises(ProviderVerificationError, match="Nonce mismatch"):
            await client.callback(REDIRECT_URI, params, CHECKS)

    @pytest.mark.asyncio
    async def test_missing_nonce_claim(self, idp):
        client = await discover(idp)
        params = {"id_token": idp.id_token(None), "state": "expected-state"}

        with pytest.raises(ProviderVerificationError, match="Nonce mismatch"):
            await client.callback(REDIRECT_URI, params, CHECKS)

    @pytest.mark.asyncio
    async def test_provider_error_response(self, idp):
        client = await discover(idp)
        params = {"error": "access_denied", "error_description": "User cancelled", "state": "expected-state"}

        with pytest.raises(ProviderVerificationError, match="User cancelled"):
            await client.callback(REDIRECT_URI, params, CHECKS)

    @pytest.mark.asyncio
    async def test_no_id_token(self, idp):
        client = await discover(idp)

        with pytest.raises(ProviderVerificationError, match="No ID token"):
            await client.callback(REDIRECT_URI, {"state": "expected-state"}, CHECKS)

    @pytest.mark.asyncio
    async def test_forged_signature(self, idp):
        client = await discover(idp)
        forged = idp.id_token("expected-nonce", signing_key=OTHER_PRIVATE_KEY)

        with pytest.raises(ProviderVerificationError):
            await client.callback(REDIRECT_URI, {"id_token": forged, "state": "expected-state"}, CHECKS)

    @pytest.mark.asyncio
    async def test_unknown_kid(self, idp):
        client = await discover(idp)
        token = idp.id_token("expected-nonce", kid="rotated-away")

        with pytest.raises(ProviderVerificationError, match="signing key"):
            await client.callback(REDIRECT_URI, {"id_token": token, "state": "expected-state"}, CHECKS)

    @pytest.mark.asyncio
    async def test_expired_id_token(self, idp):
        client = await discover(idp)
        token = idp.id_token("expected-nonce", exp_delta_seconds=-600)

        with pytest.raises(ProviderVerificationError, match="expired"):
            await client.callback(REDIRECT_URI, {"id_token": token, "state": "expected-state"}, CHECKS)

    @pytest.mark.asyncio
    async def test_wrong_audience(self, idp):
        client = await discover(idp)
        token = idp.id_token("expected-nonce", aud="another-client")

        with pytest.raises(ProviderVerificationError):
            await client.callback(REDIRECT_URI, {"id_token": token, "state": "expected-state"}, CHECKS)

    @pytest.mark.asyncio
    async def test_wrong_issuer(self, idp):
        client = await discover(idp)
        token = idp.id_token("expected-nonce", iss="https://evil.example/")

        with pytest.raises(ProviderVerificationError):
            await client.callback(REDIRECT_URI, {"id_token": token, "state": "expected-state"}, CHECKS)

    @pytest.mark.asyncio
    async def test_garbage_id_token(self, idp):
        client = await discover(idp)

        with pytest.raises(ProviderVerificationError):
            await client.callback(REDIRECT_URI, {"id_token": "garbage", "state": "expected-state"}, CHECKS)

    @pytest.mark.asyncio
    async def test_jwks_without_key_list(self, idp, monkeypatch):
        client = await discover(idp)
        params = {"id_token": idp.id_token("expected-nonce"), "state": "expected-state"}
        monkeypatch.setattr(idp, "jwks", lambda: {"keys": None})

        with pytest.raises(ProviderNetworkError, match="Invalid JWKS document"):
            await client.callback(REDIRECT_URI, params, CHECKS)

    @pytest.mark.asyncio
    async def test_jwks_unreachable(self, idp):
        client = await discover(idp)
        params = {"id_token": idp.id_token("expected-nonce"), "state": "expected-state"}
        idp.unreachable = True

        with pytest.raises(ProviderNetworkError):
            await client.callback(REDIRECT_URI, params, CHECKS)


class TestCodeExchange:

    @pytest.mark.asyncio
    async def test_code_is_exchanged_for_id_token(self, idp):
        client = await discover(idp, response_type="code", client_secret="client-secret")
        idp.token_response = {"id_token": idp.id_token("expected-nonce"), "token_type": "Bearer"}

        claims = await client.callback(REDIRECT_URI, {"code": "auth-code", "state": "expected-state"}, CHECKS)

        assert claims["sub"] == "user-sub-123"
        token_request = next(r for r in idp.requests if r.url.path == "/oauth/token")
        form = parse_qs(token_request.content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["auth-code"]
        assert form["redirect_uri"] == [REDIRECT_URI]
        assert form["client_secret"] == ["client-secret"]

    @pytest.mark.asyncio
    async def test_rejected_code(self, idp):
        client = await discover(idp, response_type="code")
        idp.token_status = 400
        idp.token_response = {"error": "invalid_grant", "error_description": "Authorization code expired"}

        with pytest.raises(ProviderVerificationError, match="Authorization code expired"):
            await client.callback(REDIRECT_URI, {"code": "auth-code", "state": "expected-state"}, CHECKS)

    @pytest.mark.asyncio
    async def test_token_endpoint_failure(self, idp):
        client = await discover(idp, response_type="code")
        idp.token_status = 500

        with pytest.raises(ProviderNetworkError):
            await client.callback(REDIRECT_URI, {"code": "auth-code", "state": "expected-state"}, CHECKS)

    @pytest.mark.asyncio
    async def test_state_checked_before_exchange(self, idp):
        client = await discover(idp, response_type="code")

        with pytest.raises(ProviderVerificationError, match="State mismatch"):
            await client.callback(REDIRECT_URI, {"code": "auth-code", "state": "forged"}, CHECKS)

        assert "/oauth/token" not in idp.paths


class TestSigningKeySelection:

    def test_matching_kid(self, idp):
        jwks = idp.jwks()

        assert get_signing_key(idp.id_token("n"), jwks)["kid"] == TEST_KID

    def test_no_kid_with_single_key(self, idp):
        import jwt
        from conftest import TEST_PRIVATE_KEY

        token = jwt.encode({"sub": "s"}, TEST_PRIVATE_KEY, algorithm="RS256")

        assert get_signing_key(token, idp.jwks()) is not None
        assert get_signing_key(token, {"keys": idp.jwks()["keys"] * 2}) is None

    def test_malformed_header(self, idp):
        with pytest.raises(ProviderVerificationError):
            get_signing_key("not-a-jwt", idp.jwks())

    @pytest.mark.parametrize("jwks", [
        {"keys": None},
        {"keys": ["not-a-key"]},
        {"keys": {"kid": TEST_KID}},
        {},
    ])
    def test_malformed_key_set(self, idp, jwks):
        with pytest.raises(ProviderNetworkError, match="Invalid JWKS document"):
            get_signing_key(idp.id_token("n"), jwks)
