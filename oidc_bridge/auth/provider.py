"""
OpenID Connect client for the identity provider.

This module handles:
- Provider discovery (.well-known/openid-configuration)
- Building authorization URLs
- Extracting callback parameters from the provider's form_post
- Verifying the callback: state, ID token signature and claims, nonce
- Exchanging an authorization code when the 'code' response type is used

Discovery and JWKS are fetched on every invocation; nothing is cached
between requests. No call is retried.
"""

import hmac
import logging
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit

import httpx
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError
from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import Settings
from .constants import (
    AUTHORIZATION_SCOPE,
    ID_TOKEN_ALGORITHMS,
    ID_TOKEN_LEEWAY_SECONDS,
    RESPONSE_MODE,
)
from .exceptions import InvalidRequestError, ProviderNetworkError, ProviderVerificationError

logger = logging.getLogger(__name__)


class ProviderMetadata(BaseModel):
    """Subset of the discovery document the login flow relies on."""
    model_config = ConfigDict(extra="allow")

    issuer: str
    authorization_endpoint: str
    jwks_uri: str
    token_endpoint: Optional[str] = None
    end_session_endpoint: Optional[str] = None


# =============================================================================
# HTTP Helpers
# =============================================================================

async def _get_json(
    url: str,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    GET a JSON document from the provider.

    Raises:
        ProviderNetworkError: On transport errors, non-2xx status or invalid JSON
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url)
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPError as e:
        logger.error(f"Identity provider request failed: {url}: {e}")
        raise ProviderNetworkError(f"Unable to reach identity provider: {url}") from e
    except ValueError as e:
        raise ProviderNetworkError(f"Invalid JSON from identity provider: {url}") from e

    if not isinstance(data, dict):
        raise ProviderNetworkError(f"Unexpected response from identity provider: {url}")
    return data


def _matches(received: Any, expected: Optional[str]) -> bool:
    if not isinstance(received, str) or not received or not expected:
        return False
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


def get_signing_key(token: str, jwks: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Extract the public key from JWKS that matches the token's kid.

    A token without a kid is accepted only when the key set holds exactly
    one key.

    Args:
        token: JWT token string
        jwks: JWKS document containing keys

    Returns:
        Matching key from JWKS, or None if not found

    Raises:
        ProviderVerificationError: If token header is malformed
        ProviderNetworkError: If the JWKS document has no list of keys
    """
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as e:
        raise ProviderVerificationError(f"Failed to decode token header: {e}") from e

    keys = jwks.get("keys")
    if not isinstance(keys, list) or not all(isinstance(key, dict) for key in keys):
        raise ProviderNetworkError("Invalid JWKS document")

    kid = unverified_header.get("kid")
    if not kid:
        return keys[0] if len(keys) == 1 else None

    for key in keys:
        if key.get("kid") == kid:
            return key

    return None


# =============================================================================
# Client
# =============================================================================

class OpenIDClient:
    """
    Relying-party client bound to one discovered provider.

    Attributes:
        metadata: Discovery document of the provider
        client_id: Registered client identifier
        redirect_uri: Callback URL registered with the provider
        response_type: 'id_token' (default) or 'code'
    """

    def __init__(
        self,
        metadata: ProviderMetadata,
        client_id: str,
        redirect_uri: str,
        *,
        response_type: str = "id_token",
        client_secret: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.metadata = metadata
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.response_type = response_type
        self.client_secret = client_secret
        self.timeout = timeout
        self.transport = transport

    @classmethod
    async def discover(
        cls,
        issuer_url: str,
        *,
        client_id: str,
        redirect_uri: str,
        response_type: str = "id_token",
        client_secret: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "OpenIDClient":
        """
        Fetch the provider discovery document and build a client for it.

        Args:
            issuer_url: Provider issuer URL (e.g., https://acme.crossid.io)

        Returns:
            OpenIDClient bound to the discovered endpoints

        Raises:
            ProviderNetworkError: If discovery fails or the document is unusable
        """
        discovery_url = f"{issuer_url.rstrip('/')}/.well-known/openid-configuration"
        data = await _get_json(discovery_url, timeout, transport)

        try:
            metadata = ProviderMetadata.model_validate(data)
        except ValidationError as e:
            raise ProviderNetworkError(f"Invalid discovery document from {issuer_url}") from e

        logger.debug(f"Discovered OIDC provider {metadata.issuer}")
        return cls(
            metadata,
            client_id,
            redirect_uri,
            response_type=response_type,
            client_secret=client_secret,
            timeout=timeout,
            transport=transport,
        )

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------

    def authorization_url(
        self,
        *,
        nonce: str,
        state: str,
        scope: str = AUTHORIZATION_SCOPE,
        response_mode: str = RESPONSE_MODE,
    ) -> str:
        """
        Build the provider authorization URL.

        Args:
            nonce: OIDC nonce to be echoed in the ID token
            state: Opaque state to be posted back with the response
            scope: Requested scopes
            response_mode: How the provider delivers the response

        Returns:
            Absolute authorization URL
        """
        params = {
            "client_id": self.client_id,
            "response_type": self.response_type,
            "redirect_uri": self.redirect_uri,
            "response_mode": response_mode,
            "scope": scope,
            "nonce": nonce,
            "state": state,
        }
        endpoint = self.metadata.authorization_endpoint
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{urlencode(params)}"

    # -------------------------------------------------------------------------
    # Callback
    # -------------------------------------------------------------------------

    @staticmethod
    def callback_params(
        method: str,
        body: Union[str, bytes, None],
        url: str,
    ) -> Dict[str, str]:
        """
        Extract the provider's response parameters from a callback request.

        POST requests carry them form-encoded in the body (form_post);
        anything else carries them in the query string.

        Raises:
            InvalidRequestError: If the body is not UTF-8
        """
        if method.upper() == "POST":
            if isinstance(body, bytes):
                try:
                    body = body.decode("utf-8")
                except UnicodeDecodeError as e:
                    raise InvalidRequestError("Malformed callback body") from e
            return dict(parse_qsl(body or "", keep_blank_values=True))

        return dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))

    async def callback(
        self,
        redirect_uri: str,
        params: Mapping[str, str],
        checks: Mapping[str, str],
    ) -> Dict[str, Any]:
        """
        Verify a callback and return the identity claims.

        This function performs, in order:
        1. Rejects error responses from the provider
        2. Compares the returned state with the expected state
        3. Exchanges the authorization code if no ID token was posted
        4. Verifies the ID token signature and iss/aud/exp claims
        5. Compares the ID token nonce with the expected nonce

        Args:
            redirect_uri: Redirect URI used in the authorization request
            params: Parameters extracted by callback_params
            checks: Expected values, {"nonce": ..., "state": ...}

        Returns:
            Verified ID token claims

        Raises:
            ProviderVerificationError: If any check fails
            ProviderNetworkError: If the token exchange or JWKS fetch fails
        """
        error = params.get("error")
        if error:
            description = params.get("error_description") or error
            raise ProviderVerificationError(f"Identity provider returned an error: {description}")

        if not _matches(params.get("state"), checks.get("state")):
            raise ProviderVerificationError("State mismatch")

        id_token = params.get("id_token")
        access_token = None
        if not id_token and params.get("code"):
            tokens = await self._exchange_code(params["code"], redirect_uri)
            id_token = tokens.get("id_token")
            access_token = tokens.get("access_token")

        if not id_token:
            raise ProviderVerificationError("No ID token in provider response")

        claims = await self.verify_id_token(id_token, access_token=access_token)

        if not _matches(claims.get("nonce"), checks.get("nonce")):
            raise ProviderVerificationError("Nonce mismatch")

        return claims

    async def verify_id_token(
        self,
        id_token: str,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Verify and decode an ID token against the provider's JWKS.

        Args:
            id_token: JWT ID token string
            access_token: Access token to check at_hash against, if any

        Returns:
            Dictionary of verified token claims

        Raises:
            ProviderVerificationError: If the token is invalid or expired,
                or no signing key matches
            ProviderNetworkError: If the JWKS endpoint is unreachable
        """
        jwks = await _get_json(self.metadata.jwks_uri, self.timeout, self.transport)

        signing_key = get_signing_key(id_token, jwks)
        if not signing_key:
            raise ProviderVerificationError("Unable to find matching signing key in JWKS")

        try:
            claims = jwt.decode(
                id_token,
                signing_key,
                algorithms=ID_TOKEN_ALGORITHMS,
                audience=self.client_id,
                issuer=self.metadata.issuer,
                access_token=access_token,
                options={
                    "verify_at_hash": access_token is not None,
                    "leeway": ID_TOKEN_LEEWAY_SECONDS,
                },
            )
        except ExpiredSignatureError as e:
            raise ProviderVerificationError("ID token has expired") from e
        except JWTClaimsError as e:
            raise ProviderVerificationError(f"Invalid token claims: {e}") from e
        except JWTError as e:
            raise ProviderVerificationError(f"Token verification failed: {e}") from e

        return claims

    async def _exchange_code(self, code: str, redirect_uri: str) -> Dict[str, Any]:
        """
        Exchange an authorization code for tokens.

        Raises:
            ProviderVerificationError: If the provider rejects the code
            ProviderNetworkError: If the token endpoint is unreachable or failing
        """
        if not self.metadata.token_endpoint:
            raise ProviderNetworkError("Provider does not advertise a token endpoint")

        payload = {
            "client_id": self.client_id,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        if self.client_secret:
            payload["client_secret"] = self.client_secret

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.metadata.token_endpoint,
                    data=payload,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Token exchange request failed: {e}")
            raise ProviderNetworkError("Unable to reach token endpoint") from e

        if 400 <= response.status_code < 500:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            error_msg = error_data.get("error_description") or error_data.get("error") or "Token exchange failed"
            raise ProviderVerificationError(f"Token exchange rejected: {error_msg}")

        if not response.is_success:
            raise ProviderNetworkError(f"Token endpoint returned {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ProviderNetworkError("Invalid JSON from token endpoint") from e


async def get_openid_client(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> OpenIDClient:
    """Discover the configured provider and return a client for it."""
    return await OpenIDClient.discover(
        settings.issuer_url,
        client_id=settings.OIDC_CLIENT_ID,
        redirect_uri=settings.redirect_uri,
        response_type=settings.OIDC_RESPONSE_TYPE,
        client_secret=settings.OIDC_CLIENT_SECRET,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        transport=transport,
    )


__all__ = [
    "ProviderMetadata",
    "OpenIDClient",
    "get_openid_client",
    "get_signing_key",
]
