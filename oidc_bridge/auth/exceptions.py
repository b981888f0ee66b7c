"""
Authentication flow exceptions.

Every error raised by the login, callback and logout handlers derives from
AuthFlowError. None of them is retried: each one ends the current invocation
before any redirect or cookie is emitted, and the caller decides how to
present it.
"""

from typing import Optional


class AuthFlowError(Exception):
    """Base exception for login flow errors"""

    status_code: int = 500
    error_code: str = "auth_flow_error"

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class MalformedRequestError(AuthFlowError):
    """The inbound request or its headers are absent (integration bug)."""

    status_code = 400
    error_code = "malformed_request"


class InvalidRequestError(AuthFlowError):
    """
    The callback is missing its correlation cookie or body.

    Either an attack, an expired login attempt, or a misbehaving client.
    """

    status_code = 400
    error_code = "invalid_request"


class ProviderVerificationError(AuthFlowError):
    """
    The identity provider response failed verification.

    Covers state/nonce mismatches, bad ID token signatures or claims, and
    error responses posted back by the provider. Treated as a potential
    forgery attempt.
    """

    status_code = 401
    error_code = "provider_verification_failed"


class ProviderNetworkError(AuthFlowError):
    """Discovery, JWKS fetch or token exchange failed at the transport level."""

    status_code = 502
    error_code = "provider_unavailable"


class SessionTokenError(AuthFlowError):
    """Session token could not be minted or decoded."""

    status_code = 500
    error_code = "session_token_error"


__all__ = [
    "AuthFlowError",
    "MalformedRequestError",
    "InvalidRequestError",
    "ProviderVerificationError",
    "ProviderNetworkError",
    "SessionTokenError",
]
