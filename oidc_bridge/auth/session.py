"""
Session Token Module
====================

Mints the platform session token from identity provider claims.

The token is an HS256 JWT whose payload follows the platform's role-based
access control format:

    {
        "exp": iat + 14 days,
        "iat": ...,
        "updated_at": iat,
        "aud": <provider aud>,
        "sub": <provider sub>,
        "app_metadata": {"authorization": {"roles": <provider groups>}}
    }

Downstream platform infrastructure verifies and consumes the token. This
module only verifies it for the read-only session inspection endpoint.
"""

import logging
import time
from typing import Any, Dict, Mapping, Optional

import jwt
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError

from ..models import AppMetadata, RolesClaim, SessionPayload
from .constants import SESSION_LIFETIME_SECONDS, SESSION_TOKEN_ALGORITHM
from .exceptions import SessionTokenError

logger = logging.getLogger(__name__)


# =============================================================================
# Token Creation
# =============================================================================

def build_session_payload(claims: Mapping[str, Any], now: Optional[int] = None) -> Dict[str, Any]:
    """
    Build the session token payload from provider claims.

    Args:
        claims: Verified ID token claims. Must contain 'sub' and 'aud';
                'groups' becomes the authorization roles.
        now: Issue time in seconds since epoch (defaults to current time)

    Returns:
        Payload dictionary ready for signing

    Raises:
        SessionTokenError: If 'sub' or 'aud' is missing
    """
    for claim in ("sub", "aud"):
        if not claims.get(claim):
            raise SessionTokenError(f"Missing required claim: '{claim}'")

    iat = int(time.time()) if now is None else int(now)

    groups = claims.get("groups") or []
    if not isinstance(groups, list):
        groups = [groups]

    try:
        payload = SessionPayload(
            exp=iat + SESSION_LIFETIME_SECONDS,
            iat=iat,
            updated_at=iat,
            aud=claims["aud"],
            sub=claims["sub"],
            app_metadata=AppMetadata(
                authorization=RolesClaim(roles=groups),
            ),
        )
    except ValidationError as e:
        raise SessionTokenError(f"Unusable provider claims: {e.error_count()} invalid field(s)") from e

    return payload.model_dump()


def mint_session_token(
    claims: Mapping[str, Any],
    secret: str,
    now: Optional[int] = None,
) -> str:
    """
    Create a signed session token from provider claims.

    Deterministic for identical claims, secret and issue time.

    Args:
        claims: Verified ID token claims
        secret: Session signing secret
        now: Issue time in seconds since epoch (defaults to current time)

    Returns:
        Compact JWT string

    Raises:
        SessionTokenError: If claims are incomplete or signing fails

    Example:
        >>> token = mint_session_token(
        ...     {"sub": "user123", "aud": "client-id", "groups": ["admin"]},
        ...     secret,
        ... )
    """
    payload = build_session_payload(claims, now)

    try:
        token = jwt.encode(
            payload,
            secret,
            algorithm=SESSION_TOKEN_ALGORITHM,
            headers={"typ": "JWT"},
        )
    except Exception as e:
        logger.error(f"Failed to sign session token: {e}", exc_info=True)
        raise SessionTokenError(f"Failed to sign session token: {str(e)}") from e

    logger.debug(
        "Minted session token",
        extra={
            "user_id": payload["sub"],
            "roles": payload["app_metadata"]["authorization"]["roles"],
        },
    )
    return token


# =============================================================================
# Token Verification
# =============================================================================

def decode_session_token(token: str, secret: str, audience: str) -> Dict[str, Any]:
    """
    Verify and decode a session token.

    Args:
        token: Compact JWT from the session cookie
        secret: Session signing secret
        audience: Expected audience (the provider client id)

    Returns:
        Decoded payload

    Raises:
        SessionTokenError: If the token is missing, expired or invalid
    """
    if not token:
        raise SessionTokenError("No session token provided")

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[SESSION_TOKEN_ALGORITHM],
            audience=audience,
            options={"require": ["exp", "iat", "sub", "aud"]},
        )
    except InvalidTokenError as e:
        logger.info(f"Invalid session token: {e}")
        raise SessionTokenError(f"Invalid session token: {str(e)}") from e


__all__ = [
    "build_session_payload",
    "mint_session_token",
    "decode_session_token",
]
