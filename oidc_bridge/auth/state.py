"""
Flow state encoding for the login/callback round trip.

Nothing about an in-flight login is stored server-side. Two values carry the
correlation instead:

- the encoded flow state, relayed through the identity provider as the OIDC
  ``state`` parameter, holding the post-login route and its own nonce
- the login cookie, holding the OIDC nonce and the encoded flow state exactly
  as they were sent to the provider
"""

import base64
import json
import logging
import secrets
from typing import Optional

from ..models import FlowState, LoginCookie
from .exceptions import InvalidRequestError

logger = logging.getLogger(__name__)


def generate_nonce() -> str:
    """
    Generate a cryptographically random nonce.

    Returns:
        URL-safe random string (256 bits of entropy)
    """
    return secrets.token_urlsafe(32)


# =============================================================================
# Encoded Flow State
# =============================================================================

def encode_flow_state(route: Optional[str], nonce: Optional[str] = None) -> str:
    """
    Encode the post-login route into an opaque state string.

    Args:
        route: Page the user came from; empty or None falls back to "/"
        nonce: Anti-replay value; a fresh one is generated when omitted

    Returns:
        Base64 of the JSON object {"route": ..., "nonce": ...}
    """
    state = FlowState(route=route or "/", nonce=nonce or generate_nonce())
    raw = json.dumps(state.model_dump(), separators=(",", ":"))
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_flow_state(encoded: str) -> FlowState:
    """
    Decode a state string produced by encode_flow_state.

    Args:
        encoded: Base64 state string

    Returns:
        FlowState with a non-empty route

    Raises:
        InvalidRequestError: If the value is not a valid encoded flow state
    """
    try:
        data = json.loads(base64.b64decode(encoded, validate=True).decode("utf-8"))
        if isinstance(data, dict) and not data.get("route"):
            data["route"] = "/"
        return FlowState.model_validate(data)
    except (ValueError, TypeError) as e:
        logger.warning("Rejected malformed flow state")
        raise InvalidRequestError("Malformed flow state") from e


# =============================================================================
# Login Cookie Value
# =============================================================================

def serialize_login_cookie(nonce: str, state: str) -> str:
    """Serialize the login cookie contents as compact JSON."""
    return LoginCookie(nonce=nonce, state=state).model_dump_json()


def parse_login_cookie(value: Optional[str]) -> LoginCookie:
    """
    Parse the login cookie value back into its nonce and state.

    Args:
        value: Raw cookie value as received on the callback request

    Returns:
        LoginCookie with both fields present

    Raises:
        InvalidRequestError: If the cookie is absent or unreadable
    """
    if not value:
        raise InvalidRequestError("Missing login cookie")

    try:
        return LoginCookie.model_validate_json(value)
    except ValueError as e:
        logger.warning("Rejected unreadable login cookie")
        raise InvalidRequestError("Malformed login cookie") from e


__all__ = [
    "generate_nonce",
    "encode_flow_state",
    "decode_flow_state",
    "serialize_login_cookie",
    "parse_login_cookie",
]
