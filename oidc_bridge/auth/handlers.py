"""
Login, callback and logout handlers.

Each handler serves one inbound HTTP request and shares nothing with the
others. The login handler hands the browser a correlation cookie and an
encoded state; the callback handler reads both back, lets the provider client
verify the provider's response against them, and swaps the result for a
platform session cookie.

Handlers either return a complete redirect (status, Location, cookies) or
raise an AuthFlowError before building any response.
"""

import logging
from typing import Optional

import httpx
from starlette.requests import Request
from starlette.responses import RedirectResponse

from ..config import Settings
from .cookies import (
    apply_cookie,
    build_login_cookie,
    build_login_reset_cookie,
    build_logout_cookie,
    build_session_cookie,
)
from .exceptions import InvalidRequestError, MalformedRequestError
from .provider import OpenIDClient, get_openid_client
from .session import mint_session_token
from .state import decode_flow_state, encode_flow_state, generate_nonce, parse_login_cookie

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache"}


# =============================================================================
# Login
# =============================================================================

async def handle_login(
    request: Optional[Request],
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RedirectResponse:
    """
    Start a login by redirecting to the identity provider.

    This handler:
    1. Generates a fresh OIDC nonce
    2. Encodes the Referer (or "/") into the flow state
    3. Builds the provider authorization URL
    4. Redirects there, setting the login correlation cookie

    Args:
        request: Inbound request; only its Referer header is used
        settings: Application settings
        transport: Optional httpx transport for provider calls

    Returns:
        302 RedirectResponse to the provider authorization endpoint

    Raises:
        MalformedRequestError: If the request or its headers are absent
        ProviderNetworkError: If provider discovery fails
    """
    if request is None or not request.headers:
        raise MalformedRequestError("Malformed request: missing request or headers")

    referer = request.headers.get("referer")

    nonce = generate_nonce()
    state = encode_flow_state(referer)

    client = await get_openid_client(settings, transport)
    authorization_url = client.authorization_url(nonce=nonce, state=state)

    response = RedirectResponse(authorization_url, status_code=302, headers=NO_CACHE_HEADERS)
    apply_cookie(response, build_login_cookie(nonce, state, settings))

    logger.debug(f"Issued login nonce {nonce[:8]}... state {state[:8]}...")
    logger.info("Login initiated", extra={"route": referer or "/"})
    return response


# =============================================================================
# Callback
# =============================================================================

async def handle_callback(
    request: Optional[Request],
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RedirectResponse:
    """
    Complete a login from the identity provider's form_post.

    This handler:
    1. Requires the Cookie header and the login correlation cookie
    2. Recovers the nonce and state from that cookie
    3. Extracts the provider's response parameters from the body
    4. Has the provider client verify them against the nonce and state
    5. Mints the session token from the verified claims
    6. Decodes the post-login route from the cookie's state
    7. Redirects there, setting the session cookie and clearing the
       login cookie

    Args:
        request: Inbound callback request
        settings: Application settings
        transport: Optional httpx transport for provider calls

    Returns:
        302 RedirectResponse to the original route

    Raises:
        InvalidRequestError: If the cookie or body is missing or unreadable
        ProviderVerificationError: If the provider response fails verification
        ProviderNetworkError: If a provider call fails
    """
    if request is None or not request.headers.get("cookie"):
        raise InvalidRequestError("Invalid request: missing cookie header")

    login_cookie = parse_login_cookie(request.cookies.get(settings.LOGIN_COOKIE_NAME))

    body = await request.body()
    if not body:
        raise InvalidRequestError("Invalid request: missing callback body")

    params = OpenIDClient.callback_params(request.method, body, str(request.url))

    client = await get_openid_client(settings, transport)
    claims = await client.callback(
        settings.redirect_uri,
        params,
        {"nonce": login_cookie.nonce, "state": login_cookie.state},
    )

    token = mint_session_token(claims, settings.SESSION_TOKEN_SECRET)

    route = decode_flow_state(login_cookie.state).route

    response = RedirectResponse(route, status_code=302, headers=NO_CACHE_HEADERS)
    apply_cookie(response, build_session_cookie(token, settings))
    apply_cookie(response, build_login_reset_cookie(settings))

    logger.info("Login completed", extra={"user_id": claims.get("sub"), "route": route})
    return response


# =============================================================================
# Logout
# =============================================================================

def handle_logout(settings: Settings) -> RedirectResponse:
    """
    End the session and redirect to the provider's logout endpoint.

    Unconditional: works the same whether or not a session cookie exists.

    Args:
        settings: Application settings

    Returns:
        302 RedirectResponse clearing the session cookie
    """
    response = RedirectResponse(settings.logout_url, status_code=302, headers=NO_CACHE_HEADERS)
    apply_cookie(response, build_logout_cookie(settings))
    return response


__all__ = [
    "handle_login",
    "handle_callback",
    "handle_logout",
]
