"""
Authentication routes for the OIDC login bridge.

Thin FastAPI wrappers around the handlers in ``handlers``. Errors raised by
the handlers propagate to the application-level exception handlers, which
turn them into JSON error responses.
"""

from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from ..config import Settings, get_settings
from .exceptions import SessionTokenError
from .handlers import handle_callback, handle_login, handle_logout
from .session import decode_session_token


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)


def get_provider_transport() -> Optional[httpx.AsyncBaseTransport]:
    """
    Transport used for identity provider calls.

    None selects httpx's default network transport. Overridden in tests.
    """
    return None


# =============================================================================
# Login / Callback / Logout
# =============================================================================

@auth_router.get("/login", response_class=RedirectResponse)
async def login(
    request: Request,
    settings: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_provider_transport),
):
    """
    Initiate the OIDC login flow by redirecting to the identity provider.

    The Referer header becomes the post-login return route.
    """
    return await handle_login(request, settings, transport)


@auth_router.post("/callback", response_class=RedirectResponse)
async def callback(
    request: Request,
    settings: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_provider_transport),
):
    """
    Receive the identity provider's form_post and establish the session.
    """
    return await handle_callback(request, settings, transport)


@auth_router.get("/logout", response_class=RedirectResponse)
async def logout(settings: Settings = Depends(get_settings)):
    """Clear the session cookie and redirect to the provider logout endpoint."""
    return handle_logout(settings)


# =============================================================================
# Session Inspection
# =============================================================================

@auth_router.get("/session")
async def session(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    Return the payload of the current session cookie.

    Raises:
        HTTPException: 401 if the cookie is missing, expired or invalid
    """
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)

    try:
        return decode_session_token(token, settings.SESSION_TOKEN_SECRET, settings.OIDC_CLIENT_ID)
    except SessionTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
        ) from e
