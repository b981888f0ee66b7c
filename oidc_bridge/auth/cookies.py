"""
Cookie builders for the login flow.

Pure functions: each returns a CookieSpec and performs no I/O. Handlers pass
the result to ``apply_cookie``, which hands it to Starlette's cookie
serializer.

The login cookie is marked SameSite=None when secure so that browsers attach
it to the identity provider's cross-site form_post back to the callback.
"""

from typing import Optional

from starlette.responses import Response

from ..config import Settings
from ..models import CookieSpec
from .constants import LOGIN_COOKIE_MAX_AGE_SECONDS, SESSION_LIFETIME_SECONDS
from .state import serialize_login_cookie


def _login_cookie_samesite(settings: Settings) -> Optional[str]:
    # SameSite=None is rejected by browsers without Secure
    return "none" if settings.cookie_secure else None


def build_login_cookie(nonce: str, state: str, settings: Settings) -> CookieSpec:
    """
    Build the login correlation cookie.

    Args:
        nonce: OIDC nonce sent in the authorization request
        state: Encoded flow state sent in the authorization request
        settings: Application settings

    Returns:
        httpOnly cookie living for one login attempt
    """
    return CookieSpec(
        key=settings.LOGIN_COOKIE_NAME,
        value=serialize_login_cookie(nonce, state),
        max_age=LOGIN_COOKIE_MAX_AGE_SECONDS,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite=_login_cookie_samesite(settings),
    )


def build_login_reset_cookie(settings: Settings) -> CookieSpec:
    """Build the expired login cookie that ends a login attempt."""
    return CookieSpec(
        key=settings.LOGIN_COOKIE_NAME,
        value="",
        max_age=0,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite=_login_cookie_samesite(settings),
    )


def build_session_cookie(token: str, settings: Settings) -> CookieSpec:
    """
    Build the platform session cookie.

    Not httpOnly: the consuming platform reads it from client-side script.

    Args:
        token: Signed session token
        settings: Application settings

    Returns:
        Cookie living as long as the session token
    """
    return CookieSpec(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=SESSION_LIFETIME_SECONDS,
        path="/",
        secure=settings.cookie_secure,
        httponly=False,
        samesite="lax",
    )


def build_logout_cookie(settings: Settings) -> CookieSpec:
    """Build the expired session cookie sent on logout."""
    return CookieSpec(
        key=settings.SESSION_COOKIE_NAME,
        value="",
        max_age=0,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )


def apply_cookie(response: Response, cookie: CookieSpec) -> None:
    """Append a Set-Cookie header for ``cookie`` to ``response``."""
    response.set_cookie(
        key=cookie.key,
        value=cookie.value,
        max_age=cookie.max_age,
        path=cookie.path,
        secure=cookie.secure,
        httponly=cookie.httponly,
        samesite=cookie.samesite,
    )


__all__ = [
    "build_login_cookie",
    "build_login_reset_cookie",
    "build_session_cookie",
    "build_logout_cookie",
    "apply_cookie",
]
