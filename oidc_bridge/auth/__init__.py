"""
Authentication Package

This package implements the server-side half of an OpenID Connect login
flow, turning identity provider claims into a platform session cookie.

Key responsibilities:
- OIDC login initiation with nonce and encoded flow state
- Callback verification through the provider client and session minting
- Logout by clearing the session cookie

Modules:
- handlers: Login, callback and logout request handlers
- routes: FastAPI endpoints (/auth/login, /auth/callback, ...)
- provider: Discovery, authorization URLs and callback verification
- session: Session token minting and decoding
- state: Flow state and login cookie encoding
- cookies: Cookie builders
- exceptions: Error taxonomy of the flow

The authentication flow:
1. Browser hits /auth/login; the login cookie is set and the browser is
   sent to the identity provider
2. User authenticates with the identity provider
3. Provider posts the response to /auth/callback
4. Callback verifies it against the login cookie, sets the session cookie
   and sends the browser back to where it started
"""

from .routes import auth_router

__all__ = [
    "auth_router",
]
