"""
OIDC Login Bridge
=================

Server-side half of an OpenID Connect login flow for a serverless web
application: the identity provider's ID token is verified and swapped for a
locally signed platform session cookie used for role-based access control.

No session state is kept server-side. Each of the login, callback and logout
handlers serves a single request on its own.
"""

__version__ = "1.0.0"
