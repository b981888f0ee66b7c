"""
Data Models Module

This module defines Pydantic models for the values that travel through the
login flow and for the JSON bodies the service returns.

Models are organized by functional area:
- Flow correlation models (login cookie contents, encoded flow state)
- Cookie models (attributes handed to the response cookie serializer)
- Session models (session token payload)
- Service models (health check, error responses)
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Flow Correlation Models
# ============================================================================

class LoginCookie(BaseModel):
    """Contents of the login correlation cookie set by the login handler."""
    nonce: str = Field(..., description="OIDC nonce sent in the authorization request", min_length=1)
    state: str = Field(..., description="Encoded flow state sent in the authorization request", min_length=1)


class FlowState(BaseModel):
    """Decoded form of the opaque state relayed through the identity provider."""
    route: str = Field(default="/", description="Post-login redirect target")
    nonce: str = Field(..., description="Anti-replay value independent of the OIDC nonce")


# ============================================================================
# Cookie Models
# ============================================================================

class CookieSpec(BaseModel):
    """Attributes of a single Set-Cookie header."""
    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Cookie name")
    value: str = Field(default="", description="Cookie value")
    max_age: int = Field(..., description="Max-Age in seconds (0 clears the cookie)", ge=0)
    path: str = Field(default="/", description="Cookie path")
    secure: bool = Field(default=True, description="Only sent over HTTPS")
    httponly: bool = Field(default=False, description="Hidden from client-side script")
    samesite: Optional[Literal["lax", "strict", "none"]] = Field(
        default="lax", description="SameSite attribute (None omits it)"
    )


# ============================================================================
# Session Models
# ============================================================================

class RolesClaim(BaseModel):
    roles: List[Any] = Field(default_factory=list, description="Provider groups, copied unchanged")


class AppMetadata(BaseModel):
    authorization: RolesClaim = Field(default_factory=RolesClaim)


class SessionPayload(BaseModel):
    """Payload of the platform session token."""
    exp: int = Field(..., description="Expiry (seconds since epoch)")
    iat: int = Field(..., description="Issued at (seconds since epoch)")
    updated_at: int = Field(..., description="Last update (same as iat)")
    aud: Union[str, List[str]] = Field(..., description="Audience copied from provider claims")
    sub: str = Field(..., description="Subject copied from provider claims")
    app_metadata: AppMetadata = Field(default_factory=AppMetadata)


# ============================================================================
# Service Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")


class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
