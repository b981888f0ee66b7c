"""
Configuration module for the OIDC login bridge.

This module uses Pydantic Settings to load and validate environment variables
for the identity provider, the session token signing secret, and cookie
behaviour.

Environment variables are loaded from .env file or system environment.
Handlers never read the environment themselves: the Settings instance is
passed to each of them explicitly.
"""

from functools import lru_cache
from typing import Optional
from urllib.parse import urlencode, quote

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Process-wide and immutable once loaded: identity provider domain,
    client id, application base URL, signing secret and local-dev flag.
    """

    # =========================================================================
    # Identity Provider Configuration (OIDC)
    # =========================================================================

    OIDC_DOMAIN: str = Field(
        ...,
        description="Identity provider domain without scheme (e.g., 'acme.crossid.io')",
        min_length=1,
    )

    OIDC_CLIENT_ID: str = Field(
        ...,
        description="Client identifier registered with the identity provider",
        min_length=1,
    )

    OIDC_CLIENT_SECRET: Optional[str] = Field(
        None,
        description="Client secret (only needed for the 'code' response type)",
    )

    OIDC_RESPONSE_TYPE: str = Field(
        default="id_token",
        description="OIDC response type requested at login ('id_token' or 'code')",
    )

    # =========================================================================
    # Application Configuration
    # =========================================================================

    APP_URL: str = Field(
        ...,
        description="Public base URL of the application (e.g., https://app.example)",
        min_length=1,
    )

    CALLBACK_PATH: str = Field(
        default="/auth/callback",
        description="Path of the callback handler, appended to APP_URL to form the redirect URI",
    )

    LOGOUT_PATH: str = Field(
        default="/v2/logout",
        description="Path of the identity provider logout endpoint",
    )

    LOCAL_DEV: bool = Field(
        default=False,
        description="Running on a local development server (cookies are not marked Secure)",
    )

    # =========================================================================
    # Session Token Configuration
    # =========================================================================

    SESSION_TOKEN_SECRET: str = Field(
        ...,
        description="Secret key for signing session tokens (must be cryptographically secure)",
        min_length=32,
    )

    SESSION_COOKIE_NAME: str = Field(
        default="nf_jwt",
        description="Name of the platform session cookie",
    )

    LOGIN_COOKIE_NAME: str = Field(
        default="oidc_login",
        description="Name of the short-lived login correlation cookie",
    )

    # =========================================================================
    # Runtime Configuration
    # =========================================================================

    HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for identity provider HTTP calls",
        gt=0,
        le=60,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra env vars not defined here
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def issuer_url(self) -> str:
        """
        Construct the identity provider issuer URL used for discovery.

        Returns:
            HTTPS URL of the provider domain.
        """
        return f"https://{self.OIDC_DOMAIN}"

    @property
    def app_url_str(self) -> str:
        """Application base URL without trailing slash."""
        return self.APP_URL.rstrip("/")

    @property
    def redirect_uri(self) -> str:
        """
        Redirect URI registered with the provider.

        Returns:
            Absolute URL of the callback handler.
        """
        return f"{self.app_url_str}{self.CALLBACK_PATH}"

    @property
    def logout_url(self) -> str:
        """
        Build the provider logout URL.

        Returns:
            Logout endpoint with returnTo and client_id query parameters.
        """
        query = urlencode(
            {"returnTo": self.APP_URL, "client_id": self.OIDC_CLIENT_ID},
            quote_via=quote,
        )
        return f"https://{self.OIDC_DOMAIN}{self.LOGOUT_PATH}?{query}"

    @property
    def cookie_secure(self) -> bool:
        """Cookies carry the Secure attribute unless running locally."""
        return not self.LOCAL_DEV

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("OIDC_DOMAIN")
    @classmethod
    def validate_domain(cls, v: str) -> str:
        """
        Validate that OIDC_DOMAIN is a bare host name.

        Args:
            v: Raw domain string

        Returns:
            Domain without surrounding whitespace or trailing slash

        Raises:
            ValueError: If a scheme or path is included
        """
        v = v.strip().rstrip("/")
        if "://" in v:
            raise ValueError(
                f"Invalid OIDC_DOMAIN: '{v}'. "
                "Expected a host name without scheme (e.g., 'acme.crossid.io')"
            )
        if "/" in v or " " in v:
            raise ValueError(f"Invalid OIDC_DOMAIN: '{v}'. Domain must not contain a path")
        return v

    @field_validator("OIDC_RESPONSE_TYPE")
    @classmethod
    def validate_response_type(cls, v: str) -> str:
        """
        Validate the response type is one the callback handler understands.

        Raises:
            ValueError: If response type is not supported
        """
        allowed_response_types = ["id_token", "code"]

        if v not in allowed_response_types:
            raise ValueError(
                f"OIDC_RESPONSE_TYPE must be one of {allowed_response_types}, got: {v}"
            )

        return v

    @field_validator("APP_URL")
    @classmethod
    def validate_app_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"APP_URL must be an absolute http(s) URL, got: {v}")
        return v

    @field_validator("CALLBACK_PATH", "LOGOUT_PATH")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"Path must start with '/', got: {v}")
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.

    Example:
        >>> from oidc_bridge.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.redirect_uri)
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate critical configuration settings and return a status report.

    This can be called during application startup to surface settings
    that are valid but likely wrong for the deployment.

    Args:
        settings: Loaded settings

    Returns:
        Dictionary with validation status and any warnings.
    """
    errors = []
    warnings = []

    if settings.OIDC_RESPONSE_TYPE == "code" and not settings.OIDC_CLIENT_SECRET:
        errors.append("OIDC_CLIENT_SECRET is required for the 'code' response type")

    if settings.LOCAL_DEV and settings.app_url_str.startswith("https://"):
        warnings.append("LOCAL_DEV is enabled for an https APP_URL; cookies will not be marked Secure")

    if not settings.LOCAL_DEV and settings.app_url_str.startswith("http://"):
        warnings.append("APP_URL is plain http; Secure cookies will not be sent back by browsers")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "redirect_uri": settings.redirect_uri,
        "response_type": settings.OIDC_RESPONSE_TYPE,
    }
