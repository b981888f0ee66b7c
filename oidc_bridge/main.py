"""
FastAPI Application Factory
===========================

Entry point for the OIDC login bridge.

Architecture:
    Browser → /auth/login → Identity Provider → /auth/callback → Browser (with session cookie)

Routers:
    - /auth/*       : Login, callback, logout and session inspection
    - /health       : Health check endpoint

Environment Variables Required:
    - OIDC_DOMAIN: Identity provider domain (e.g., "acme.crossid.io")
    - OIDC_CLIENT_ID: Client identifier registered with the provider
    - APP_URL: Public base URL of the application
    - SESSION_TOKEN_SECRET: Secret for signing session tokens
    - LOCAL_DEV: "true" on local development servers (default: false)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn oidc_bridge.main:create_app --factory --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn oidc_bridge.main:create_app --factory --host 0.0.0.0 --port 8080 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .auth import auth_router
from .auth.exceptions import AuthFlowError
from .config import Settings, get_settings, validate_configuration
from .models import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - Route handlers
        - Exception handlers

    Args:
        settings: Settings to use; loaded from the environment when omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL)

        report = validate_configuration(settings)
        for warning in report["warnings"]:
            logger.warning(warning)
        for error in report["errors"]:
            logger.error(error)

        logger.info(
            "Starting OIDC login bridge",
            extra={
                "issuer_url": settings.issuer_url,
                "redirect_uri": settings.redirect_uri,
                "response_type": settings.OIDC_RESPONSE_TYPE,
                "local_dev": settings.LOCAL_DEV,
            }
        )

        yield

        logger.info("OIDC login bridge shutdown complete")

    app = FastAPI(
        title="OIDC Login Bridge",
        description="Bridges an OpenID Connect identity provider to a platform session cookie",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Every handler receives this instance
    app.dependency_overrides[get_settings] = lambda: settings

    app.include_router(auth_router)

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """
        Health check endpoint.

        Returns:
            Service health information
        """
        return HealthResponse(status="ok", service="oidc-bridge")

    @app.exception_handler(AuthFlowError)
    async def auth_flow_exception_handler(request: Request, exc: AuthFlowError) -> JSONResponse:
        """
        Turn login flow errors into JSON responses.

        No cookie or redirect is emitted: the login attempt ends here and
        the user restarts it from /auth/login.
        """
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"Authentication flow failed: {exc.message}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error_code": exc.error_code,
            }
        )

        body = ErrorResponse(error=exc.error_code, message=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(mode="json"),
            headers={"Cache-Control": "no-cache"},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        body = ErrorResponse(error="internal_server_error", message="An unexpected error occurred")
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("oidc_bridge.main:create_app", factory=True, host="0.0.0.0", port=8080)
