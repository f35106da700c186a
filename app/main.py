"""FastAPI application entry point.

REST API with versioned routing and consistent error handling.

This module creates and configures the FastAPI application, including:
- Exception handlers for API errors
- API v1 router mounting
- Health check endpoint
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from app.api.v1.router import router as v1_router
from app.core.config import settings
from app.core.errors import APIError, CooldownError, InternalError
from app.core.rate_limiting import limiter, rate_limit_exceeded_handler
from app.core.responses import ErrorDetail, ErrorResponse
from app.core.tokens import TokenConfigurationError

logger = structlog.get_logger()


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors.

    Return consistent error envelope. Cooldown responses also carry
    Retry-After so clients can schedule the next request.

    Args:
        request: The incoming request.
        exc: The APIError that was raised.

    Returns:
        JSONResponse with error envelope and appropriate status code.
    """
    headers = None
    if isinstance(exc, CooldownError):
        headers = {"Retry-After": str(exc.remaining_seconds)}
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
            )
        ).model_dump(),
        headers=headers,
    )


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Map request validation failures to 400 VALIDATION_ERROR.

    Each pydantic error becomes one details entry (loc, msg, type).

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse with VALIDATION_ERROR code and field-level details.
    """
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details=[
                    {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                    for e in exc.errors()
                ],
            )
        ).model_dump(),
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    The exception and path are logged server-side; the client only sees
    500 INTERNAL_ERROR with a generic message.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse with generic error message (500).
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))

    return api_error_handler(request, InternalError())


def create_app() -> FastAPI:
    """Build the application: error handlers, limiter, v1 routes, health.

    Returns:
        Configured FastAPI application instance.

    Raises:
        TokenConfigurationError: AUTH_SECRET is not set. Without it no
            session can be issued or verified, so the service refuses to start.
    """
    if not settings.auth_secret.get_secret_value():
        msg = (
            "AUTH_SECRET must be set. Generate with: "
            'python -c "import secrets; print(secrets.token_hex(32))"'
        )
        raise TokenConfigurationError(msg)

    app = FastAPI(
        title="Accounts API",
        version="1.0.0",
        description="Authentication and account lifecycle service",
    )

    # Register exception handlers
    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    # Rate limiting (Security)
    app.state.limiter = limiter

    # Include v1 router at /api/v1
    app.include_router(v1_router, prefix="/api/v1")

    # Health check endpoint (outside versioned API)
    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring.

        Returns:
            {"status": "healthy"} if service is running.
        """
        return {"status": "healthy"}

    return app


# Create the application instance
# Used by uvicorn: uvicorn app.main:app
app = create_app()
