"""Rate limiting configuration using slowapi.

Security: Slows credential stuffing and code guessing, and caps how often a
client can trigger outbound email.

Requests carrying a valid session token are keyed on the token subject
(per-user) so users behind a shared IP don't starve each other.
Unauthenticated requests fall back to IP-based keying.

Usage in routers:
    from app.core.rate_limiting import limiter

    @router.post("/login")
    @limiter.limit("5/15minutes")
    async def login(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.errors import ExpiredTokenError, InvalidTokenError
from app.core.tokens import decode_session_token

# Per-endpoint limits
LOGIN_LIMIT = "5/15minutes"
REGISTER_LIMIT = "3/hour"
CODE_REQUEST_LIMIT = "5/hour"
CODE_SUBMIT_LIMIT = "10/minute"
OAUTH_INITIATE_LIMIT = "10/hour"
OAUTH_CALLBACK_LIMIT = "20/hour"


def _session_token_from_request(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return request.cookies.get(settings.auth_cookie_name)


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid session token: "user:{sub}"
    - No/invalid token: "unauth:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    # Note: No revocation check here; rate limiting only needs the subject
    # for keying. Full auth validation happens in deps.py.
    token = _session_token_from_request(request)
    if token:
        try:
            claims = decode_session_token(token)
            return f"user:{claims.user_id}"
        except (InvalidTokenError, ExpiredTokenError):
            pass

    return f"unauth:{get_remote_address(request)}"


# Global limiter instance
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns 429 Too Many Requests with standard error envelope.
    """
    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
                "details": None,
            }
        },
        headers={"Retry-After": "60"},
    )
