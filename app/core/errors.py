"""API error classes.

Every failure that reaches a caller is one of these. Operational errors carry
a stable machine-readable code and a safe message; anything else is logged
server-side and surfaced as InternalError.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints
- Easy to map to HTTP status codes in exception handlers
- Type-safe error handling in services/repositories
"""

import math


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors and input shape checks in services.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid auth credentials provided.
    """

    def __init__(
        self,
        message: str = "Authentication required",
        code: str = "UNAUTHORIZED",
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=401,
        )


class InvalidTokenError(UnauthorizedError):
    """Session or code token failed verification (401).

    Bad signature, malformed token, wrong audience/issuer, or missing claims.
    The message stays generic so callers learn nothing about which check failed.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message=message, code="INVALID_TOKEN")


class ExpiredTokenError(UnauthorizedError):
    """Token signature is valid but the token has expired (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message=message, code="EXPIRED_TOKEN")


class InvalidCredentialsError(UnauthorizedError):
    """Email/password pair rejected (401).

    Raised identically for unknown email and wrong password so the response
    cannot be used to enumerate accounts.
    """

    def __init__(self) -> None:
        super().__init__(
            message="Invalid email or password",
            code="INVALID_CREDENTIALS",
        )


class ForbiddenError(APIError):
    """Not allowed to access resource (403).

    Use when auth is valid but user lacks permission.
    """

    def __init__(
        self,
        message: str = "Access denied",
        code: str = "FORBIDDEN",
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=403,
        )


class AdminRequiredError(ForbiddenError):
    """Admin access required (403).

    Raised by require_admin when the session role is not admin or superuser.
    """

    def __init__(self) -> None:
        super().__init__(message="Admin access required", code="ADMIN_REQUIRED")


class EmailNotVerifiedError(ForbiddenError):
    """Password login attempted before the email was verified (403)."""

    def __init__(self) -> None:
        super().__init__(
            message="Please verify your email before signing in",
            code="EMAIL_NOT_VERIFIED",
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR doesn't belong to user.

    WHY NOT SEPARATE "FORBIDDEN" FOR WRONG OWNERSHIP:
    - Revealing "exists but not yours" leaks information
    - From user perspective, resource simply doesn't exist
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Use for duplicate entries, conflicting state, etc.
    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class DuplicateEmailError(ConflictError):
    """Email already belongs to another account (409)."""

    def __init__(self) -> None:
        super().__init__(
            code="EMAIL_ALREADY_EXISTS",
            message="An account with this email already exists",
        )


class OAuthOnlyAccountError(ConflictError):
    """Password login attempted on an account with no password (409).

    The account was created through an OAuth provider; the caller should sign
    in with that provider or set a password first.
    """

    def __init__(self) -> None:
        super().__init__(
            code="OAUTH_ONLY_ACCOUNT",
            message="This account uses social sign-in. Sign in with your provider.",
        )


class AccountLinkingBlockedError(ConflictError):
    """OAuth identity cannot be linked to the existing account (409).

    Raised when an OAuth email matches an account but either side's email is
    unverified. Linking would let someone who pre-registered the address take
    over the OAuth user's account (pre-hijacking).
    """

    def __init__(self) -> None:
        super().__init__(
            code="ACCOUNT_LINKING_BLOCKED",
            message=(
                "An account with this email already exists. "
                "Sign in with your password and verify your email first."
            ),
        )


class NoActiveCodeError(APIError):
    """No one-time code is pending for this flow (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="NO_ACTIVE_CODE",
            message="No active code. Request a new one.",
            status_code=400,
        )


class CodeExpiredError(APIError):
    """The pending one-time code is past its expiry (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="CODE_EXPIRED",
            message="This code has expired. Request a new one.",
            status_code=400,
        )


class InvalidCodeError(APIError):
    """Submitted one-time code does not match the pending one (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_CODE",
            message="Invalid code",
            status_code=400,
        )


class CooldownError(APIError):
    """A code was sent too recently (429).

    Args:
        remaining_seconds: Seconds until another code may be requested.
            Rounded up, never less than 1.
    """

    def __init__(self, remaining_seconds: float) -> None:
        self.remaining_seconds = max(1, math.ceil(remaining_seconds))
        super().__init__(
            code="COOLDOWN",
            message=(
                "A code was sent recently. "
                f"Try again in {self.remaining_seconds} seconds."
            ),
            status_code=429,
            details=[{"remaining_seconds": self.remaining_seconds}],
        )


class NotificationFailedError(APIError):
    """Email dispatch failed after the code was stored (502).

    The code stays valid; the user can request another after the cooldown.
    """

    def __init__(self, message: str = "Failed to send email. Try again later.") -> None:
        super().__init__(
            code="NOTIFICATION_FAILED",
            message=message,
            status_code=502,
        )


class MissingProviderEmailError(APIError):
    """OAuth profile carried no email address (502).

    Usually a misconfigured OAuth app (email scope not granted). Not retried.
    """

    def __init__(self, provider: str) -> None:
        super().__init__(
            code="MISSING_PROVIDER_EMAIL",
            message=f"{provider} did not return an email address",
            status_code=502,
        )


class MissingProviderIdentityError(APIError):
    """OAuth profile carried no stable account id (502)."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            code="MISSING_PROVIDER_IDENTITY",
            message=f"{provider} did not return an account identifier",
            status_code=502,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
