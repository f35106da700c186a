"""Authentication helpers for cookie management and credential input checks.

Shared utilities used by auth endpoints and services:
- set_auth_cookie / clear_auth_cookie: session token cookie for browser clients
- normalize_email / validate_email_address: email syntax check (email-validator)
  before any lookup
- validate_password: length rules (sync, no network)
"""

from email_validator import EmailNotValidError, validate_email
from fastapi import Response

from app.core.config import settings
from app.core.errors import ValidationError

_MAX_EMAIL_LENGTH = 255
_MAX_PASSWORD_LENGTH = 128


def set_auth_cookie(response: Response, token: str) -> None:
    """Set httpOnly session cookie on response.

    Security: httpOnly prevents XSS cookie theft. Secure flag and SameSite
    are configured via settings for environment-appropriate security.

    Args:
        response: FastAPI response object.
        token: Session token string.
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=settings.session_token_ttl_minutes * 60,
        domain=settings.auth_cookie_domain or None,
    )


def clear_auth_cookie(response: Response) -> None:
    """Expire the session cookie."""
    response.delete_cookie(
        key=settings.auth_cookie_name,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        domain=settings.auth_cookie_domain or None,
    )


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_email_address(email: str) -> str:
    """Validate email shape and return the normalized address.

    Raises:
        ValidationError: If the address is malformed or too long.
    """
    try:
        # Syntax only; deliverability would need a DNS lookup
        checked = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(
            "Please provide a valid email address",
            details=[{"field": "email"}],
        ) from exc
    normalized = normalize_email(checked.normalized)
    if len(normalized) > _MAX_EMAIL_LENGTH:
        raise ValidationError(
            "Please provide a valid email address",
            details=[{"field": "email"}],
        )
    return normalized


def validate_password(password: str) -> None:
    """Validate password length.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If password is shorter than settings.password_min_length
            or longer than 128 characters.
    """
    if len(password) < settings.password_min_length:
        raise ValidationError(
            f"Password must be at least {settings.password_min_length} characters",
            details=[{"field": "password"}],
        )
    if len(password) > _MAX_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at most {_MAX_PASSWORD_LENGTH} characters",
            details=[{"field": "password"}],
        )
