"""Signed token issuance and verification.

Two token shapes share one HS256 secret:

- Session tokens: issued after a successful sign-in, carry the user id (sub)
  and role. Verified on every authenticated request.
- Code tokens: short-lived signed claim bags. Used to carry OAuth state and
  the PKCE verifier from initiation to callback.

Both carry aud/iss/iat/exp. Issuing and verifying are pure and synchronous.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from app.core.config import settings
from app.core.errors import ExpiredTokenError, InvalidTokenError
from app.models.user import UserRole

_ALGORITHM = "HS256"

# Distinguishes code tokens from session tokens signed with the same secret
_CODE_TOKEN_TYPE = "code"

_RESERVED_CLAIMS = frozenset({"aud", "iss", "iat", "exp", "typ"})


class TokenConfigurationError(RuntimeError):
    """Signing secret is missing. Fatal; the service must not start."""


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token.

    Attributes:
        user_id: Account the token was issued to.
        role: Role at issuance time.
        issued_at: Token iat, compared against token_invalidated_before.
        expires_at: Token exp.
    """

    user_id: uuid.UUID
    role: UserRole
    issued_at: datetime
    expires_at: datetime


def _secret() -> str:
    secret = settings.auth_secret.get_secret_value()
    if not secret:
        msg = "AUTH_SECRET is not configured; cannot sign or verify tokens"
        raise TokenConfigurationError(msg)
    return secret


def _decode(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(
            token,
            _secret(),
            algorithms=[_ALGORITHM],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
            options={"require": ["exp", "iat", "aud", "iss"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise ExpiredTokenError() from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidTokenError() from exc


def create_session_token(
    *,
    user_id: uuid.UUID,
    role: UserRole,
    expires_delta: timedelta | None = None,
    now: datetime | None = None,
) -> str:
    """Create a signed session token.

    Args:
        user_id: Account id for the sub claim.
        role: Account role for the role claim.
        expires_delta: Lifetime. Defaults to settings.session_token_ttl_minutes.
        now: Issue time override (tests).

    Returns:
        Encoded JWT string.

    Raises:
        TokenConfigurationError: If AUTH_SECRET is empty.
    """
    issued = now or datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=settings.session_token_ttl_minutes)
    payload = {
        "sub": str(user_id),
        "role": UserRole(role).value,
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        # Sub-second precision; compared against token_invalidated_before
        "iat": issued.timestamp(),
        "exp": (issued + lifetime).timestamp(),
    }
    return jwt.encode(payload, _secret(), algorithm=_ALGORITHM)


def decode_session_token(token: str) -> SessionClaims:
    """Verify a session token and return its claims.

    Raises:
        ExpiredTokenError: Signature valid but exp is in the past.
        InvalidTokenError: Any other verification failure, including a code
            token presented as a session token.
        TokenConfigurationError: If AUTH_SECRET is empty.
    """
    payload = _decode(token)
    if payload.get("typ") == _CODE_TOKEN_TYPE:
        raise InvalidTokenError()
    try:
        return SessionClaims(
            user_id=uuid.UUID(payload["sub"]),
            role=UserRole(payload["role"]),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
        )
    except (KeyError, ValueError, TypeError) as exc:
        raise InvalidTokenError() from exc


def create_code_token(
    claims: dict[str, Any],
    *,
    ttl_seconds: int,
    now: datetime | None = None,
) -> str:
    """Sign a short-lived claim bag.

    Args:
        claims: Application claims. Must not use reserved names
            (aud, iss, iat, exp, typ).
        ttl_seconds: Lifetime in seconds.
        now: Issue time override (tests).

    Raises:
        ValueError: If claims use a reserved name.
        TokenConfigurationError: If AUTH_SECRET is empty.
    """
    clash = _RESERVED_CLAIMS & claims.keys()
    if clash:
        msg = f"Reserved claim names not allowed: {sorted(clash)}"
        raise ValueError(msg)
    issued = now or datetime.now(UTC)
    payload = {
        **claims,
        "typ": _CODE_TOKEN_TYPE,
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "iat": issued.timestamp(),
        "exp": (issued + timedelta(seconds=ttl_seconds)).timestamp(),
    }
    return jwt.encode(payload, _secret(), algorithm=_ALGORITHM)


def decode_code_token(token: str) -> dict[str, Any]:
    """Verify a code token and return its application claims.

    Raises:
        ExpiredTokenError: Past its exp.
        InvalidTokenError: Any other verification failure, including a
            session token presented as a code token.
    """
    payload = _decode(token)
    if payload.get("typ") != _CODE_TOKEN_TYPE:
        raise InvalidTokenError()
    return {k: v for k, v in payload.items() if k not in _RESERVED_CLAIMS}
