"""Shared dependencies for API endpoints.

Session tokens are read from the Authorization header (Bearer) and, for
browser clients, from the httpOnly session cookie.

WHY DEPENDENCY INJECTION:
- Consistent auth across all endpoints
- Easy to swap implementations (mailer, clock) in tests
- Testable with mocked dependencies
"""

import uuid
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.email import Mailer, get_mailer
from app.core.errors import AdminRequiredError, InvalidTokenError, UnauthorizedError
from app.core.tokens import SessionClaims, decode_session_token
from app.models import ADMIN_ROLES, User


def _read_token(request: Request) -> str | None:
    header = request.headers.get("authorization")
    if header:
        scheme, _, credentials = header.partition(" ")
        if scheme.lower() != "bearer" or not credentials.strip():
            raise InvalidTokenError()
        return credentials.strip()
    return request.cookies.get(settings.auth_cookie_name)


async def get_current_claims(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionClaims:
    """Verify the session token on the request.

    Validation steps:
    1. Read token from Authorization header, else from cookie
    2. Verify signature (HS256), exp, aud, iss, iat
    3. Check the user still exists
    4. Check token_invalidated_before (revocation)

    Raises:
        UnauthorizedError: No token.
        InvalidTokenError: Bad token, deleted user, or revoked token.
        ExpiredTokenError: Token expired.
    """
    token = _read_token(request)
    if not token:
        raise UnauthorizedError()

    claims = decode_session_token(token)

    # Revocation check: reject tokens issued before token_invalidated_before
    result = await db.execute(
        select(User.id, User.token_invalidated_before).where(User.id == claims.user_id)
    )
    row = result.one_or_none()
    if row is None:
        raise InvalidTokenError()
    invalidated_before = row.token_invalidated_before
    if invalidated_before is not None and claims.issued_at < invalidated_before:
        raise InvalidTokenError()

    return claims


async def get_current_user_id(
    claims: Annotated[SessionClaims, Depends(get_current_claims)],
) -> uuid.UUID:
    return claims.user_id


async def require_admin(
    claims: Annotated[SessionClaims, Depends(get_current_claims)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Require the current user to hold the admin or superuser role.

    The role is read from the database, not the token, so a demoted admin
    loses access immediately.

    Raises:
        AdminRequiredError: 403 if the user's role is not an admin role.
    """
    user = await db.get(User, claims.user_id)
    if user is None:
        raise InvalidTokenError()
    if user.role not in ADMIN_ROLES:
        raise AdminRequiredError()
    return user


# Reusable type aliases for dependency injection
CurrentClaims = Annotated[SessionClaims, Depends(get_current_claims)]
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]
AdminUser = Annotated[User, Depends(require_admin)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
MailerDep = Annotated[Mailer, Depends(get_mailer)]
