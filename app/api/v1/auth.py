"""Authentication endpoints for password-based auth and one-time codes.

Security considerations:
- login: one error for unknown email and wrong password, constant-time via the dummy hash
- register: bcrypt cost 12, email uniqueness, emails a verification code,
  issues no session until the email is verified
- forgot-password / resend-verification: silent for unknown emails
- reset-password / change-password: invalidate all prior sessions
- every code request shares one cooldown per user
"""

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.api.deps import CurrentClaims, CurrentUserId, DbSession, MailerDep
from app.core.auth import clear_auth_cookie, set_auth_cookie
from app.core.errors import InvalidTokenError
from app.core.rate_limiting import (
    CODE_REQUEST_LIMIT,
    CODE_SUBMIT_LIMIT,
    LOGIN_LIMIT,
    REGISTER_LIMIT,
    limiter,
)
from app.core.responses import DataResponse
from app.core.tokens import create_session_token
from app.repositories.user_repository import UserRepository
from app.schemas.user import UserResponse
from app.services.credential_auth import CredentialAuthService

router = APIRouter()

# Same body for known and unknown emails so responses can't be used to probe
_CODE_SENT_MESSAGE = "If an account exists for this email, a code has been sent."


# ===================================================================
# Request models
# ===================================================================


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    name: str | None = Field(None, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class EmailRequest(BaseModel):
    """Request body for POST /auth/resend-verification and /auth/forgot-password."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


class VerifyEmailRequest(BaseModel):
    """Request body for POST /auth/verify-email."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    code: str = Field(min_length=1, max_length=16)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    code: str = Field(min_length=1, max_length=16)
    new_password: str = Field(min_length=1, max_length=128)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /auth/change-password."""

    model_config = ConfigDict(extra="forbid")

    current_password: str | None = Field(None, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


# ===================================================================
# POST /auth/register
# ===================================================================


@router.post("/register", status_code=201)
@limiter.limit(REGISTER_LIMIT)
async def register(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: RegisterRequest,
    db: DbSession,
    mailer: MailerDep,
) -> DataResponse[dict]:
    """Register a new user with email + password.

    Unauthenticated. Creates an unverified user and emails a verification
    code. The user signs in after POST /auth/verify-email.

    Rate limit: 3 per hour per IP.
    """
    service = CredentialAuthService(db, mailer)
    registration = await service.register_with_password(
        body.email, body.password, name=body.name
    )
    return DataResponse(
        data={
            "id": str(registration.user.id),
            "email": registration.user.email,
            "email_verified": False,
            "code_expires_at": registration.code_expires_at.isoformat(),
        }
    )


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
@limiter.limit(LOGIN_LIMIT)
async def login(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    response: Response,
    db: DbSession,
    mailer: MailerDep,
) -> DataResponse[dict]:
    """Verify email + password and issue a session token.

    Unauthenticated. The token is returned in the body for API clients and
    set as an httpOnly cookie for browsers.

    Rate limit: 5 per 15 minutes per IP.
    """
    service = CredentialAuthService(db, mailer)
    sign_in = await service.login(body.email, body.password)
    set_auth_cookie(response, sign_in.token)
    return DataResponse(
        data={
            "token": sign_in.token,
            "token_type": "bearer",
            "user": {
                "id": str(sign_in.user.id),
                "email": sign_in.user.email,
                "name": sign_in.user.name,
                "role": sign_in.user.role.value,
            },
        }
    )


# ===================================================================
# Email verification
# ===================================================================


@router.post("/verify-email")
@limiter.limit(CODE_SUBMIT_LIMIT)
async def verify_email(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: VerifyEmailRequest,
    db: DbSession,
    mailer: MailerDep,
) -> DataResponse[dict]:
    """Consume an email verification code.

    Rate limit: 10 per minute per IP.
    """
    service = CredentialAuthService(db, mailer)
    user = await service.verify_email(body.email, body.code)
    return DataResponse(data={"email": user.email, "email_verified": True})


@router.post("/resend-verification")
@limiter.limit(CODE_REQUEST_LIMIT)
async def resend_verification(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailRequest,
    db: DbSession,
    mailer: MailerDep,
) -> DataResponse[dict]:
    """Email a new verification code.

    Rate limit: 5 per hour per IP, plus the per-user code cooldown.
    """
    service = CredentialAuthService(db, mailer)
    await service.resend_verification(body.email)
    return DataResponse(data={"message": _CODE_SENT_MESSAGE})


# ===================================================================
# Password reset
# ===================================================================


@router.post("/forgot-password")
@limiter.limit(CODE_REQUEST_LIMIT)
async def forgot_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailRequest,
    db: DbSession,
    mailer: MailerDep,
) -> DataResponse[dict]:
    """Email a password reset code.

    Rate limit: 5 per hour per IP, plus the per-user code cooldown.
    """
    service = CredentialAuthService(db, mailer)
    await service.request_password_reset(body.email)
    return DataResponse(data={"message": _CODE_SENT_MESSAGE})


@router.post("/reset-password")
@limiter.limit(CODE_SUBMIT_LIMIT)
async def reset_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ResetPasswordRequest,
    response: Response,
    db: DbSession,
    mailer: MailerDep,
) -> DataResponse[dict]:
    """Consume a reset code and set a new password.

    All existing sessions are signed out; the user logs in again with the
    new password.

    Rate limit: 10 per minute per IP.
    """
    service = CredentialAuthService(db, mailer)
    await service.reset_password(body.email, body.code, body.new_password)
    clear_auth_cookie(response)
    return DataResponse(data={"message": "Password updated"})


# ===================================================================
# Authenticated session endpoints
# ===================================================================


@router.post("/change-password")
@limiter.limit(CODE_REQUEST_LIMIT)
async def change_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ChangePasswordRequest,
    response: Response,
    user_id: CurrentUserId,
    db: DbSession,
    mailer: MailerDep,
) -> DataResponse[dict]:
    """Change password for authenticated user.

    Verifies the current password if one is set, invalidates all other
    sessions and re-issues a token so the current session stays valid.

    Rate limit: 5 per hour per user.
    """
    service = CredentialAuthService(db, mailer)
    user = await service.change_password(
        user_id,
        current_password=body.current_password,
        new_password=body.new_password,
    )
    token = create_session_token(user_id=user.id, role=user.role)
    set_auth_cookie(response, token)
    return DataResponse(data={"message": "Password updated", "token": token})


@router.get("/me")
async def me(claims: CurrentClaims, db: DbSession) -> DataResponse[UserResponse]:
    """Return the signed-in user."""
    user = await UserRepository.get_by_id(db, claims.user_id, include_secrets=True)
    if user is None:
        raise InvalidTokenError()
    return DataResponse(
        data=UserResponse.from_user(user, has_password=user.password_hash is not None)
    )


@router.post("/invalidate-sessions")
async def invalidate_sessions(
    response: Response,
    user_id: CurrentUserId,
    db: DbSession,
    mailer: MailerDep,
) -> DataResponse[dict]:
    """Sign out every session of the current user, this one included."""
    service = CredentialAuthService(db, mailer)
    await service.invalidate_sessions(user_id)
    clear_auth_cookie(response)
    return DataResponse(data={"message": "All sessions signed out"})


@router.post("/logout")
async def logout(response: Response) -> DataResponse[dict]:
    """Clear the session cookie.

    Bearer tokens stay valid until they expire; use /auth/invalidate-sessions
    to revoke them.
    """
    clear_auth_cookie(response)
    return DataResponse(data={"message": "Signed out"})
