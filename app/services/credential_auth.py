"""Password-based authentication and the account flows around it.

Registration, login, email verification, resend, password reset and
password change. Input shape is checked before the store is touched.

Enumeration defense:
- login returns the same InvalidCredentialsError for unknown email and
  wrong password, and burns a full bcrypt comparison in both cases
- resend_verification and request_password_reset return silently for
  unknown emails
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import validate_email_address, validate_password
from app.core.email import Mailer
from app.core.errors import (
    EmailNotVerifiedError,
    InvalidCredentialsError,
    NoActiveCodeError,
    NotFoundError,
    OAuthOnlyAccountError,
    ValidationError,
)
from app.core.security import burn_dummy_check, hash_password, verify_password
from app.core.tokens import create_session_token
from app.models.base import utcnow
from app.models.user import FlowKind, User
from app.repositories.user_repository import UserRepository
from app.services.verification_flow import Clock, VerificationFlowService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Registration:
    """Outcome of a password registration.

    Attributes:
        user: The new, unverified user.
        code_expires_at: Expiry of the verification code that was emailed.
    """

    user: User
    code_expires_at: datetime


@dataclass(frozen=True)
class SignIn:
    """Outcome of a successful login."""

    user: User
    token: str


class CredentialAuthService:
    """Password authentication service.

    Args:
        db: Async database session.
        mailer: Outbound mail dispatch for the code flows.
        clock: Returns the current aware UTC time. Injected by tests.
    """

    def __init__(
        self,
        db: AsyncSession,
        mailer: Mailer,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db
        self._clock = clock
        self._flows = VerificationFlowService(db, mailer, clock=clock)

    async def register_with_password(
        self,
        email: str,
        password: str,
        *,
        name: str | None = None,
    ) -> Registration:
        """Create an unverified password account and email a verification code.

        No session token is issued: the account cannot sign in until the
        email is verified.

        Raises:
            ValidationError: Malformed email or password out of bounds.
            DuplicateEmailError: Email already registered.
            NotificationFailedError: Account and code were saved but the email
                could not be sent.
        """
        normalized = validate_email_address(email)
        validate_password(password)

        user = await UserRepository.create(
            self._db,
            email=normalized,
            password_hash=hash_password(password),
            name=name,
        )
        logger.info("User registered", extra={"user_id": str(user.id)})

        expires_at = await self._flows.send_code(user, FlowKind.EMAIL_VERIFICATION)
        return Registration(user=user, code_expires_at=expires_at)

    async def login(self, email: str, password: str) -> SignIn:
        """Verify email/password and issue a session token.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
            OAuthOnlyAccountError: Account has no password.
            EmailNotVerifiedError: Password correct but email unverified.
        """
        user = await UserRepository.get_by_email(self._db, email, include_secrets=True)
        if user is None:
            # Security: same cost as a real comparison
            burn_dummy_check(password)
            raise InvalidCredentialsError()

        if user.password_hash is None:
            burn_dummy_check(password)
            raise OAuthOnlyAccountError()

        if not verify_password(password, user.password_hash):
            logger.info("Failed password login", extra={"user_id": str(user.id)})
            raise InvalidCredentialsError()

        if not user.is_email_verified:
            raise EmailNotVerifiedError()

        token = create_session_token(user_id=user.id, role=user.role)
        logger.info("User signed in", extra={"user_id": str(user.id)})
        return SignIn(user=user, token=token)

    async def verify_email(self, email: str, code: str) -> User:
        """Consume the verification code and mark the email verified.

        Raises:
            NoActiveCodeError: Unknown email, already verified, or no code.
            CodeExpiredError: Code past its expiry.
            InvalidCodeError: Wrong code.
        """
        user = await UserRepository.get_by_email(self._db, email)
        if user is None:
            raise NoActiveCodeError()
        return await self._flows.consume_code(user, FlowKind.EMAIL_VERIFICATION, code)

    async def resend_verification(self, email: str) -> None:
        """Email a fresh verification code.

        Silent for unknown emails.

        Raises:
            ValidationError: Email is already verified.
            CooldownError: A code was sent recently.
            NotificationFailedError: Email could not be sent.
        """
        user = await UserRepository.get_by_email(self._db, email)
        if user is None:
            logger.info("Verification resend for unknown email")
            return
        if user.is_email_verified:
            raise ValidationError("Email is already verified")
        await self._flows.send_code(user, FlowKind.EMAIL_VERIFICATION)

    async def request_password_reset(self, email: str) -> None:
        """Email a password reset code.

        Silent for unknown emails. OAuth-only accounts may use this to set
        their first password.

        Raises:
            CooldownError: A code was sent recently.
            NotificationFailedError: Email could not be sent.
        """
        user = await UserRepository.get_by_email(self._db, email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return
        await self._flows.send_code(user, FlowKind.PASSWORD_RESET)

    async def reset_password(self, email: str, code: str, new_password: str) -> User:
        """Consume a reset code and replace the password.

        Signs out every existing session of the user.

        Raises:
            ValidationError: New password out of bounds.
            NoActiveCodeError: Unknown email or no pending reset code.
            CodeExpiredError: Code past its expiry.
            InvalidCodeError: Wrong code.
        """
        validate_password(new_password)
        user = await UserRepository.get_by_email(self._db, email)
        if user is None:
            raise NoActiveCodeError()

        user = await self._flows.consume_code(user, FlowKind.PASSWORD_RESET, code)
        updated = await UserRepository.update(
            self._db,
            user.id,
            password_hash=hash_password(new_password),
            token_invalidated_before=self._clock(),
        )
        logger.info("Password reset", extra={"user_id": str(user.id)})
        return updated if updated is not None else user

    async def change_password(
        self,
        user_id: uuid.UUID,
        *,
        current_password: str | None,
        new_password: str,
    ) -> User:
        """Change the password of a signed-in user.

        Users without a password (OAuth-only) may set one without supplying
        a current password. Every existing session is signed out; the caller
        issues a fresh token for the current one.

        Raises:
            ValidationError: New password out of bounds.
            InvalidCredentialsError: Current password missing or wrong.
            NotFoundError: User no longer exists.
        """
        validate_password(new_password)
        user = await UserRepository.get_by_id(self._db, user_id, include_secrets=True)
        if user is None:
            raise NotFoundError("User")

        if user.password_hash is not None and (
            current_password is None
            or not verify_password(current_password, user.password_hash)
        ):
            raise InvalidCredentialsError()

        updated = await UserRepository.update(
            self._db,
            user.id,
            password_hash=hash_password(new_password),
            token_invalidated_before=self._clock(),
        )
        logger.info("Password changed", extra={"user_id": str(user.id)})
        return updated if updated is not None else user

    async def invalidate_sessions(self, user_id: uuid.UUID) -> None:
        """Reject every session token issued before now."""
        await UserRepository.update(
            self._db, user_id, token_invalidated_before=self._clock()
        )
        logger.info("Sessions invalidated", extra={"user_id": str(user_id)})
