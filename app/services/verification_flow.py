"""One-time code flows: email verification and password reset.

Per user and per flow the state is one of:

    NoActiveCode --issue--> CodeIssued --consume(ok)--> NoActiveCode
                               |  \\--consume(wrong)--> CodeIssued
                               \\--time passes--> expired (consume fails)

Expiry and cooldown are evaluated lazily against the clock on every call;
nothing runs in the background. Both flows share one cooldown anchor
(users.last_code_sent_at), so requesting a reset code right after a
verification code is also refused.

Codes are stored only as a bcrypt hash plus expiry. The plaintext leaves
this module once, in the email.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.config import settings
from app.core.email import Mailer
from app.core.errors import (
    CodeExpiredError,
    CooldownError,
    InvalidCodeError,
    NoActiveCodeError,
)
from app.core.security import generate_numeric_code, hash_code, verify_code
from app.models.base import utcnow
from app.models.user import FlowKind, User
from app.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class IssuedCode:
    """A freshly issued code. Only ever held in memory."""

    code: str
    expires_at: datetime


class VerificationFlowService:
    """Issues, sends and consumes one-time codes.

    Args:
        db: Async database session. send_code() commits it before handing
            the code to the mailer.
        mailer: Outbound mail dispatch.
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
        self._mailer = mailer
        self._clock = clock

    @property
    def cooldown(self) -> timedelta:
        return timedelta(minutes=settings.code_cooldown_minutes)

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=settings.code_ttl_minutes)

    def remaining_cooldown(self, user: User) -> float:
        """Seconds until another code may be issued (0 if none)."""
        if user.last_code_sent_at is None:
            return 0.0
        remaining = user.last_code_sent_at + self.cooldown - self._clock()
        return max(0.0, remaining.total_seconds())

    async def issue_code(self, user: User, flow: FlowKind) -> IssuedCode:
        """Generate and store a new code for the flow.

        Replaces any pending code for the same flow.

        Raises:
            CooldownError: A code (for either flow) was issued within the
                cooldown window.
        """
        remaining = self.remaining_cooldown(user)
        if remaining > 0:
            raise CooldownError(remaining)

        now = self._clock()
        code = generate_numeric_code(settings.code_length)
        expires_at = now + self.ttl
        stored = await UserRepository.store_code_if_cooled_down(
            self._db,
            user_id=user.id,
            flow=flow,
            code_hash=hash_code(code),
            expires_at=expires_at,
            now=now,
            cooldown_cutoff=now - self.cooldown,
        )
        if not stored:
            # Another request issued a code between our check and write
            fresh = await UserRepository.get_by_id(
                self._db, user.id, include_secrets=True
            )
            remaining = self.remaining_cooldown(fresh) if fresh else 0.0
            logger.info(
                "Code issue lost cooldown race",
                extra={"user_id": str(user.id), "flow": flow.value},
            )
            raise CooldownError(remaining)

        # Mirror the bulk UPDATE on the caller's instance for the next cooldown check
        set_committed_value(user, "last_code_sent_at", now)
        logger.info(
            "One-time code issued",
            extra={"user_id": str(user.id), "flow": flow.value},
        )
        return IssuedCode(code=code, expires_at=expires_at)

    async def send_code(self, user: User, flow: FlowKind) -> datetime:
        """Issue a code, persist it, then email it.

        The code is committed before dispatch and is not rolled back if the
        mailer fails; the user can request another once the cooldown passes.

        Returns:
            Expiry of the sent code.

        Raises:
            CooldownError: Still cooling down.
            NotificationFailedError: Mailer could not send.
        """
        issued = await self.issue_code(user, flow)
        await self._db.commit()

        if flow is FlowKind.EMAIL_VERIFICATION:
            await self._mailer.send_verification_code(
                to_email=user.email, code=issued.code
            )
        else:
            await self._mailer.send_password_reset_code(
                to_email=user.email, code=issued.code
            )
        return issued.expires_at

    async def consume_code(self, user: User, flow: FlowKind, code: str) -> User:
        """Validate and clear a pending code.

        Successful consumption clears hash and expiry exactly once. For
        email verification it also marks the email verified.

        Returns:
            The user reloaded with current values.

        Raises:
            NoActiveCodeError: No code pending, or a concurrent request
                consumed it first.
            CodeExpiredError: Pending code is past its expiry.
            InvalidCodeError: Code does not match.
        """
        fresh = await UserRepository.get_by_id(self._db, user.id, include_secrets=True)
        if fresh is None:
            raise NoActiveCodeError()

        code_hash: str | None = getattr(fresh, flow.hash_column)
        expires_at: datetime | None = getattr(fresh, flow.expiry_column)
        if code_hash is None or expires_at is None:
            raise NoActiveCodeError()

        now = self._clock()
        if now >= expires_at:
            raise CodeExpiredError()

        if not verify_code(code.strip(), code_hash):
            logger.info(
                "Invalid one-time code submitted",
                extra={"user_id": str(user.id), "flow": flow.value},
            )
            raise InvalidCodeError()

        cleared = await UserRepository.clear_code(
            self._db,
            user_id=fresh.id,
            flow=flow,
            expected_hash=code_hash,
            verified_at=now if flow is FlowKind.EMAIL_VERIFICATION else None,
        )
        if not cleared:
            raise NoActiveCodeError()

        logger.info(
            "One-time code consumed",
            extra={"user_id": str(user.id), "flow": flow.value},
        )
        reloaded = await UserRepository.get_by_id(
            self._db, user.id, include_secrets=True
        )
        return reloaded if reloaded is not None else fresh
