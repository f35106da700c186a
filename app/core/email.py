"""Email sending via Resend API.

Plain-text one-time code emails for email verification and password reset.
The flow manager depends on the Mailer protocol only; ResendMailer is the
production implementation, tests substitute a recording mailer.
"""

import logging
from typing import Protocol

import httpx

from app.core.config import settings
from app.core.errors import NotificationFailedError

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


class Mailer(Protocol):
    """Outbound mail dispatch used by the code flows.

    Implementations raise NotificationFailedError when the message could not
    be handed to the transport.
    """

    async def send_verification_code(self, *, to_email: str, code: str) -> None: ...

    async def send_password_reset_code(self, *, to_email: str, code: str) -> None: ...


class ResendMailer:
    """Mailer that posts to the Resend HTTP API."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        from_address: str | None = None,
        api_url: str = _RESEND_API_URL,
    ) -> None:
        self._api_key = (
            api_key
            if api_key is not None
            else settings.resend_api_key.get_secret_value()
        )
        self._from = from_address or settings.email_from
        self._api_url = api_url

    async def send_verification_code(self, *, to_email: str, code: str) -> None:
        await self._send(
            to_email=to_email,
            subject="Verify your email",
            text=(
                f"Your verification code is: {code}\n\n"
                f"This code expires in {settings.code_ttl_minutes} minutes. "
                "If you didn't create an account, you can safely ignore this email."
            ),
        )

    async def send_password_reset_code(self, *, to_email: str, code: str) -> None:
        await self._send(
            to_email=to_email,
            subject="Reset your password",
            text=(
                f"Your password reset code is: {code}\n\n"
                f"This code expires in {settings.code_ttl_minutes} minutes. "
                "If you didn't request a reset, you can safely ignore this email."
            ),
        )

    async def _send(self, *, to_email: str, subject: str, text: str) -> None:
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self._api_url,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={
                        "from": self._from,
                        "to": to_email,
                        "subject": subject,
                        "text": text,
                    },
                    timeout=_RESEND_TIMEOUT,
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "Failed to send email",
                extra={"subject": subject},
                exc_info=True,
            )
            raise NotificationFailedError() from exc


def get_mailer() -> Mailer:
    """Dependency that provides the configured mailer."""
    return ResendMailer()
