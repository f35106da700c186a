"""Repository for OAuthLink operations.

Stores provider tokens on write; nothing here ever returns them.
"""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.oauth_link import OAuthLink


class OAuthLinkRepository:
    """Stateless repository for OAuthLink table operations."""

    @staticmethod
    def build(
        *,
        provider: str,
        provider_account_id: str,
        access_token: str | None = None,
        refresh_token: str | None = None,
        token_expires_at: datetime | None = None,
    ) -> OAuthLink:
        """Build an unsaved link, for attaching to a user being created."""
        return OAuthLink(
            provider=provider,
            provider_account_id=provider_account_id,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=token_expires_at,
        )

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        provider: str,
        provider_account_id: str,
        access_token: str | None = None,
        refresh_token: str | None = None,
        token_expires_at: datetime | None = None,
    ) -> OAuthLink:
        """Link an external identity to an existing user.

        Raises:
            sqlalchemy.exc.IntegrityError: If the identity is already linked
                (to this or any other user).
        """
        link = OAuthLinkRepository.build(
            provider=provider,
            provider_account_id=provider_account_id,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=token_expires_at,
        )
        link.user_id = user_id
        db.add(link)
        await db.flush()
        return link

    @staticmethod
    async def get_by_provider_and_account_id(
        db: AsyncSession,
        provider: str,
        provider_account_id: str,
    ) -> OAuthLink | None:
        stmt = select(OAuthLink).where(
            OAuthLink.provider == provider,
            OAuthLink.provider_account_id == provider_account_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: uuid.UUID) -> list[OAuthLink]:
        stmt = (
            select(OAuthLink)
            .where(OAuthLink.user_id == user_id)
            .order_by(OAuthLink.created_at)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def update_tokens(
        db: AsyncSession,
        link: OAuthLink,
        *,
        access_token: str | None,
        refresh_token: str | None,
        token_expires_at: datetime | None,
    ) -> OAuthLink:
        """Replace stored provider tokens after a fresh sign-in.

        A provider that omits the refresh token on repeat sign-ins keeps the
        previously stored one.
        """
        link.access_token = access_token
        if refresh_token is not None:
            link.refresh_token = refresh_token
        link.token_expires_at = token_expires_at
        await db.flush()
        return link
