"""Tests for OAuthLinkRepository."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import undefer_group

from app.models.oauth_link import OAuthLink
from app.models.user import SECRETS_GROUP
from app.repositories.oauth_link_repository import OAuthLinkRepository
from tests.conftest import create_user


async def _load_with_tokens(db: AsyncSession, link_id) -> OAuthLink:
    stmt = (
        select(OAuthLink)
        .where(OAuthLink.id == link_id)
        .options(undefer_group(SECRETS_GROUP))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one()


async def test_create_and_lookup(db_session: AsyncSession) -> None:
    user = await create_user(db_session)

    link = await OAuthLinkRepository.create(
        db_session,
        user_id=user.id,
        provider="google",
        provider_account_id="g-1",
        access_token="at",  # nosec B106
    )
    found = await OAuthLinkRepository.get_by_provider_and_account_id(
        db_session, "google", "g-1"
    )

    assert found is not None
    assert found.id == link.id
    assert found.user_id == user.id


async def test_identity_is_unique_across_users(db_session: AsyncSession) -> None:
    alice = await create_user(db_session, email="alice@example.com")
    bob = await create_user(db_session, email="bob@example.com")
    await OAuthLinkRepository.create(
        db_session, user_id=alice.id, provider="google", provider_account_id="g-1"
    )
    await db_session.commit()

    with pytest.raises(IntegrityError):
        await OAuthLinkRepository.create(
            db_session, user_id=bob.id, provider="google", provider_account_id="g-1"
        )
    await db_session.rollback()


async def test_same_account_id_on_other_provider_is_allowed(
    db_session: AsyncSession,
) -> None:
    user = await create_user(db_session)
    await OAuthLinkRepository.create(
        db_session, user_id=user.id, provider="google", provider_account_id="1"
    )
    await OAuthLinkRepository.create(
        db_session, user_id=user.id, provider="facebook", provider_account_id="1"
    )

    links = await OAuthLinkRepository.list_for_user(db_session, user.id)

    assert sorted(link.provider for link in links) == ["facebook", "google"]


async def test_update_tokens_keeps_refresh_token_when_omitted(
    db_session: AsyncSession,
) -> None:
    user = await create_user(db_session)
    link = await OAuthLinkRepository.create(
        db_session,
        user_id=user.id,
        provider="google",
        provider_account_id="g-1",
        access_token="old-access",  # nosec B106
        refresh_token="old-refresh",  # nosec B106
    )
    expires = datetime.now(UTC) + timedelta(hours=1)

    await OAuthLinkRepository.update_tokens(
        db_session,
        link,
        access_token="new-access",  # nosec B106
        refresh_token=None,
        token_expires_at=expires,
    )
    await db_session.commit()

    stored = await _load_with_tokens(db_session, link.id)
    assert stored.access_token == "new-access"  # nosec B105
    assert stored.refresh_token == "old-refresh"  # nosec B105
    assert stored.token_expires_at == expires
