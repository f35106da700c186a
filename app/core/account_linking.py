"""Account linking for OAuth sign-in.

Automatic linking by verified email with pre-hijack defense.

Rules:
1. If provider+account_id already exists → returning user (tokens refreshed)
2. If email exists AND both sides verified → link to that user
3. If email exists but either side unverified → REJECT (pre-hijack defense)
4. If no matching email → create new user with one link

Two callbacks for the same new identity can race past steps 1-3. The unique
indexes on users.email and (provider, provider_account_id) reject the loser,
which rolls back and resolves again, landing in step 1 or 2.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    AccountLinkingBlockedError,
    DuplicateEmailError,
    MissingProviderEmailError,
    MissingProviderIdentityError,
)
from app.core.oauth import OAuthProfile
from app.models.user import User
from app.repositories.oauth_link_repository import OAuthLinkRepository
from app.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


async def _resolve_once(
    db: AsyncSession,
    *,
    provider: str,
    profile: OAuthProfile,
    provider_account_id: str,
    email: str,
) -> tuple[User, bool]:
    # Step 1: Check if this provider+account_id already exists (returning user)
    user = await UserRepository.get_by_oauth_identity(db, provider, provider_account_id)
    if user is not None:
        link = next(
            link
            for link in user.oauth_links
            if link.provider == provider
            and link.provider_account_id == provider_account_id
        )
        await OAuthLinkRepository.update_tokens(
            db,
            link,
            access_token=profile.access_token,
            refresh_token=profile.refresh_token,
            token_expires_at=profile.token_expires_at,
        )
        logger.info(
            "Returning OAuth user",
            extra={"user_id": str(user.id), "provider": provider},
        )
        return user, False

    # Step 2: Check if email exists for potential account linking
    existing_user = await UserRepository.get_by_email(db, email)

    if existing_user is not None:
        # Security: Only link if BOTH the provider AND existing account verify email
        # Pre-hijack defense: prevents attacker from pre-registering with victim's
        # email and having the victim's OAuth login merge into attacker's account
        can_link = profile.email_verified and existing_user.is_email_verified

        if not can_link:
            logger.warning(
                "OAuth account linking blocked by email verification",
                extra={
                    "provider": provider,
                    "provider_verified": profile.email_verified,
                    "existing_verified": existing_user.is_email_verified,
                },
            )
            raise AccountLinkingBlockedError()

        already_linked = any(
            link.provider == provider
            and link.provider_account_id == provider_account_id
            for link in existing_user.oauth_links
        )
        if not already_linked:
            existing_user.oauth_links.append(
                OAuthLinkRepository.build(
                    provider=provider,
                    provider_account_id=provider_account_id,
                    access_token=profile.access_token,
                    refresh_token=profile.refresh_token,
                    token_expires_at=profile.token_expires_at,
                )
            )
            await db.flush()
        logger.info(
            "Linked OAuth account to existing user",
            extra={"user_id": str(existing_user.id), "provider": provider},
        )
        return existing_user, False

    # Step 3: Create new user + link
    new_user = await UserRepository.create(
        db,
        email=email,
        name=profile.name,
        image=profile.image,
        email_verified=datetime.now(UTC) if profile.email_verified else None,
        oauth_link=OAuthLinkRepository.build(
            provider=provider,
            provider_account_id=provider_account_id,
            access_token=profile.access_token,
            refresh_token=profile.refresh_token,
            token_expires_at=profile.token_expires_at,
        ),
    )
    logger.info(
        "Created new OAuth user",
        extra={"user_id": str(new_user.id), "provider": provider},
    )
    return new_user, True


async def resolve_oauth_identity(
    db: AsyncSession,
    *,
    provider: str,
    profile: OAuthProfile,
) -> tuple[User, bool]:
    """Find, link, or create the user for an external identity.

    Idempotent: resolving the same profile twice yields the same user and
    never a second link.

    Args:
        db: Async database session. Rolled back if a concurrent callback
            wins the race on a unique index.
        provider: Provider name (e.g., "google", "facebook").
        profile: External identity from the provider.

    Returns:
        Tuple of (User, created) where created is True if a new user was made.

    Raises:
        MissingProviderIdentityError: Profile carries no account id.
        MissingProviderEmailError: Profile carries no email address.
        AccountLinkingBlockedError: Email matches an account but linking is
            unsafe (either side unverified).
    """
    if not profile.provider_account_id:
        raise MissingProviderIdentityError(provider)
    if not profile.email:
        raise MissingProviderEmailError(provider)

    # Normalize email early for consistent matching
    email = profile.email.strip().lower()

    try:
        return await _resolve_once(
            db,
            provider=provider,
            profile=profile,
            provider_account_id=profile.provider_account_id,
            email=email,
        )
    except (IntegrityError, DuplicateEmailError):
        logger.info(
            "Concurrent OAuth resolution detected, retrying",
            extra={"provider": provider},
        )
        await db.rollback()

    # After a lost race the winner's rows are committed, so one retry settles it
    return await _resolve_once(
        db,
        provider=provider,
        profile=profile,
        provider_account_id=profile.provider_account_id,
        email=email,
    )
