"""Repository for User CRUD operations and the one-time code primitives.

Default reads never load secret columns (password and code hashes). Pass
include_secrets=True on the paths that must compare against them.

The code primitives are single conditional UPDATE statements. They check
and write in one round trip, so two concurrent requests cannot both pass a
cooldown check or both consume the same code.
"""

import uuid
from datetime import datetime
from typing import Any, cast

from sqlalchemy import CursorResult, Select, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import undefer_group

from app.core.errors import DuplicateEmailError, ValidationError
from app.models.oauth_link import OAuthLink
from app.models.user import SECRETS_GROUP, FlowKind, User, UserRole

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'email', 'created_at', or 'updated_at'.
# - id: primary key, immutable
# - email: unique identity, changed only through change_email()
# - created_at/updated_at: managed timestamps
# Security: role is excluded to prevent mass-assignment privilege escalation.
# Use set_role() from the admin path.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "email_verified",
        "image",
        "password_hash",
        "token_invalidated_before",
    }
)


def _with_secrets(stmt: Select[tuple[User]]) -> Select[tuple[User]]:
    # populate_existing so an instance already in the identity map
    # picks up the secret columns and any changes made by bulk UPDATEs
    return stmt.options(undefer_group(SECRETS_GROUP)).execution_options(
        populate_existing=True
    )


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        include_secrets: bool = False,
    ) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.
            include_secrets: Also load password and code hashes, refreshing
                any copy already held by the session.

        Returns:
            User if found, None otherwise.
        """
        if not include_secrets:
            return await db.get(User, user_id)
        stmt = _with_secrets(select(User).where(User.id == user_id))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(
        db: AsyncSession,
        email: str,
        *,
        include_secrets: bool = False,
    ) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.
            include_secrets: Also load password and code hashes.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == email.strip().lower())
        if include_secrets:
            stmt = _with_secrets(stmt)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_oauth_identity(
        db: AsyncSession,
        provider: str,
        provider_account_id: str,
    ) -> User | None:
        """Fetch the user owning an external identity.

        The returned user's oauth_links are reloaded, so they always include
        the matched link.
        """
        stmt = (
            select(User)
            .join(OAuthLink, OAuthLink.user_id == User.id)
            .where(
                OAuthLink.provider == provider,
                OAuthLink.provider_account_id == provider_account_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str | None = None,
        oauth_link: OAuthLink | None = None,
        name: str | None = None,
        image: str | None = None,
        email_verified: datetime | None = None,
        role: UserRole = UserRole.USER,
    ) -> User:
        """Create a new user.

        Email is normalized to lowercase before storage. A user must be
        reachable somehow: either password_hash or oauth_link is required.

        Args:
            db: Async database session.
            email: User email address.
            password_hash: bcrypt hash (None for OAuth-only users).
            oauth_link: Unsaved OAuthLink to attach (None for password users).
            name: Display name.
            image: Profile picture URL.
            email_verified: Timestamp when email was verified.
            role: Initial role.

        Returns:
            Created User with generated fields populated.

        Raises:
            ValidationError: If neither password_hash nor oauth_link is given.
            DuplicateEmailError: If the email already exists, either found by
                the pre-check or reported by the unique index on flush. After
                the latter the session must be rolled back.
        """
        if password_hash is None and oauth_link is None:
            raise ValidationError("A user needs a password or a linked provider")

        normalized = email.strip().lower()
        existing = await db.execute(select(User.id).where(User.email == normalized))
        if existing.first() is not None:
            raise DuplicateEmailError()

        user = User(
            email=normalized,
            name=name,
            image=image,
            role=role,
            email_verified=email_verified,
            password_hash=password_hash,
            # Set explicitly so the raise-on-load columns are populated
            verification_code_hash=None,
            password_reset_code_hash=None,
            oauth_links=[oauth_link] if oauth_link is not None else [],
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise DuplicateEmailError() from exc
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **kwargs: str | datetime | None,
    ) -> User | None:
        """Update user fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user_id: UUID of the user to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None

        for field, value in kwargs.items():
            setattr(user, field, value)

        await db.flush()
        return user

    @staticmethod
    async def change_email(
        db: AsyncSession, user_id: uuid.UUID, *, email: str
    ) -> User | None:
        """Move a user to a new email address.

        The address comes back unverified and any pending verification code
        (mailed to the old address) is dropped. Separate from update() so the
        uniqueness check cannot be skipped.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            DuplicateEmailError: If another account already uses the address.
                After a unique-index failure the session must be rolled back.
        """
        normalized = email.strip().lower()
        existing = await db.execute(
            select(User.id).where(User.email == normalized, User.id != user_id)
        )
        if existing.first() is not None:
            raise DuplicateEmailError()

        # Fresh secrets so clearing the pending code is a real change
        result = await db.execute(
            _with_secrets(select(User).where(User.id == user_id))
        )
        user = result.scalar_one_or_none()
        if user is None:
            return None
        if user.email == normalized:
            return user

        verify = FlowKind.EMAIL_VERIFICATION
        user.email = normalized
        user.email_verified = None
        setattr(user, verify.hash_column, None)
        setattr(user, verify.expiry_column, None)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise DuplicateEmailError() from exc
        return user

    @staticmethod
    async def set_role(
        db: AsyncSession, user_id: uuid.UUID, *, role: UserRole
    ) -> User | None:
        """Set the role for a user.

        Separated from update() to prevent mass-assignment privilege
        escalation. Only call from explicit admin paths.

        Returns:
            Updated User if found, None if user does not exist.
        """
        user = await db.get(User, user_id)
        if user is None:
            return None
        user.role = role
        await db.flush()
        return user

    @staticmethod
    async def delete(db: AsyncSession, user_id: uuid.UUID) -> bool:
        """Delete a user and, by cascade, their OAuth links.

        Returns:
            True if a row was deleted.
        """
        await db.execute(delete(OAuthLink).where(OAuthLink.user_id == user_id))
        result = cast(
            CursorResult[Any],
            await db.execute(delete(User).where(User.id == user_id)),
        )
        deleted: int = result.rowcount
        return deleted > 0

    @staticmethod
    async def list_users(
        db: AsyncSession,
        *,
        offset: int = 0,
        limit: int = 20,
        role: UserRole | None = None,
        email_verified: bool | None = None,
        search: str | None = None,
    ) -> tuple[list[User], int]:
        """List users newest first, with optional filters.

        Args:
            db: Async database session.
            offset: Rows to skip.
            limit: Maximum rows to return.
            role: Only users with this role.
            email_verified: Only verified (True) or unverified (False) users.
            search: Case-insensitive substring of email or name.

        Returns:
            Tuple of (user list, total matching count).
        """
        conditions = []
        if role is not None:
            conditions.append(User.role == role)
        if email_verified is True:
            conditions.append(User.email_verified.is_not(None))
        elif email_verified is False:
            conditions.append(User.email_verified.is_(None))
        if search:
            term = search.strip().lower()
            # autoescape so % and _ in the term match literally
            conditions.append(
                or_(
                    User.email.contains(term, autoescape=True),
                    func.lower(User.name).contains(term, autoescape=True),
                )
            )

        count_stmt = select(func.count()).select_from(User).where(*conditions)
        total = (await db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(User)
            .where(*conditions)
            .order_by(User.created_at.desc(), User.id)
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all()), total

    # -----------------------------------------------------------------
    # One-time code primitives
    # -----------------------------------------------------------------

    @staticmethod
    async def store_code_if_cooled_down(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        flow: FlowKind,
        code_hash: str,
        expires_at: datetime,
        now: datetime,
        cooldown_cutoff: datetime,
    ) -> bool:
        """Store a code hash and expiry if the shared cooldown has passed.

        Check and write happen in one UPDATE: last_code_sent_at must be NULL
        or at/before cooldown_cutoff. On success last_code_sent_at becomes now.

        Returns:
            True if the code was stored, False if still cooling down.
        """
        stmt = (
            update(User)
            .where(
                User.id == user_id,
                or_(
                    User.last_code_sent_at.is_(None),
                    User.last_code_sent_at <= cooldown_cutoff,
                ),
            )
            .values(
                {
                    flow.hash_column: code_hash,
                    flow.expiry_column: expires_at,
                    "last_code_sent_at": now,
                }
            )
            .execution_options(synchronize_session=False)
        )
        result = cast(CursorResult[Any], await db.execute(stmt))
        rows_updated: int = result.rowcount
        return rows_updated > 0

    @staticmethod
    async def clear_code(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        flow: FlowKind,
        expected_hash: str,
        verified_at: datetime | None = None,
    ) -> bool:
        """Clear a code hash and expiry, once.

        Only matches while the stored hash is still the one that was just
        verified, so of two concurrent consumers exactly one succeeds.

        Args:
            db: Async database session.
            user_id: Owner of the code.
            flow: Which code to clear.
            expected_hash: Hash the caller verified against.
            verified_at: If set, also written to email_verified.

        Returns:
            True if this call cleared the code.
        """
        values: dict[str, Any] = {flow.hash_column: None, flow.expiry_column: None}
        if verified_at is not None:
            values["email_verified"] = verified_at
        hash_col = getattr(User, flow.hash_column)
        stmt = (
            update(User)
            .where(User.id == user_id, hash_col == expected_hash)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        result = cast(CursorResult[Any], await db.execute(stmt))
        rows_updated: int = result.rowcount
        return rows_updated > 0
