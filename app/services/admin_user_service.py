"""Admin user management.

Listing, profile edits, role changes and deletion of user accounts.
Reachable only through admin endpoints (require_admin).

Role rules:
- admins and superusers may grant or revoke "admin"
- only a superuser may grant or revoke "superuser"
- nobody changes their own role or deletes themselves
- only a superuser may edit or delete a superuser
"""

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import validate_email_address
from app.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from app.models.user import User, UserRole
from app.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

_MAX_PER_PAGE = 100

_ADMIN_EDITABLE_FIELDS: frozenset[str] = frozenset(
    {"name", "image", "email", "email_verified"}
)


class AdminUserService:
    """Admin operations on user accounts.

    Args:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def list_users(
        self,
        *,
        page: int = 1,
        per_page: int = 20,
        role: UserRole | None = None,
        email_verified: bool | None = None,
        search: str | None = None,
    ) -> tuple[list[User], int]:
        """List users with pagination.

        Args:
            page: Page number (1-based).
            per_page: Items per page (max 100).
            role: Filter by role.
            email_verified: Filter by verification status.
            search: Case-insensitive email/name substring.

        Returns:
            Tuple of (user list, total count).
        """
        per_page = min(per_page, _MAX_PER_PAGE)
        return await UserRepository.list_users(
            self._db,
            offset=(page - 1) * per_page,
            limit=per_page,
            role=role,
            email_verified=email_verified,
            search=search,
        )

    async def set_role(
        self,
        *,
        actor_id: uuid.UUID,
        actor_role: UserRole,
        target_user_id: uuid.UUID,
        role: UserRole,
    ) -> User:
        """Change a user's role and sign out their sessions.

        Existing session tokens carry the old role claim, so they are
        invalidated.

        Raises:
            ConflictError: CANNOT_CHANGE_OWN_ROLE if actor is the target.
            ForbiddenError: Non-superuser touching the superuser role.
            NotFoundError: If target user not found.
        """
        if actor_id == target_user_id:
            raise ConflictError(
                code="CANNOT_CHANGE_OWN_ROLE",
                message="Cannot change your own role",
            )

        target = await UserRepository.get_by_id(self._db, target_user_id)
        if target is None:
            raise NotFoundError("User", str(target_user_id))

        touches_superuser = UserRole.SUPERUSER in (role, target.role)
        if touches_superuser and actor_role is not UserRole.SUPERUSER:
            raise ForbiddenError("Only a superuser can grant or revoke superuser")

        if target.role is role:
            return target

        await UserRepository.set_role(self._db, target.id, role=role)
        await UserRepository.update(
            self._db, target.id, token_invalidated_before=datetime.now(UTC)
        )
        logger.info(
            "User role changed",
            extra={
                "actor_id": str(actor_id),
                "user_id": str(target.id),
                "role": role.value,
            },
        )
        return target

    async def update_user(
        self,
        *,
        actor_id: uuid.UUID,
        actor_role: UserRole,
        target_user_id: uuid.UUID,
        changes: dict[str, Any],
    ) -> User:
        """Edit a user's profile, email address or verification state.

        A new email comes back unverified unless email_verified=True is sent
        with it. email_verified=True keeps an existing verification
        timestamp; False clears it.

        Args:
            actor_id: Admin making the change.
            actor_role: Admin's stored role.
            target_user_id: User to edit.
            changes: Subset of name, image, email, email_verified. Keys that
                are absent are left unchanged.

        Raises:
            ValueError: If changes names any other field.
            NotFoundError: If target user not found.
            ForbiddenError: Non-superuser editing a superuser.
            ValidationError: Malformed or null email.
            DuplicateEmailError: Email belongs to another account.
        """
        unknown = set(changes) - _ADMIN_EDITABLE_FIELDS
        if unknown:
            msg = f"Fields not editable by admins: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        target = await UserRepository.get_by_id(self._db, target_user_id)
        if target is None:
            raise NotFoundError("User", str(target_user_id))
        if target.role is UserRole.SUPERUSER and actor_role is not UserRole.SUPERUSER:
            raise ForbiddenError("Only a superuser can edit a superuser")

        if "email" in changes:
            if changes["email"] is None:
                raise ValidationError(
                    "Email cannot be removed", details=[{"field": "email"}]
                )
            email = validate_email_address(changes["email"])
            await UserRepository.change_email(self._db, target.id, email=email)

        fields: dict[str, str | datetime | None] = {
            key: changes[key] for key in ("name", "image") if key in changes
        }
        verified = changes.get("email_verified")
        if verified is True and target.email_verified is None:
            fields["email_verified"] = datetime.now(UTC)
        elif verified is False:
            fields["email_verified"] = None
        if fields:
            await UserRepository.update(self._db, target.id, **fields)

        logger.info(
            "User updated by admin",
            extra={
                "actor_id": str(actor_id),
                "user_id": str(target.id),
                "fields": sorted(changes),
            },
        )
        return target

    async def delete_user(
        self,
        *,
        actor_id: uuid.UUID,
        actor_role: UserRole,
        target_user_id: uuid.UUID,
    ) -> None:
        """Delete a user and their OAuth links.

        Raises:
            ConflictError: CANNOT_DELETE_SELF if actor is the target.
            ForbiddenError: Non-superuser deleting a superuser.
            NotFoundError: If target user not found.
        """
        if actor_id == target_user_id:
            raise ConflictError(
                code="CANNOT_DELETE_SELF",
                message="Cannot delete your own account from the admin panel",
            )

        target = await UserRepository.get_by_id(self._db, target_user_id)
        if target is None:
            raise NotFoundError("User", str(target_user_id))
        if target.role is UserRole.SUPERUSER and actor_role is not UserRole.SUPERUSER:
            raise ForbiddenError("Only a superuser can delete a superuser")

        await UserRepository.delete(self._db, target.id)
        logger.info(
            "User deleted",
            extra={"actor_id": str(actor_id), "user_id": str(target_user_id)},
        )
