"""User model - the account every sign-in path resolves to.

A user is reachable by password, by one or more OAuth links, or both.
Secret columns are deferred and raise on implicit access, so a default read
never carries hashes; repositories opt in with ``include_secrets=True``.
"""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Enum, String, Text, Uuid
from sqlalchemy.orm import Mapped, MappedColumn, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.oauth_link import OAuthLink

_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"

# Deferred group loaded only by repository calls that ask for secrets.
SECRETS_GROUP = "secrets"


class UserRole(str, enum.Enum):
    """Authorization role carried in session tokens."""

    USER = "user"
    ADMIN = "admin"
    SUPERUSER = "superuser"


ADMIN_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPERUSER})


class FlowKind(str, enum.Enum):
    """One-time code flows. Each has its own hash/expiry column pair."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"

    @property
    def hash_column(self) -> str:
        if self is FlowKind.EMAIL_VERIFICATION:
            return "verification_code_hash"
        return "password_reset_code_hash"

    @property
    def expiry_column(self) -> str:
        if self is FlowKind.EMAIL_VERIFICATION:
            return "verification_code_expires_at"
        return "password_reset_code_expires_at"


def _secret_column(type_: String | Text) -> MappedColumn:
    return mapped_column(
        type_,
        nullable=True,
        deferred=True,
        deferred_group=SECRETS_GROUP,
        deferred_raiseload=True,
    )


class User(Base, TimestampMixin):
    """User account.

    Attributes:
        id: UUID primary key.
        email: Unique email address, stored lower-cased.
        name: Display name (from registration or OAuth profile).
        image: Profile picture URL.
        role: Authorization role. Changed only through the admin path.
        email_verified: Timestamp when email was verified. NULL = unverified.
        password_hash: bcrypt hash. NULL for OAuth-only users.
        verification_code_hash: bcrypt hash of the pending email code.
        verification_code_expires_at: Expiry of the pending email code.
        password_reset_code_hash: bcrypt hash of the pending reset code.
        password_reset_code_expires_at: Expiry of the pending reset code.
        last_code_sent_at: Cooldown anchor shared by both code flows.
        token_invalidated_before: Session tokens issued before this are rejected.
        oauth_links: External identities linked to this user.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    image: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            name="user_role",
            native_enum=False,
            length=20,
            values_callable=lambda roles: [r.value for r in roles],
        ),
        nullable=False,
        default=UserRole.USER,
        server_default=UserRole.USER.value,
    )
    email_verified: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    password_hash: Mapped[str | None] = _secret_column(String(255))
    verification_code_hash: Mapped[str | None] = _secret_column(String(255))
    password_reset_code_hash: Mapped[str | None] = _secret_column(String(255))

    verification_code_expires_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    password_reset_code_expires_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    last_code_sent_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    token_invalidated_before: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    # Relationships
    oauth_links: Mapped[list["OAuthLink"]] = relationship(
        "OAuthLink",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        passive_deletes=True,
        lazy="selectin",
    )

    @property
    def is_email_verified(self) -> bool:
        return self.email_verified is not None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
