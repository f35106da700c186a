"""OAuthLink model - external identity connected to a user.

Multiple rows per user (one per provider identity). The
(provider, provider_account_id) pair is unique across the whole table, which
makes the database the final arbiter when two callbacks race to link the
same external identity.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin
from app.models.user import SECRETS_GROUP

if TYPE_CHECKING:
    from app.models.user import User


class OAuthLink(Base, TimestampMixin):
    """OAuth provider connection for a user.

    Attributes:
        id: UUID primary key.
        user_id: FK to users table.
        provider: Provider name ("google", "facebook", ...).
        provider_account_id: Provider's unique user ID.
        access_token: Last access token issued by the provider. Write-only.
        refresh_token: Last refresh token issued by the provider. Write-only.
        token_expires_at: Access token expiry, when the provider reports one.
    """

    __tablename__ = "oauth_links"
    __table_args__ = (
        UniqueConstraint(
            "provider",
            "provider_account_id",
            name="uq_oauth_links_provider_account",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    access_token: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
        deferred=True,
        deferred_group=SECRETS_GROUP,
        deferred_raiseload=True,
    )
    refresh_token: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
        deferred=True,
        deferred_group=SECRETS_GROUP,
        deferred_raiseload=True,
    )
    token_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="oauth_links")
