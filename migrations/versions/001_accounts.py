"""Create account tables: users and oauth_links.

Revision ID: 001_accounts
Revises:
Create Date: 2026-10-19

- users: one row per account, unique lower-cased email, secret columns for
  the password hash and the two pending one-time code hashes.
- oauth_links: external identities, unique per (provider, provider_account_id),
  removed with their user.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_accounts"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # =========================================================================
    # users
    # =========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column(
            "role",
            sa.String(20),
            server_default="user",
            nullable=False,
        ),
        sa.Column("email_verified", sa.DateTime(timezone=True), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("verification_code_hash", sa.String(255), nullable=True),
        sa.Column(
            "verification_code_expires_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("password_reset_code_hash", sa.String(255), nullable=True),
        sa.Column(
            "password_reset_code_expires_at",
            sa.DateTime(timezone=True),
            nullable=True,
        ),
        sa.Column("last_code_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "token_invalidated_before", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "role IN ('user', 'admin', 'superuser')",
            name="ck_users_role",
        ),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    # =========================================================================
    # oauth_links
    # =========================================================================
    op.create_table(
        "oauth_links",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("provider_account_id", sa.String(255), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "provider",
            "provider_account_id",
            name="uq_oauth_links_provider_account",
        ),
    )
    op.create_index("ix_oauth_links_user_id", "oauth_links", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_oauth_links_user_id", table_name="oauth_links")
    op.drop_table("oauth_links")
    op.drop_table("users")
