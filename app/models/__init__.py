"""SQLAlchemy ORM models.

All models are exported from this module for convenient imports:
    from app.models import User, OAuthLink

- user.py: User, UserRole
- oauth_link.py: OAuthLink (external identities, cascade-deleted with the user)
"""

from app.models.base import Base, TimestampMixin, UTCDateTime
from app.models.oauth_link import OAuthLink
from app.models.user import ADMIN_ROLES, FlowKind, User, UserRole

__all__ = [
    "ADMIN_ROLES",
    "Base",
    "FlowKind",
    "OAuthLink",
    "TimestampMixin",
    "UTCDateTime",
    "User",
    "UserRole",
]
