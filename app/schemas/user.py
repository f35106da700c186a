"""User request/response schemas.

Response schemas never carry secret columns; they are built from the
public attributes only.
All request schemas use ConfigDict(extra="forbid") to reject unexpected
fields, which is what stops a self-service update from smuggling in a role.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models.user import User, UserRole


class LinkedProviderResponse(BaseModel):
    """An OAuth provider linked to the user. Tokens are never exposed."""

    provider: str
    linked_at: datetime


class UserResponse(BaseModel):
    """Public view of a user.

    Attributes:
        id: UUID as string.
        email: User email.
        name: Display name or None.
        image: Avatar URL or None.
        role: Authorization role.
        email_verified: Whether the email address is verified.
        has_password: Whether password sign-in is possible.
        providers: Linked OAuth providers.
        created_at: Account creation timestamp.
    """

    id: str
    email: str
    name: str | None = None
    image: str | None = None
    role: UserRole
    email_verified: bool
    has_password: bool
    providers: list[LinkedProviderResponse]
    created_at: datetime

    @classmethod
    def from_user(cls, user: User, *, has_password: bool) -> "UserResponse":
        """Build from a User.

        has_password is passed in because the password hash is not loaded
        on default reads.
        """
        return cls(
            id=str(user.id),
            email=user.email,
            name=user.name,
            image=user.image,
            role=user.role,
            email_verified=user.is_email_verified,
            has_password=has_password,
            providers=[
                LinkedProviderResponse(provider=link.provider, linked_at=link.created_at)
                for link in user.oauth_links
            ],
            created_at=user.created_at,
        )


class UserProfileUpdate(BaseModel):
    """Request schema for PATCH /users/me.

    Only profile fields. Role, email and password have their own paths.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, max_length=255)
    image: str | None = Field(None, max_length=2048)


class AdminRoleUpdate(BaseModel):
    """Request schema for PATCH /admin/users/:id/role."""

    model_config = ConfigDict(extra="forbid")

    role: UserRole


class AdminUserUpdate(BaseModel):
    """Request schema for PATCH /admin/users/:id.

    Profile fields plus email and its verification state. Role has its own
    endpoint; password and code fields are never writable here.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, max_length=255)
    image: str | None = Field(None, max_length=2048)
    email: EmailStr | None = None
    email_verified: bool | None = None


class AdminUserResponse(BaseModel):
    """Response schema for admin user list items.

    Attributes:
        id: UUID as string.
        email: User email.
        name: User display name or None.
        role: Authorization role.
        email_verified: Whether the email is verified.
        providers: Names of linked OAuth providers.
        created_at: Account creation timestamp.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    email: str
    name: str | None = None
    role: UserRole
    email_verified: bool
    providers: list[str]
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "AdminUserResponse":
        return cls(
            id=str(user.id),
            email=user.email,
            name=user.name,
            role=user.role,
            email_verified=user.is_email_verified,
            providers=sorted({link.provider for link in user.oauth_links}),
            created_at=user.created_at,
        )
