"""Pydantic request/response schemas for API endpoints."""

from app.schemas.user import (
    AdminRoleUpdate,
    AdminUserResponse,
    AdminUserUpdate,
    LinkedProviderResponse,
    UserProfileUpdate,
    UserResponse,
)

__all__ = [
    # Admin
    "AdminRoleUpdate",
    "AdminUserResponse",
    "AdminUserUpdate",
    # Users
    "LinkedProviderResponse",
    "UserProfileUpdate",
    "UserResponse",
]
