"""Admin API router.

User listing, edits, role changes and deletion. All endpoints require the
AdminUser dependency (role admin or superuser).
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Query, Response, status

from app.api.deps import AdminUser, DbSession
from app.core.responses import DataResponse, ListResponse, PaginationMeta
from app.models.user import UserRole
from app.schemas.user import AdminRoleUpdate, AdminUserResponse, AdminUserUpdate
from app.services.admin_user_service import AdminUserService

router = APIRouter()

# =============================================================================
# Shared types
# =============================================================================

RoleFilter = Annotated[
    UserRole | None,
    Query(description="Filter by role"),
]
VerifiedFilter = Annotated[
    bool | None,
    Query(description="Filter by email verification status"),
]
SearchFilter = Annotated[
    str | None,
    Query(max_length=255, description="Email or name contains (case-insensitive)"),
]
PageParam = Annotated[int, Query(ge=1, description="Page number (1-based)")]
PerPageParam = Annotated[
    int, Query(ge=1, le=100, description="Items per page (max 100)")
]


# =============================================================================
# Users
# =============================================================================


@router.get("/users")
async def list_users(
    _admin: AdminUser,
    db: DbSession,
    page: PageParam = 1,
    per_page: PerPageParam = 20,
    role: RoleFilter = None,
    email_verified: VerifiedFilter = None,
    search: SearchFilter = None,
) -> ListResponse[AdminUserResponse]:
    """List users with pagination and filters. Secrets are never included."""
    svc = AdminUserService(db)
    users, total = await svc.list_users(
        page=page,
        per_page=per_page,
        role=role,
        email_verified=email_verified,
        search=search,
    )
    return ListResponse(
        data=[AdminUserResponse.from_user(u) for u in users],
        meta=PaginationMeta(total=total, page=page, per_page=per_page),
    )


@router.patch("/users/{user_id}")
async def update_user(
    admin: AdminUser,
    db: DbSession,
    user_id: uuid.UUID,
    body: AdminUserUpdate,
) -> DataResponse[AdminUserResponse]:
    """Edit a user's name, image, email or verification state.

    Fields omitted from the body are left unchanged. Role, password and
    one-time code fields are rejected.
    """
    svc = AdminUserService(db)
    user = await svc.update_user(
        actor_id=admin.id,
        actor_role=admin.role,
        target_user_id=user_id,
        changes=body.model_dump(exclude_unset=True),
    )
    await db.commit()
    return DataResponse(data=AdminUserResponse.from_user(user))


@router.patch("/users/{user_id}/role")
async def update_role(
    admin: AdminUser,
    db: DbSession,
    user_id: uuid.UUID,
    body: AdminRoleUpdate,
) -> DataResponse[AdminUserResponse]:
    """Change a user's role. The user's existing sessions are signed out."""
    svc = AdminUserService(db)
    user = await svc.set_role(
        actor_id=admin.id,
        actor_role=admin.role,
        target_user_id=user_id,
        role=body.role,
    )
    await db.commit()
    return DataResponse(data=AdminUserResponse.from_user(user))


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    admin: AdminUser,
    db: DbSession,
    user_id: uuid.UUID,
) -> Response:
    """Delete a user and their linked providers."""
    svc = AdminUserService(db)
    await svc.delete_user(
        actor_id=admin.id,
        actor_role=admin.role,
        target_user_id=user_id,
    )
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
