"""Self-service user profile endpoints.

Only name and image are editable here. Role changes go through the admin
API; a request body carrying any other field is rejected.
"""

from fastapi import APIRouter

from app.api.deps import CurrentUserId, DbSession
from app.core.errors import InvalidTokenError
from app.core.responses import DataResponse
from app.repositories.user_repository import UserRepository
from app.schemas.user import UserProfileUpdate, UserResponse

router = APIRouter()


@router.get("/me")
async def get_profile(user_id: CurrentUserId, db: DbSession) -> DataResponse[UserResponse]:
    """Get the current user's profile."""
    user = await UserRepository.get_by_id(db, user_id, include_secrets=True)
    if user is None:
        raise InvalidTokenError()
    return DataResponse(
        data=UserResponse.from_user(user, has_password=user.password_hash is not None)
    )


@router.patch("/me")
async def update_profile(
    body: UserProfileUpdate,
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[UserResponse]:
    """Update the current user's name and/or image.

    Fields omitted from the body are left unchanged.
    """
    changes = body.model_dump(exclude_unset=True)
    if changes:
        await UserRepository.update(db, user_id, **changes)

    user = await UserRepository.get_by_id(db, user_id, include_secrets=True)
    if user is None:
        raise InvalidTokenError()
    return DataResponse(
        data=UserResponse.from_user(user, has_password=user.password_hash is not None)
    )
