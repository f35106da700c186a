"""API v1 router aggregator.

URL structure with /api/v1 prefix. All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from app.api.v1 import admin, auth, auth_oauth, users

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

_AUTH_PREFIX = "/auth"

router.include_router(auth.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_oauth.router, prefix=_AUTH_PREFIX, tags=["auth"])

# =============================================================================
# Users
# =============================================================================

router.include_router(users.router, prefix="/users", tags=["users"])

# =============================================================================
# Admin
# =============================================================================

router.include_router(admin.router, prefix="/admin", tags=["admin"])
