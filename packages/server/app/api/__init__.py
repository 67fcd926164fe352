"""
API Router

All JSON endpoints live under /api.
"""

from fastapi import APIRouter

from . import auth, items, oauth, users

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
# OAuth routes share the /auth prefix with the password flow
router.include_router(oauth.router, prefix="/auth", tags=["OAuth"])
router.include_router(items.router, prefix="/items", tags=["Items"])
router.include_router(users.router, prefix="/users", tags=["Users"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "success": True,
        "data": {
            "version": "0.1.0",
            "endpoints": [
                "/auth/register",
                "/auth/login",
                "/auth/refresh",
                "/auth/logout",
                "/auth/me",
                "/auth/sessions",
                "/auth/oauth/providers",
                "/auth/oauth/{provider}",
                "/auth/callback/{provider}",
                "/items",
                "/users/{userId}",
            ],
        },
    }
