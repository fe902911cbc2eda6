"""API v1 module."""

from recipeauth.app.api.v1.auth import router as auth_router

__all__ = ["auth_router"]
