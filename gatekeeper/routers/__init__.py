"""API routers."""

from gatekeeper.routers.auth import router as auth_router
from gatekeeper.routers.users import router as users_router

__all__ = ["auth_router", "users_router"]
