from .health_routes import router as health_router
from .auth_routes import router as auth_router
from .authz_routes import router as authz_router
from .relay_routes import router as relay_router

__all__ = [
    "health_router",
    "auth_router",
    "authz_router",
    "relay_router",
]
