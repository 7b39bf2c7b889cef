"""API package exports."""

from signalhub.api.auth import router as auth_router
from signalhub.api.middleware import CorrelationIdMiddleware
from signalhub.api.routes import router
from signalhub.api.signals import router as signals_router
from signalhub.api.users import router as users_router

__all__ = [
    "CorrelationIdMiddleware",
    "auth_router",
    "router",
    "signals_router",
    "users_router",
]
