"""API routes."""

from .auth_routes import router as auth_router
from .roles import router as roles_router, permissions_router
from .grants import router as grants_router
from .scopes import router as scopes_router
from .audit_logs import router as audit_logs_router
from .sessions import router as sessions_router

__all__ = [
    "auth_router",
    "roles_router",
    "permissions_router",
    "grants_router",
    "scopes_router",
    "audit_logs_router",
    "sessions_router",
]
