"""Business logic services."""

from .role_service import RoleService
from .grant_service import GrantService
from .authorization_service import AuthorizationResolver, PermissionDecision
from .session_service import SessionManager
from .audit_service import AuditLogger
from .auth_service import AuthService

__all__ = [
    "RoleService",
    "GrantService",
    "AuthorizationResolver",
    "PermissionDecision",
    "SessionManager",
    "AuditLogger",
    "AuthService",
]
