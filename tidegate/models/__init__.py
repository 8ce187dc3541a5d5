"""Database models."""

from .role import Role, Permission, RolePermission, RoleGrant
from .session import UserSession
from .audit import AuditLog
from .user import User

__all__ = [
    "Role", "Permission", "RolePermission", "RoleGrant",
    "UserSession", "AuditLog", "User",
]
