"""Data access repositories."""

from .base import BaseRepository
from .role_repository import RoleRepository, PermissionRepository
from .grant_repository import GrantRepository
from .session_repository import SessionRepository
from .audit_repository import AuditRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "RoleRepository",
    "PermissionRepository",
    "GrantRepository",
    "SessionRepository",
    "AuditRepository",
    "UserRepository",
]
