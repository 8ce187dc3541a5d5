"""Role, Permission, RolePermission and RoleGrant models.

Permissions are catalog rows written once by the seeder. Roles bundle
permissions through ``role_permissions``; ``user_roles`` binds a role to a
user at one scope, optionally until ``expires_at``.

Grants reference users by id only. The user table belongs to the identity
layer and may live elsewhere, so there is no foreign key to it.
"""

import uuid

from sqlalchemy import (
    Column, String, DateTime, Boolean, Text, ForeignKey, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from ..core.clock import utcnow
from ..database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Role(Base):
    """Named bundle of permissions.

    type is "system" for the seeded roles (never deletable) or "custom".
    Roles with is_default=True are attached at global scope to every newly
    registered user.
    """

    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False, default="custom")
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    created_by = Column(String(36), nullable=True)

    permission_links = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
    )
    grants = relationship(
        "RoleGrant",
        back_populates="role",
        cascade="all, delete-orphan",
    )

    @property
    def is_system(self) -> bool:
        return self.type == "system"


class Permission(Base):
    """One (resource_type, action) pair from the static catalog.

    scope is a display hint telling the UI where the permission is usually
    granted. The resolver never reads it.
    """

    __tablename__ = "permissions"

    id = Column(String(36), primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    resource_type = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)
    scope = Column(String(20), nullable=False, default="global")

    __table_args__ = (
        UniqueConstraint("resource_type", "action", name="uq_permissions_resource_action"),
    )


class RolePermission(Base):
    __tablename__ = "role_permissions"

    id = Column(String(36), primary_key=True, default=_uuid)
    role_id = Column(String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    permission_id = Column(String(36), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    role = relationship("Role", back_populates="permission_links")
    permission = relationship("Permission")

    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permissions_role_permission"),
    )


class RoleGrant(Base):
    """A role assigned to a user at one scope.

    scope_value is "" for global, the cluster name for cluster scope and
    "cluster/namespace" for namespace scope. A grant with expires_at at or
    before the evaluation instant counts for nothing.
    """

    __tablename__ = "user_roles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False)
    role_id = Column(String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    scope_type = Column(String(20), nullable=False, default="global")
    scope_value = Column(String(255), nullable=False, default="")
    granted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    granted_by = Column(String(36), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    role = relationship("Role", back_populates="grants")

    @property
    def role_name(self):
        return self.role.name if self.role is not None else None

    __table_args__ = (
        UniqueConstraint(
            "user_id", "role_id", "scope_type", "scope_value",
            name="uq_user_roles_user_role_scope",
        ),
        Index("ix_user_roles_user_id", "user_id"),
    )
