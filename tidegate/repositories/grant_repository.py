"""Role grant repository and the scope/expiry predicates used for authorization.

The resolver never loads grants into Python to decide. It asks for an EXISTS
over user_roles -> role_permissions -> permissions restricted to the
candidate scopes and to grants that have not expired at ``now``.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import and_, exists, or_
from sqlalchemy.orm import joinedload

from ..core.deadline import Deadline
from ..core.scope import Scope, ScopeType
from ..exceptions import NotFoundError
from ..models import Permission, RoleGrant, RolePermission
from .base import BaseRepository


def scope_predicate(scopes: Sequence[Scope]):
    """SQL OR over the (scope_type, scope_value) pairs in *scopes*."""
    return or_(*[
        and_(RoleGrant.scope_type == s.type.value, RoleGrant.scope_value == s.value)
        for s in scopes
    ])


def active_at(now: datetime):
    """Grants with no expiry or an expiry strictly after *now*."""
    return or_(RoleGrant.expires_at.is_(None), RoleGrant.expires_at > now)


class GrantRepository(BaseRepository[RoleGrant]):
    model_class = RoleGrant
    not_found_error = NotFoundError

    def find(
        self,
        user_id: str,
        role_id: str,
        scope: Scope,
        deadline: Optional[Deadline] = None,
    ) -> Optional[RoleGrant]:
        with self.guard("get role grant", deadline):
            return self.db.query(RoleGrant).filter(
                RoleGrant.user_id == user_id,
                RoleGrant.role_id == role_id,
                RoleGrant.scope_type == scope.type.value,
                RoleGrant.scope_value == scope.value,
            ).first()

    def upsert(
        self,
        user_id: str,
        role_id: str,
        scope: Scope,
        granted_at: datetime,
        granted_by: Optional[str],
        expires_at: Optional[datetime],
        deadline: Optional[Deadline] = None,
    ) -> RoleGrant:
        """Insert the grant, or refresh granted_at/granted_by/expires_at if the key exists."""
        existing = self.find(user_id, role_id, scope, deadline)
        with self.atomic("assign role", deadline):
            if existing is not None:
                existing.granted_at = granted_at
                existing.granted_by = granted_by
                existing.expires_at = expires_at
                grant = existing
            else:
                grant = RoleGrant(
                    user_id=user_id,
                    role_id=role_id,
                    scope_type=scope.type.value,
                    scope_value=scope.value,
                    granted_at=granted_at,
                    granted_by=granted_by,
                    expires_at=expires_at,
                )
                self.db.add(grant)
        self.db.refresh(grant)
        return grant

    def delete_exact(
        self,
        user_id: str,
        role_id: str,
        scope: Scope,
        deadline: Optional[Deadline] = None,
    ) -> int:
        with self.atomic("remove role", deadline):
            count = self.db.query(RoleGrant).filter(
                RoleGrant.user_id == user_id,
                RoleGrant.role_id == role_id,
                RoleGrant.scope_type == scope.type.value,
                RoleGrant.scope_value == scope.value,
            ).delete(synchronize_session=False)
        return count

    def list_for_user(
        self,
        user_id: str,
        now: datetime,
        scope_type: Optional[ScopeType] = None,
        scope_value: Optional[str] = None,
        include_expired: bool = False,
        deadline: Optional[Deadline] = None,
    ) -> List[RoleGrant]:
        with self.guard("list user grants", deadline):
            query = (
                self.db.query(RoleGrant)
                .options(joinedload(RoleGrant.role))
                .filter(RoleGrant.user_id == user_id)
            )
            if scope_type is not None:
                query = query.filter(RoleGrant.scope_type == scope_type.value)
            if scope_value is not None:
                query = query.filter(RoleGrant.scope_value == scope_value)
            if not include_expired:
                query = query.filter(active_at(now))
            return query.order_by(RoleGrant.granted_at, RoleGrant.id).all()

    def has_permission(
        self,
        user_id: str,
        resource_type: str,
        action: str,
        scopes: Sequence[Scope],
        now: datetime,
        deadline: Optional[Deadline] = None,
    ) -> bool:
        """True if some live grant at one of *scopes* carries (resource_type, action)."""
        if not scopes:
            return False
        with self.guard("check permission", deadline):
            clause = exists().where(
                RoleGrant.user_id == user_id,
                RolePermission.role_id == RoleGrant.role_id,
                Permission.id == RolePermission.permission_id,
                Permission.resource_type == resource_type,
                Permission.action == action,
                scope_predicate(scopes),
                active_at(now),
            )
            return bool(self.db.query(clause).scalar())

    def permissions_for(
        self,
        user_id: str,
        scopes: Sequence[Scope],
        now: datetime,
        deadline: Optional[Deadline] = None,
    ) -> List[Permission]:
        """Distinct permissions reachable through live grants at *scopes*, by name."""
        if not scopes:
            return []
        with self.guard("list user permissions", deadline):
            return (
                self.db.query(Permission)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .join(RoleGrant, RoleGrant.role_id == RolePermission.role_id)
                .filter(
                    RoleGrant.user_id == user_id,
                    scope_predicate(scopes),
                    active_at(now),
                )
                .distinct()
                .order_by(Permission.name)
                .all()
            )
