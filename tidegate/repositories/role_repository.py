"""Role and permission repositories."""

from typing import Iterable, List, Optional, Tuple

from sqlalchemy import or_

from ..core.deadline import Deadline
from ..exceptions import RoleNotFoundError, PermissionNotFoundError
from ..models import Role, Permission, RolePermission
from ..schemas.role import RoleFilters
from .base import BaseRepository, escape_like


class PermissionRepository(BaseRepository[Permission]):
    """Read access to the seeded permission catalog."""

    model_class = Permission
    not_found_error = PermissionNotFoundError

    def list_all(self, resource_type: Optional[str] = None, deadline: Optional[Deadline] = None) -> List[Permission]:
        with self.guard("list permissions", deadline):
            query = self.db.query(Permission)
            if resource_type:
                query = query.filter(Permission.resource_type == resource_type)
            return query.order_by(Permission.resource_type, Permission.action).all()

    def get_by_name(self, name: str, deadline: Optional[Deadline] = None) -> Optional[Permission]:
        with self.guard("get permission by name", deadline):
            return self.db.query(Permission).filter(Permission.name == name).first()

    def find_missing(self, permission_ids: Iterable[str], deadline: Optional[Deadline] = None) -> List[str]:
        """Return the ids in *permission_ids* that are not catalog rows."""
        wanted = set(permission_ids)
        if not wanted:
            return []
        with self.guard("validate permission ids", deadline):
            found = {
                row[0] for row in
                self.db.query(Permission.id).filter(Permission.id.in_(wanted)).all()
            }
        return sorted(wanted - found)


class RoleRepository(BaseRepository[Role]):
    """Repository for role CRUD and the role-permission join."""

    model_class = Role
    not_found_error = RoleNotFoundError

    def create(self, role: Role, permission_ids: Iterable[str] = (), deadline: Optional[Deadline] = None) -> Role:
        with self.atomic("create role", deadline):
            self.db.add(role)
            self.db.flush()
            self._insert_permission_links(role.id, permission_ids)
        self.db.refresh(role)
        return role

    def get_by_name(self, name: str, deadline: Optional[Deadline] = None) -> Optional[Role]:
        with self.guard("get role by name", deadline):
            return self.db.query(Role).filter(Role.name == name).first()

    def update(self, role: Role, fields: dict, deadline: Optional[Deadline] = None) -> Role:
        with self.atomic("update role", deadline):
            for key, value in fields.items():
                setattr(role, key, value)
        self.db.refresh(role)
        return role

    def delete(self, role: Role, deadline: Optional[Deadline] = None) -> None:
        """Delete a role. Its grants and permission links go with it (ORM cascade)."""
        with self.atomic("delete role", deadline):
            self.db.delete(role)

    def list(
        self,
        filters: RoleFilters,
        skip: int = 0,
        limit: int = 20,
        deadline: Optional[Deadline] = None,
    ) -> Tuple[List[Role], int]:
        """Filtered page of roles plus the total matching count."""
        with self.guard("list roles", deadline):
            query = self.db.query(Role)
            if filters.type:
                query = query.filter(Role.type == filters.type)
            if filters.is_default is not None:
                query = query.filter(Role.is_default == filters.is_default)
            if filters.search:
                pattern = f"%{escape_like(filters.search)}%"
                query = query.filter(or_(
                    Role.name.ilike(pattern, escape="\\"),
                    Role.display_name.ilike(pattern, escape="\\"),
                ))
            total = query.count()
            items = query.order_by(Role.created_at, Role.name).offset(skip).limit(limit).all()
        return items, total

    def get_defaults(self, deadline: Optional[Deadline] = None) -> List[Role]:
        with self.guard("list default roles", deadline):
            return self.db.query(Role).filter(Role.is_default.is_(True)).order_by(Role.name).all()

    def get_permissions(self, role_id: str, deadline: Optional[Deadline] = None) -> List[Permission]:
        with self.guard("list role permissions", deadline):
            return (
                self.db.query(Permission)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .filter(RolePermission.role_id == role_id)
                .order_by(Permission.name)
                .all()
            )

    def replace_permissions(
        self,
        role_id: str,
        permission_ids: Iterable[str],
        deadline: Optional[Deadline] = None,
    ) -> None:
        """Swap the role's permission set for *permission_ids* in one transaction.

        Either the new set is committed in full or the prior set is left
        untouched. Concurrent readers see one set or the other, never a mix.
        """
        with self.atomic("assign role permissions", deadline):
            (
                self.db.query(RolePermission)
                .filter(RolePermission.role_id == role_id)
                .delete(synchronize_session=False)
            )
            self._insert_permission_links(role_id, permission_ids)
        self.db.expire_all()

    def remove_permissions(
        self,
        role_id: str,
        permission_ids: Iterable[str],
        deadline: Optional[Deadline] = None,
    ) -> int:
        """Delete the listed links. Ids the role does not hold are ignored."""
        ids = list(set(permission_ids))
        if not ids:
            return 0
        with self.atomic("remove role permissions", deadline):
            count = (
                self.db.query(RolePermission)
                .filter(RolePermission.role_id == role_id, RolePermission.permission_id.in_(ids))
                .delete(synchronize_session=False)
            )
        self.db.expire_all()
        return count

    def _insert_permission_links(self, role_id: str, permission_ids: Iterable[str]) -> None:
        for permission_id in dict.fromkeys(permission_ids):
            self.db.add(RolePermission(role_id=role_id, permission_id=permission_id))
        self.db.flush()
