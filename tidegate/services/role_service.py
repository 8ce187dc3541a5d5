"""Role service: custom role lifecycle and role-permission assignment.

System roles are seeded from the catalog and are read-only: they cannot be
updated, deleted or have their permission set changed. Permission sets are replaced wholesale by assign_permissions, which
is the only multi-statement transaction in the authorization core.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.deadline import Deadline
from ..exceptions import ConflictError, ForbiddenError, PermissionNotFoundError, ValidationError
from ..models import Permission, Role
from ..repositories import PermissionRepository, RoleRepository
from ..schemas.pagination import Page, PaginationParams
from ..schemas.role import RoleCreate, RoleFilters, RoleResponse, RoleUpdate

logger = logging.getLogger(__name__)


class RoleService:
    """Roles CRUD plus the role-permission join."""

    def __init__(self, db: Session):
        self.db = db
        self.role_repo = RoleRepository(db)
        self.permission_repo = PermissionRepository(db)

    def create_role(
        self,
        data: RoleCreate,
        created_by: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> Role:
        """Create a custom role with an optional initial permission set.

        Raises ConflictError if the name is taken and PermissionNotFoundError
        if any permission id is not in the catalog.
        """
        if self.role_repo.get_by_name(data.name, deadline) is not None:
            raise ConflictError(f"Role already exists: {data.name}", details={"name": data.name})
        self._require_permissions(data.permission_ids, deadline)

        role = Role(
            name=data.name,
            display_name=data.display_name.strip(),
            description=data.description,
            type="custom",
            is_default=data.is_default,
            created_by=created_by,
        )
        role = self.role_repo.create(role, data.permission_ids, deadline)
        logger.info("Role created", extra={"role_id": role.id, "role_name": role.name})
        return role

    def get_role(self, role_id: str, deadline: Optional[Deadline] = None) -> Role:
        return self.role_repo.get_by_id(role_id, deadline)

    def get_role_by_name(self, name: str, deadline: Optional[Deadline] = None) -> Optional[Role]:
        return self.role_repo.get_by_name(name, deadline)

    def update_role(self, role_id: str, data: RoleUpdate, deadline: Optional[Deadline] = None) -> Role:
        """Apply the fields explicitly set on *data*.

        Raises ValidationError when nothing is set and ForbiddenError for a
        system role. The role's name and type are not updatable.
        """
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            raise ValidationError("No fields to update")
        if "display_name" in fields:
            if fields["display_name"] is None or not fields["display_name"].strip():
                raise ValidationError("Display name cannot be empty", field="display_name")
            fields["display_name"] = fields["display_name"].strip()
        if fields.get("is_default", False) is None:
            raise ValidationError("is_default cannot be null", field="is_default")

        role = self._get_custom_role(role_id, "updated", deadline)
        role = self.role_repo.update(role, fields, deadline)
        logger.info("Role updated", extra={"role_id": role_id, "fields": sorted(fields)})
        return role

    def delete_role(self, role_id: str, deadline: Optional[Deadline] = None) -> None:
        """Delete a custom role together with its grants and permission links."""
        role = self._get_custom_role(role_id, "deleted", deadline)
        self.role_repo.delete(role, deadline)
        logger.info("Role deleted", extra={"role_id": role_id, "role_name": role.name})

    def list_roles(
        self,
        filters: Optional[RoleFilters] = None,
        pagination: Optional[PaginationParams] = None,
        deadline: Optional[Deadline] = None,
    ) -> Page[RoleResponse]:
        filters = filters or RoleFilters()
        pagination = pagination or PaginationParams()
        roles, total = self.role_repo.list(filters, pagination.offset, pagination.limit, deadline)
        items = [RoleResponse.model_validate(r) for r in roles]
        return Page[RoleResponse].build(items, total, pagination)

    def get_default_roles(self, deadline: Optional[Deadline] = None) -> List[Role]:
        return self.role_repo.get_defaults(deadline)

    def get_role_permissions(self, role_id: str, deadline: Optional[Deadline] = None) -> List[Permission]:
        self.role_repo.get_by_id(role_id, deadline)
        return self.role_repo.get_permissions(role_id, deadline)

    def assign_permissions(
        self,
        role_id: str,
        permission_ids: Iterable[str],
        deadline: Optional[Deadline] = None,
    ) -> List[Permission]:
        """Replace the role's permission set with *permission_ids*.

        All ids are validated before anything is written; an unknown id
        raises PermissionNotFoundError and leaves the prior set in place.
        A storage failure during the swap rolls back to the prior set too.
        """
        ids = list(dict.fromkeys(permission_ids))
        self._get_custom_role(role_id, "given new permissions", deadline)
        self._require_permissions(ids, deadline)
        self.role_repo.replace_permissions(role_id, ids, deadline)
        logger.info("Role permissions replaced", extra={"role_id": role_id, "count": len(ids)})
        return self.role_repo.get_permissions(role_id, deadline)

    def remove_permissions(
        self,
        role_id: str,
        permission_ids: Iterable[str],
        deadline: Optional[Deadline] = None,
    ) -> int:
        """Remove the listed permissions from the role. Returns how many were held."""
        self._get_custom_role(role_id, "stripped of permissions", deadline)
        removed = self.role_repo.remove_permissions(role_id, permission_ids, deadline)
        logger.info("Role permissions removed", extra={"role_id": role_id, "count": removed})
        return removed

    def list_permissions(
        self,
        resource_type: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> List[Permission]:
        return self.permission_repo.list_all(resource_type, deadline)

    def _get_custom_role(self, role_id: str, verb: str, deadline: Optional[Deadline]) -> Role:
        role = self.role_repo.get_by_id(role_id, deadline)
        if role.is_system:
            raise ForbiddenError(f"System role '{role.name}' cannot be {verb}")
        return role

    def _require_permissions(self, permission_ids: Iterable[str], deadline: Optional[Deadline]) -> None:
        missing = self.permission_repo.find_missing(permission_ids, deadline)
        if missing:
            raise PermissionNotFoundError(missing[0])
