"""Role and permission catalog API endpoints."""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..core import catalog
from ..core.auth import client_ip, request_deadline, require_permission
from ..core.deadline import Deadline
from ..core.principal import Principal
from ..database import get_db
from ..exceptions import ValidationError
from ..schemas.pagination import Page, PaginationParams, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ..schemas.role import (
    PermissionResponse,
    RoleCreate,
    RoleDetailResponse,
    RoleFilters,
    RolePermissionsUpdate,
    RoleResponse,
    RoleUpdate,
)
from ..services import AuditLogger, RoleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/roles", tags=["roles"])
permissions_router = APIRouter(prefix="/api/permissions", tags=["permissions"])


def _detail(service: RoleService, role_id: str, deadline: Optional[Deadline]) -> RoleDetailResponse:
    role = service.get_role(role_id, deadline)
    permissions = service.get_role_permissions(role_id, deadline)
    detail = RoleDetailResponse.model_validate(role)
    detail.permissions = [PermissionResponse.model_validate(p) for p in permissions]
    return detail


def _audit(
    request: Request,
    db: Session,
    principal: Principal,
    deadline: Optional[Deadline],
    action: str,
    role_id: str,
    details: dict,
) -> None:
    AuditLogger(db).record(
        actor=principal.user_id,
        action=action,
        resource_type="role",
        resource_id=role_id,
        details=details,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        deadline=deadline,
    )


@router.get("", response_model=Page[RoleResponse])
def list_roles(
    type: Optional[str] = Query(None, description="system or custom"),
    is_default: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    _: Principal = Depends(require_permission("role", "read")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    return RoleService(db).list_roles(
        RoleFilters(type=type, is_default=is_default, search=search),
        PaginationParams(page=page, page_size=page_size),
        deadline,
    )


@router.post("", response_model=RoleDetailResponse, status_code=201)
def create_role(
    body: RoleCreate,
    request: Request,
    principal: Principal = Depends(require_permission("role", "create")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    service = RoleService(db)
    role = service.create_role(body, created_by=principal.user_id, deadline=deadline)
    _audit(request, db, principal, deadline, "role_create", role.id,
           {"name": role.name, "permission_ids": body.permission_ids})
    return _detail(service, role.id, deadline)


@router.get("/{role_id}", response_model=RoleDetailResponse)
def get_role(
    role_id: str,
    _: Principal = Depends(require_permission("role", "read")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    return _detail(RoleService(db), role_id, deadline)


@router.put("/{role_id}", response_model=RoleResponse)
def update_role(
    role_id: str,
    body: RoleUpdate,
    request: Request,
    principal: Principal = Depends(require_permission("role", "update")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    role = RoleService(db).update_role(role_id, body, deadline)
    _audit(request, db, principal, deadline, "role_update", role_id, body.model_dump(exclude_unset=True))
    return role


@router.delete("/{role_id}", status_code=204)
def delete_role(
    role_id: str,
    request: Request,
    principal: Principal = Depends(require_permission("role", "delete")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    RoleService(db).delete_role(role_id, deadline)
    _audit(request, db, principal, deadline, "role_delete", role_id, {})


@router.get("/{role_id}/permissions", response_model=List[PermissionResponse])
def get_role_permissions(
    role_id: str,
    _: Principal = Depends(require_permission("role", "read")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    return RoleService(db).get_role_permissions(role_id, deadline)


@router.put("/{role_id}/permissions", response_model=List[PermissionResponse])
def assign_role_permissions(
    role_id: str,
    body: RolePermissionsUpdate,
    request: Request,
    principal: Principal = Depends(require_permission("role", "update")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    """Replace the role's permission set. Unknown ids change nothing and return 404."""
    permissions = RoleService(db).assign_permissions(role_id, body.permission_ids, deadline)
    _audit(request, db, principal, deadline, "role_permissions_assign", role_id,
           {"permission_ids": body.permission_ids})
    return permissions


@router.delete("/{role_id}/permissions", response_model=List[PermissionResponse])
def remove_role_permissions(
    role_id: str,
    body: RolePermissionsUpdate,
    request: Request,
    principal: Principal = Depends(require_permission("role", "update")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    service = RoleService(db)
    removed = service.remove_permissions(role_id, body.permission_ids, deadline)
    _audit(request, db, principal, deadline, "role_permissions_remove", role_id,
           {"permission_ids": body.permission_ids, "removed": removed})
    return service.get_role_permissions(role_id, deadline)


@permissions_router.get("", response_model=List[PermissionResponse])
def list_permissions(
    resource_type: Optional[str] = None,
    _: Principal = Depends(require_permission("role", "read")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    """The static permission catalog, optionally narrowed to one resource type."""
    if resource_type and not catalog.by_resource(resource_type):
        raise ValidationError(f"Unknown resource type: {resource_type}", field="resource_type")
    return RoleService(db).list_permissions(resource_type, deadline)


@permissions_router.get("/grouped", response_model=Dict[str, List[PermissionResponse]])
def list_permissions_grouped(
    _: Principal = Depends(require_permission("role", "read")),
):
    """The catalog keyed by resource type, in catalog order. Served from memory."""
    return {
        resource_type: [
            PermissionResponse(
                id=p.id,
                name=p.name,
                display_name=p.display_name,
                description=p.description or None,
                resource_type=p.resource_type,
                action=p.action,
                scope=p.scope.value,
            )
            for p in entries
        ]
        for resource_type, entries in catalog.group_by_resource().items()
    }
