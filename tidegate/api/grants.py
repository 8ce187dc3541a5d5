"""User role grant API endpoints.

    GET    /api/users/{user_id}/roles   - list grants (user:read)
    POST   /api/users/{user_id}/roles   - assign or refresh a grant (user:update)
    DELETE /api/users/{user_id}/roles   - revoke one exact grant (user:update)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..core.auth import client_ip, request_deadline, require_permission
from ..core.deadline import Deadline
from ..core.principal import Principal
from ..core.scope import ScopeType
from ..database import get_db
from ..schemas.grant import GrantFilters, RoleGrantCreate, RoleGrantRequest, RoleGrantResponse
from ..services import AuditLogger, GrantService

router = APIRouter(prefix="/api/users/{user_id}/roles", tags=["grants"])


@router.get("", response_model=List[RoleGrantResponse])
def list_user_roles(
    user_id: str,
    scope_type: Optional[ScopeType] = None,
    scope_value: Optional[str] = None,
    include_expired: bool = False,
    _: Principal = Depends(require_permission("user", "read")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    filters = GrantFilters(scope_type=scope_type, scope_value=scope_value, include_expired=include_expired)
    return GrantService(db).list_user_grants(user_id, filters, deadline)


@router.post("", response_model=RoleGrantResponse, status_code=201)
def assign_user_role(
    user_id: str,
    body: RoleGrantRequest,
    request: Request,
    principal: Principal = Depends(require_permission("user", "update")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    grant = GrantService(db).assign_role(
        RoleGrantCreate(
            user_id=user_id,
            role_id=body.role_id,
            scope_type=body.scope_type,
            scope_value=body.scope_value,
            expires_at=body.expires_at,
            granted_by=principal.user_id,
        ),
        deadline,
    )
    AuditLogger(db).record(
        actor=principal.user_id,
        action="grant_assign",
        resource_type="grant",
        resource_id=grant.id,
        cluster_name=_cluster_of(grant.scope_type, grant.scope_value),
        namespace=_namespace_of(grant.scope_type, grant.scope_value),
        details={
            "user_id": user_id,
            "role_id": body.role_id,
            "scope_type": grant.scope_type,
            "scope_value": grant.scope_value,
            "expires_at": grant.expires_at.isoformat() if grant.expires_at else None,
        },
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        deadline=deadline,
    )
    return grant


@router.delete("", status_code=204)
def revoke_user_role(
    user_id: str,
    request: Request,
    role_id: str = Query(...),
    scope_type: ScopeType = Query(ScopeType.GLOBAL),
    scope_value: Optional[str] = Query(None),
    principal: Principal = Depends(require_permission("user", "update")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    GrantService(db).remove_role(user_id, role_id, scope_type.value, scope_value, deadline)
    AuditLogger(db).record(
        actor=principal.user_id,
        action="grant_revoke",
        resource_type="grant",
        details={
            "user_id": user_id,
            "role_id": role_id,
            "scope_type": scope_type.value,
            "scope_value": scope_value or "",
        },
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        deadline=deadline,
    )


def _cluster_of(scope_type: str, scope_value: str) -> Optional[str]:
    if scope_type == ScopeType.GLOBAL.value:
        return None
    return scope_value.split("/", 1)[0]


def _namespace_of(scope_type: str, scope_value: str) -> Optional[str]:
    if scope_type != ScopeType.NAMESPACE.value:
        return None
    return scope_value.split("/", 1)[1]
