"""Effective-permission endpoints for cluster and namespace scopes.

Any authenticated caller may ask what they themselves can do at a scope;
the response drives which actions a console shows.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.auth import request_deadline, require_principal
from ..core.deadline import Deadline
from ..core.principal import Principal
from ..database import get_db
from ..schemas.session import EffectivePermissionsResponse
from ..services import AuthorizationResolver

router = APIRouter(prefix="/api/clusters/{cluster}", tags=["scopes"])


@router.get("/permissions", response_model=EffectivePermissionsResponse)
def cluster_permissions(
    cluster: str,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    permissions = AuthorizationResolver(db).get_user_permissions(
        principal.user_id, cluster=cluster, deadline=deadline
    )
    return EffectivePermissionsResponse(
        user_id=principal.user_id,
        cluster=cluster,
        permissions=[p.name for p in permissions],
    )


@router.get("/namespaces/{namespace}/permissions", response_model=EffectivePermissionsResponse)
def namespace_permissions(
    cluster: str,
    namespace: str,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    permissions = AuthorizationResolver(db).get_user_permissions(
        principal.user_id, cluster=cluster, namespace=namespace, deadline=deadline
    )
    return EffectivePermissionsResponse(
        user_id=principal.user_id,
        cluster=cluster,
        namespace=namespace,
        permissions=[p.name for p in permissions],
    )
