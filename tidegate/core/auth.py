"""Authentication and authorization dependencies for FastAPI routes.

Public interface:
    ``require_principal``  - returns the caller's Principal or raises 401.
    ``require_permission`` - factory; the dependency returns the Principal
                             or raises 403 when the resolver denies.
    ``scope_from_path``    - ScopeContext built from ``cluster`` and
                             ``namespace`` path parameters.
    ``request_deadline``   - per-request storage Deadline from settings.

The bearer credential is read from the ``Authorization: Bearer`` header,
then the ``token`` query parameter (browsers cannot set headers on
WebSocket upgrades), then the ``token`` cookie.
"""

import logging
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from . import catalog
from .config import settings
from .deadline import Deadline
from .principal import Principal
from .scope import ScopeContext
from ..database import get_db
from ..exceptions import AuthenticationError, ForbiddenError, SessionNotFoundError

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

TOKEN_QUERY_PARAM = "token"
TOKEN_COOKIE = "token"


def extract_bearer_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
) -> Optional[str]:
    """Return the presented token, or None when the request carries none."""
    if credentials is not None and credentials.scheme.lower() == "bearer" and credentials.credentials:
        return credentials.credentials.strip()

    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()

    token = request.query_params.get(TOKEN_QUERY_PARAM)
    if token:
        return token

    return request.cookies.get(TOKEN_COOKIE) or None


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def request_deadline() -> Optional[Deadline]:
    """Storage deadline shared by every dependency and handler of one request."""
    return Deadline.from_settings(settings.request_timeout_seconds)


def require_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: Session = Depends(get_db),
    deadline: Optional[Deadline] = Depends(request_deadline),
) -> Principal:
    """Validate the session token and return the caller's Principal.

    Absent, unknown, revoked and expired tokens all give the same 401.
    """
    from ..services.session_service import SessionManager

    token = extract_bearer_token(request, credentials)
    if not token:
        raise AuthenticationError("Missing authentication token")
    try:
        principal = SessionManager(db).authenticate(token, deadline)
    except SessionNotFoundError:
        raise AuthenticationError("Invalid or expired token") from None
    request.state.user_id = principal.user_id
    return principal


def scope_from_path(request: Request) -> ScopeContext:
    params = request.path_params
    return ScopeContext(cluster=params.get("cluster"), namespace=params.get("namespace"))


def require_permission(resource_type: str, action: str) -> Callable[..., Principal]:
    """Build a dependency that allows the request only if the resolver does.

    The scope comes from the route's ``cluster``/``namespace`` path
    parameters, so the same factory serves global, cluster and namespace
    routes. Denials are written to the audit log with status "denied".

    The pair must be a catalog permission; a typo fails when the route
    module is imported instead of silently denying every request.
    """
    catalog.require(resource_type, action)

    def dependency(
        request: Request,
        principal: Principal = Depends(require_principal),
        scope: ScopeContext = Depends(scope_from_path),
        db: Session = Depends(get_db),
        deadline: Optional[Deadline] = Depends(request_deadline),
    ) -> Principal:
        from ..services.audit_service import AuditLogger
        from ..services.authorization_service import AuthorizationResolver

        if AuthorizationResolver(db).check(principal, action, resource_type, scope, deadline):
            return principal

        AuditLogger(db).record(
            actor=principal.user_id,
            action=f"{resource_type}:{action}",
            resource_type=resource_type,
            cluster_name=scope.cluster,
            namespace=scope.namespace,
            details={"path": request.url.path, "method": request.method},
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            status="denied",
            deadline=deadline,
        )
        raise ForbiddenError(f"Permission denied: {resource_type}:{action}")

    return dependency
