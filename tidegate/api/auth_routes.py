"""Authentication API endpoints.

Public endpoints:
    POST /api/auth/login              - check credentials, open a session
    POST /api/auth/refresh            - trade a refresh token for a new access token

Authenticated endpoints:
    POST /api/auth/logout             - revoke the current session
    POST /api/auth/logout-all         - revoke every session of the caller
    POST /api/auth/change-password    - set a new password, revoke all sessions
    GET  /api/auth/me                 - current user, session and grants
    POST /api/auth/permissions/check  - ask the resolver about one action

Requires user:create:
    POST /api/auth/register           - create an account with the default roles
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ..core import catalog
from ..core.auth import client_ip, request_deadline, require_permission, require_principal, TOKEN_COOKIE
from ..core.config import settings
from ..core.deadline import Deadline
from ..core.principal import Principal
from ..core.scope import ScopeContext
from ..database import get_db
from ..exceptions import AuthenticationError, SessionNotFoundError
from ..schemas.grant import RoleGrantResponse
from ..schemas.session import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from ..services import AuditLogger, AuthService, AuthorizationResolver, GrantService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/login", response_model=LoginResponse, summary="Log in and open a session")
def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    user, issued = AuthService(db).login(
        body.username,
        body.password,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        deadline=deadline,
    )
    response.set_cookie(
        TOKEN_COOKIE,
        issued.token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.environment.value == "production",
    )
    return LoginResponse(
        access_token=issued.token,
        refresh_token=issued.refresh_token,
        expires_at=issued.session.expires_at,
        user=UserResponse.model_validate(user),
    )


@router.post("/refresh", response_model=TokenResponse, summary="Refresh the access token")
def refresh(
    body: RefreshRequest,
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    try:
        issued = AuthService(db).refresh(body.refresh_token, deadline)
    except SessionNotFoundError:
        raise AuthenticationError("Invalid or expired token") from None
    return TokenResponse(access_token=issued.token, expires_at=issued.session.expires_at)


@router.post("/logout", status_code=204, summary="Revoke the current session")
def logout(
    request: Request,
    response: Response,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    AuthService(db).logout(principal, deadline)
    AuditLogger(db).record(
        actor=principal.user_id,
        action="logout",
        resource_type="session",
        resource_id=principal.session_id,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        deadline=deadline,
    )
    response.delete_cookie(TOKEN_COOKIE)
    response.status_code = 204
    return response


@router.post("/logout-all", summary="Revoke every session of the caller")
def logout_all(
    request: Request,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    revoked = AuthService(db).logout_all(principal.user_id, deadline)
    AuditLogger(db).record(
        actor=principal.user_id,
        action="logout_all",
        resource_type="session",
        details={"revoked": revoked},
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        deadline=deadline,
    )
    return {"revoked": revoked}


@router.post("/change-password", summary="Change password and revoke all sessions")
def change_password(
    body: ChangePasswordRequest,
    request: Request,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    revoked = AuthService(db).change_password(
        principal.user_id, body.current_password, body.new_password, deadline
    )
    AuditLogger(db).record(
        actor=principal.user_id,
        action="password_change",
        resource_type="user",
        resource_id=principal.user_id,
        details={"sessions_revoked": revoked},
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        deadline=deadline,
    )
    return {"revoked": revoked}


@router.get("/me", response_model=MeResponse, summary="Current user and grants")
def me(
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    user = AuthService(db).get_user(principal.user_id, deadline)
    grants = GrantService(db).list_user_grants(principal.user_id, deadline=deadline)
    return MeResponse(
        user=UserResponse.model_validate(user),
        session_id=principal.session_id,
        grants=[RoleGrantResponse.model_validate(g) for g in grants],
    )


@router.post(
    "/permissions/check",
    response_model=PermissionCheckResponse,
    summary="Check whether the caller may perform an action",
)
def check_permission(
    body: PermissionCheckRequest,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    """Unknown resource/action pairs are a 400, not a silent deny."""
    catalog.require(body.resource_type, body.action)
    decision = AuthorizationResolver(db).explain(
        principal,
        body.action,
        body.resource_type,
        ScopeContext(cluster=body.cluster, namespace=body.namespace),
        deadline,
    )
    return PermissionCheckResponse(allowed=decision.allowed, reason=decision.reason)


@router.post("/register", response_model=UserResponse, status_code=201, summary="Register a new user")
def register(
    body: RegisterRequest,
    request: Request,
    principal: Principal = Depends(require_permission("user", "create")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    user = AuthService(db).register_user(body, granted_by=principal.user_id, deadline=deadline)
    AuditLogger(db).record(
        actor=principal.user_id,
        action="user_create",
        resource_type="user",
        resource_id=user.id,
        details={"username": user.username},
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        deadline=deadline,
    )
    return user
