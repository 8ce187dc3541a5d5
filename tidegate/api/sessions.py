"""Session administration: list and revoke other users' sessions.

Token hashes never leave the server; responses carry ids, owner, client
and timestamps only.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..core.auth import client_ip, request_deadline, require_permission
from ..core.deadline import Deadline
from ..core.principal import Principal
from ..database import get_db
from ..schemas.pagination import Page, PaginationParams, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ..schemas.session import SessionFilters, SessionResponse
from ..services import AuditLogger, SessionManager

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.get("", response_model=Page[SessionResponse])
def list_sessions(
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    active: Optional[bool] = Query(None, description="true: unexpired only, false: expired only"),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    _: Principal = Depends(require_permission("user", "read")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    return SessionManager(db).list_sessions(
        SessionFilters(user_id=user_id, ip_address=ip_address, active=active),
        PaginationParams(page=page, page_size=page_size),
        deadline,
    )


@router.delete("/{session_id}", status_code=204)
def revoke_session(
    session_id: str,
    request: Request,
    principal: Principal = Depends(require_permission("user", "update")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    """Force-logout one session. Unknown ids are a 404."""
    SessionManager(db).delete(session_id, deadline)
    AuditLogger(db).record(
        actor=principal.user_id,
        action="session_revoke",
        resource_type="session",
        resource_id=session_id,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        deadline=deadline,
    )
