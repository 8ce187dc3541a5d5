"""Audit log API endpoints (audit:read)."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import request_deadline, require_permission
from ..core.deadline import Deadline
from ..core.principal import Principal
from ..database import get_db
from ..schemas.audit import AuditLogFilters, AuditLogResponse, AuditStatus
from ..schemas.pagination import Page, PaginationParams, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ..services import AuditLogger

router = APIRouter(prefix="/api/audit-logs", tags=["audit"])


@router.get("", response_model=Page[AuditLogResponse])
def list_audit_logs(
    user_id: Optional[str] = None,
    action: Optional[str] = Query(None, description="Case-insensitive substring"),
    resource_type: Optional[str] = None,
    cluster_name: Optional[str] = None,
    status: Optional[AuditStatus] = None,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    _: Principal = Depends(require_permission("audit", "read")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    filters = AuditLogFilters(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        cluster_name=cluster_name,
        status=status,
        start_time=start_time,
        end_time=end_time,
    )
    return AuditLogger(db).list(filters, PaginationParams(page=page, page_size=page_size), deadline)


@router.get("/{entry_id}", response_model=AuditLogResponse)
def get_audit_log(
    entry_id: int,
    _: Principal = Depends(require_permission("audit", "read")),
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(request_deadline),
):
    return AuditLogger(db).get(entry_id, deadline)
