"""Audit log schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    DENIED = "denied"


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    cluster_name: Optional[str] = None
    namespace: Optional[str] = None
    details: Optional[Any] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: str
    created_at: datetime


class AuditLogFilters(BaseModel):
    """All filters are optional and combine with AND.

    action matches as a case-insensitive substring; the time bounds are
    inclusive.
    """
    user_id: Optional[str] = None
    action: Optional[str] = None
    resource_type: Optional[str] = None
    cluster_name: Optional[str] = None
    status: Optional[AuditStatus] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
