"""Audit logger: records mutating actions after they commit.

Entries are immutable. record() is write-only and never raises, so an audit
failure can never undo or mask the business action it describes. Reads are
for administrators holding audit:read.

Usage from a handler, after the business commit:
    AuditLogger(db).record(actor=principal.user_id, action="role_create",
                           resource_type="role", resource_id=role.id,
                           details={"name": role.name})
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import sqlalchemy.exc
from sqlalchemy.orm import Session

from ..core.clock import as_utc, utcnow
from ..core.deadline import Deadline
from ..exceptions import TideGateException
from ..models import AuditLog
from ..repositories import AuditRepository
from ..schemas.audit import AuditLogFilters, AuditLogResponse, AuditStatus
from ..schemas.pagination import Page, PaginationParams

logger = logging.getLogger(__name__)


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value).astimezone(timezone.utc) if value is not None else None


class AuditLogger:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.repo = AuditRepository(db)

    def record(
        self,
        actor: Optional[str],
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        cluster_name: Optional[str] = None,
        namespace: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        status: AuditStatus | str = AuditStatus.SUCCESS,
        deadline: Optional[Deadline] = None,
    ) -> Optional[AuditLog]:
        """Append one entry. Never raises; audit failures are logged and dropped.

        A passed or cancelled *deadline* drops the entry like any other failure.
        """
        try:
            entry = AuditLog(
                user_id=actor,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                cluster_name=cluster_name,
                namespace=namespace,
                details=details,
                ip_address=ip_address,
                user_agent=user_agent,
                status=AuditStatus(status).value,
                created_at=self.clock(),
            )
            return self.repo.add(entry, deadline)
        except (sqlalchemy.exc.SQLAlchemyError, TideGateException, ValueError) as e:
            logger.warning(
                "Failed to write audit log: %s", type(e).__name__,
                extra={"action": action, "resource_type": resource_type},
            )
            return None

    def get(self, entry_id: int, deadline: Optional[Deadline] = None) -> AuditLog:
        return self.repo.get_by_id(entry_id, deadline)

    def list(
        self,
        filters: Optional[AuditLogFilters] = None,
        pagination: Optional[PaginationParams] = None,
        deadline: Optional[Deadline] = None,
    ) -> Page[AuditLogResponse]:
        """Filtered page of entries, newest first."""
        filters = (filters or AuditLogFilters()).model_copy(update={})
        filters.start_time = _to_utc(filters.start_time)
        filters.end_time = _to_utc(filters.end_time)
        pagination = pagination or PaginationParams()
        rows, total = self.repo.list(filters, pagination.offset, pagination.limit, deadline)
        items = [AuditLogResponse.model_validate(r) for r in rows]
        return Page[AuditLogResponse].build(items, total, pagination)

    def delete_old_logs(self, cutoff: datetime, deadline: Optional[Deadline] = None) -> int:
        """Irreversibly delete entries created before *cutoff*. Returns the count."""
        count = self.repo.delete_before(_to_utc(cutoff), deadline)
        logger.info("Audit log pruned", extra={"deleted": count, "cutoff": cutoff.isoformat()})
        return count

    def purge_old_entries(self, days: int, deadline: Optional[Deadline] = None) -> int:
        """Retention sweep: delete entries older than *days*. Skipped when days <= 0."""
        if days <= 0:
            return 0
        return self.delete_old_logs(self.clock() - timedelta(days=days), deadline)
