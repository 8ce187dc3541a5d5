"""Audit log repository. Append, read and age-based prune only."""

from datetime import datetime
from typing import List, Optional, Tuple

from ..core.deadline import Deadline
from ..exceptions import AuditLogNotFoundError
from ..models import AuditLog
from ..schemas.audit import AuditLogFilters
from .base import BaseRepository, escape_like


class AuditRepository(BaseRepository[AuditLog]):
    model_class = AuditLog
    not_found_error = AuditLogNotFoundError

    def add(self, entry: AuditLog, deadline: Optional[Deadline] = None) -> AuditLog:
        with self.atomic("record audit entry", deadline):
            self.db.add(entry)
        self.db.refresh(entry)
        return entry

    def list(
        self,
        filters: AuditLogFilters,
        skip: int = 0,
        limit: int = 20,
        deadline: Optional[Deadline] = None,
    ) -> Tuple[List[AuditLog], int]:
        """Filtered page, newest first.

        id breaks ties between rows written in the same instant so that
        consecutive offset pages neither repeat nor skip a row.
        """
        with self.guard("list audit logs", deadline):
            query = self.db.query(AuditLog)
            if filters.user_id:
                query = query.filter(AuditLog.user_id == filters.user_id)
            if filters.action:
                query = query.filter(
                    AuditLog.action.ilike(f"%{escape_like(filters.action)}%", escape="\\")
                )
            if filters.resource_type:
                query = query.filter(AuditLog.resource_type == filters.resource_type)
            if filters.cluster_name:
                query = query.filter(AuditLog.cluster_name == filters.cluster_name)
            if filters.status:
                query = query.filter(AuditLog.status == filters.status.value)
            if filters.start_time:
                query = query.filter(AuditLog.created_at >= filters.start_time)
            if filters.end_time:
                query = query.filter(AuditLog.created_at <= filters.end_time)
            total = query.count()
            items = (
                query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
                .offset(skip).limit(limit).all()
            )
        return items, total

    def delete_before(self, cutoff: datetime, deadline: Optional[Deadline] = None) -> int:
        with self.atomic("prune audit logs", deadline):
            count = self.db.query(AuditLog).filter(
                AuditLog.created_at < cutoff
            ).delete(synchronize_session=False)
        return count
