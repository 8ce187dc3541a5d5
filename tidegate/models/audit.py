"""AuditLog model.

Rows are appended by AuditLogger and never updated. The only deletion is
retention pruning by age.
"""

from sqlalchemy import Column, String, DateTime, Integer, JSON, Index

from ..core.clock import utcnow
from ..database import Base


class AuditLog(Base):
    """Immutable record of one attempted action.

    Fields:
        action        - login_success, login_failed, role_create, grant_assign, ...
        resource_type - role, grant, session, user, ...
        status        - success, failed or denied
        details       - free-form JSON context supplied by the handler
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=True)
    action = Column(String(100), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(255), nullable=True)
    cluster_name = Column(String(255), nullable=True)
    namespace = Column(String(255), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default="success")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_audit_logs_created_at", "created_at"),
        Index("ix_audit_logs_user_id", "user_id"),
    )
