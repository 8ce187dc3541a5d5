"""UserSession model.

Only keyed hashes of the access and refresh tokens are stored. Either hash
may be cleared independently to revoke that half of the pair; deleting the
row revokes both.
"""

import uuid

from sqlalchemy import Column, String, DateTime, Text, Index

from ..core.clock import utcnow
from ..database import Base


class UserSession(Base):
    __tablename__ = "user_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False)
    token_hash = Column(String(64), unique=True, nullable=True)
    refresh_token_hash = Column(String(64), unique=True, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_user_sessions_user_id", "user_id"),
        Index("ix_user_sessions_expires_at", "expires_at"),
    )
