"""Session manager: opaque access/refresh tokens backed by hashed storage.

Lifecycle::

    create() ──> Active ──(expires_at passes)──> Expired
                   │
                   └──(delete / logout)──────────> Revoked

Expired and Revoked look the same to every validator: both raise
SessionNotFoundError("Invalid or expired token"). The access and refresh
hashes can also be cleared one at a time, which revokes that token only.

Plaintext tokens exist in memory just long enough to be returned from
create() or refresh_access_token(). Only HMAC digests reach the database.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..core.clock import utcnow
from ..core.config import settings
from ..core.deadline import Deadline
from ..core.principal import Principal
from ..core.tokens import ACCESS_TOKEN_PREFIX, REFRESH_TOKEN_PREFIX, generate_token, hash_token
from ..exceptions import SessionNotFoundError, TideGateException, ValidationError
from ..models import UserSession
from ..repositories import SessionRepository
from ..schemas.pagination import Page, PaginationParams
from ..schemas.session import IssuedSession, SessionFilters, SessionResponse

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(
        self,
        db: Session,
        secret: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.secret = secret or settings.token_hash_secret
        self.clock = clock
        self.repo = SessionRepository(db)

    def hash(self, token: str) -> str:
        return hash_token(token, self.secret)

    def create(
        self,
        user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        ttl: Optional[timedelta] = None,
        deadline: Optional[Deadline] = None,
    ) -> IssuedSession:
        """Open a session and return its two plaintext tokens, once."""
        ttl = ttl if ttl is not None else timedelta(seconds=settings.session_ttl_seconds)
        if ttl.total_seconds() <= 0:
            raise ValidationError("Session TTL must be positive", field="ttl")

        token = generate_token(ACCESS_TOKEN_PREFIX)
        refresh_token = generate_token(REFRESH_TOKEN_PREFIX)
        now = self.clock()
        session = UserSession(
            user_id=user_id,
            token_hash=self.hash(token),
            refresh_token_hash=self.hash(refresh_token),
            ip_address=ip_address,
            user_agent=user_agent,
            expires_at=now + ttl,
            created_at=now,
            last_used_at=now,
        )
        session = self.repo.create(session, deadline)
        logger.info("Session created", extra={"session_id": session.id, "user_id": user_id})
        return IssuedSession(token=token, refresh_token=refresh_token, session=session)

    def validate_by_token_hash(self, token_hash: str, deadline: Optional[Deadline] = None) -> UserSession:
        session = self.repo.find_active_by_token_hash(token_hash, self.clock(), deadline)
        if session is None:
            raise SessionNotFoundError()
        return session

    def validate_by_refresh_token_hash(self, refresh_hash: str, deadline: Optional[Deadline] = None) -> UserSession:
        session = self.repo.find_active_by_refresh_hash(refresh_hash, self.clock(), deadline)
        if session is None:
            raise SessionNotFoundError()
        return session

    def validate_token(self, token: str, deadline: Optional[Deadline] = None) -> UserSession:
        if not token:
            raise SessionNotFoundError()
        return self.validate_by_token_hash(self.hash(token), deadline)

    def validate_refresh_token(self, refresh_token: str, deadline: Optional[Deadline] = None) -> UserSession:
        if not refresh_token:
            raise SessionNotFoundError()
        return self.validate_by_refresh_token_hash(self.hash(refresh_token), deadline)

    def authenticate(self, token: str, deadline: Optional[Deadline] = None) -> Principal:
        """Resolve a bearer token to a Principal and record the use."""
        session = self.validate_token(token, deadline)
        self.update_last_used(session.id, deadline)
        return Principal(user_id=session.user_id, session_id=session.id)

    def update_last_used(self, session_id: str, deadline: Optional[Deadline] = None) -> None:
        """Best effort. A failure here, deadline included, is logged and swallowed."""
        try:
            self.repo.touch(session_id, self.clock(), deadline)
        except TideGateException as e:
            logger.warning(
                "Failed to update session last_used_at",
                extra={"session_id": session_id, "error_code": e.error_code.value},
            )

    def refresh_access_token(self, refresh_token: str, deadline: Optional[Deadline] = None) -> IssuedSession:
        """Mint a new access token for the session owning *refresh_token*.

        The old access token stops working. The refresh token and the
        session expiry are unchanged.
        """
        session = self.validate_refresh_token(refresh_token, deadline)
        token = generate_token(ACCESS_TOKEN_PREFIX)
        if self.repo.set_token_hash(session.id, self.hash(token), deadline) == 0:
            raise SessionNotFoundError()
        logger.info("Access token refreshed", extra={"session_id": session.id})
        self.db.refresh(session)
        return IssuedSession(token=token, refresh_token=refresh_token, session=session)

    def revoke_access_token(self, session_id: str, deadline: Optional[Deadline] = None) -> None:
        if self.repo.set_token_hash(session_id, None, deadline) == 0:
            raise SessionNotFoundError()
        logger.info("Access token revoked", extra={"session_id": session_id})

    def revoke_refresh_token(self, session_id: str, deadline: Optional[Deadline] = None) -> None:
        if self.repo.set_refresh_hash(session_id, None, deadline) == 0:
            raise SessionNotFoundError()
        logger.info("Refresh token revoked", extra={"session_id": session_id})

    def delete(self, session_id: str, deadline: Optional[Deadline] = None) -> None:
        if self.repo.delete(session_id, deadline) == 0:
            raise SessionNotFoundError()
        logger.info("Session deleted", extra={"session_id": session_id})

    def delete_by_user_id(self, user_id: str, deadline: Optional[Deadline] = None) -> int:
        count = self.repo.delete_by_user_id(user_id, deadline)
        logger.info("User sessions deleted", extra={"user_id": user_id, "count": count})
        return count

    def delete_expired(self, deadline: Optional[Deadline] = None) -> int:
        count = self.repo.delete_expired(self.clock(), deadline)
        if count:
            logger.info("Expired sessions deleted", extra={"count": count})
        return count

    def list_sessions(
        self,
        filters: Optional[SessionFilters] = None,
        pagination: Optional[PaginationParams] = None,
        deadline: Optional[Deadline] = None,
    ) -> Page[SessionResponse]:
        filters = filters or SessionFilters()
        pagination = pagination or PaginationParams()
        rows, total = self.repo.list(filters, self.clock(), pagination.offset, pagination.limit, deadline)
        items = [SessionResponse.model_validate(r) for r in rows]
        return Page[SessionResponse].build(items, total, pagination)
