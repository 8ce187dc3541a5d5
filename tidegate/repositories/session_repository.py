"""Session repository. Looks sessions up by token hash, never by plaintext."""

from datetime import datetime
from typing import List, Optional, Tuple

from ..core.deadline import Deadline
from ..exceptions import SessionNotFoundError
from ..models import UserSession
from ..schemas.session import SessionFilters
from .base import BaseRepository


def _not_found(_session_id: str) -> SessionNotFoundError:
    return SessionNotFoundError()


class SessionRepository(BaseRepository[UserSession]):
    model_class = UserSession
    not_found_error = staticmethod(_not_found)

    def create(self, session: UserSession, deadline: Optional[Deadline] = None) -> UserSession:
        with self.atomic("create session", deadline):
            self.db.add(session)
        self.db.refresh(session)
        return session

    def find_active_by_token_hash(
        self, token_hash: str, now: datetime, deadline: Optional[Deadline] = None,
    ) -> Optional[UserSession]:
        with self.guard("validate session", deadline):
            return self.db.query(UserSession).filter(
                UserSession.token_hash == token_hash,
                UserSession.expires_at > now,
            ).first()

    def find_active_by_refresh_hash(
        self, refresh_hash: str, now: datetime, deadline: Optional[Deadline] = None,
    ) -> Optional[UserSession]:
        with self.guard("validate refresh token", deadline):
            return self.db.query(UserSession).filter(
                UserSession.refresh_token_hash == refresh_hash,
                UserSession.expires_at > now,
            ).first()

    def set_token_hash(
        self, session_id: str, token_hash: Optional[str], deadline: Optional[Deadline] = None,
    ) -> int:
        with self.atomic("update session token", deadline):
            count = self.db.query(UserSession).filter(UserSession.id == session_id).update(
                {UserSession.token_hash: token_hash}, synchronize_session=False,
            )
        self.db.expire_all()
        return count

    def set_refresh_hash(
        self, session_id: str, refresh_hash: Optional[str], deadline: Optional[Deadline] = None,
    ) -> int:
        with self.atomic("update session refresh token", deadline):
            count = self.db.query(UserSession).filter(UserSession.id == session_id).update(
                {UserSession.refresh_token_hash: refresh_hash}, synchronize_session=False,
            )
        self.db.expire_all()
        return count

    def touch(self, session_id: str, now: datetime, deadline: Optional[Deadline] = None) -> None:
        with self.atomic("update session last used", deadline):
            self.db.query(UserSession).filter(UserSession.id == session_id).update(
                {UserSession.last_used_at: now}, synchronize_session=False,
            )

    def delete(self, session_id: str, deadline: Optional[Deadline] = None) -> int:
        with self.atomic("delete session", deadline):
            count = self.db.query(UserSession).filter(
                UserSession.id == session_id
            ).delete(synchronize_session=False)
        return count

    def delete_by_user_id(self, user_id: str, deadline: Optional[Deadline] = None) -> int:
        with self.atomic("delete user sessions", deadline):
            count = self.db.query(UserSession).filter(
                UserSession.user_id == user_id
            ).delete(synchronize_session=False)
        return count

    def delete_expired(self, now: datetime, deadline: Optional[Deadline] = None) -> int:
        """Single conditional DELETE of every session with expires_at <= now."""
        with self.atomic("delete expired sessions", deadline):
            count = self.db.query(UserSession).filter(
                UserSession.expires_at <= now
            ).delete(synchronize_session=False)
        return count

    def list(
        self,
        filters: SessionFilters,
        now: datetime,
        skip: int = 0,
        limit: int = 20,
        deadline: Optional[Deadline] = None,
    ) -> Tuple[List[UserSession], int]:
        with self.guard("list sessions", deadline):
            query = self.db.query(UserSession)
            if filters.user_id:
                query = query.filter(UserSession.user_id == filters.user_id)
            if filters.ip_address:
                query = query.filter(UserSession.ip_address == filters.ip_address)
            if filters.active is True:
                query = query.filter(UserSession.expires_at > now)
            elif filters.active is False:
                query = query.filter(UserSession.expires_at <= now)
            total = query.count()
            items = (
                query.order_by(UserSession.created_at.desc(), UserSession.id)
                .offset(skip).limit(limit).all()
            )
        return items, total
