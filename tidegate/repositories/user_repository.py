"""User repository for the identity supplement."""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, or_

from ..core.deadline import Deadline
from ..exceptions import UserNotFoundError
from ..models import RoleGrant, User
from .base import BaseRepository


class UserRepository(BaseRepository[User]):
    model_class = User
    not_found_error = UserNotFoundError

    def get_by_login(self, username_or_email: str, deadline: Optional[Deadline] = None) -> Optional[User]:
        """Match a username exactly or an email case-insensitively."""
        value = username_or_email.strip()
        with self.guard("get user by login", deadline):
            return self.db.query(User).filter(or_(
                User.username == value,
                func.lower(User.email) == value.lower(),
            )).first()

    def exists(self, username: str, email: str, deadline: Optional[Deadline] = None) -> bool:
        with self.guard("check user exists", deadline):
            return self.db.query(User.id).filter(or_(
                User.username == username,
                func.lower(User.email) == email.lower(),
            )).first() is not None

    def add(
        self,
        user: User,
        grants: Iterable[RoleGrant] = (),
        deadline: Optional[Deadline] = None,
    ) -> User:
        """Insert the user and its initial grants in one transaction.

        *grants* get their user_id filled in here. A failure on any row leaves
        neither the user nor any grant behind.
        """
        with self.atomic("create user", deadline):
            self.db.add(user)
            self.db.flush()
            for grant in grants:
                grant.user_id = user.id
                self.db.add(grant)
        self.db.refresh(user)
        return user

    def set_last_login(self, user: User, when: datetime, deadline: Optional[Deadline] = None) -> None:
        with self.atomic("update last login", deadline):
            user.last_login_at = when

    def set_password_hash(self, user: User, password_hash: str, deadline: Optional[Deadline] = None) -> None:
        with self.atomic("update password", deadline):
            user.password_hash = password_hash
