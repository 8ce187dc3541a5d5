"""Authentication service: local accounts, login and session issuance.

Passwords are hashed with bcrypt via passlib and never stored or logged in
plaintext. Every login failure, whether the account is unknown, the password
is wrong or the account is disabled, surfaces as the same
AuthenticationError so callers cannot tell which accounts exist.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from passlib.hash import bcrypt
from sqlalchemy.orm import Session

from ..core.clock import utcnow
from ..core.config import settings
from ..core.deadline import Deadline
from ..core.principal import Principal
from ..core.scope import Scope
from ..exceptions import AuthenticationError, ConflictError, ValidationError
from ..models import RoleGrant, User
from ..repositories import RoleRepository, UserRepository
from ..schemas.audit import AuditStatus
from ..schemas.session import IssuedSession, RegisterRequest
from .audit_service import AuditLogger
from .session_service import SessionManager

logger = logging.getLogger(__name__)

# NIST SP 800-63B recommends at least 8 characters.
MIN_PASSWORD_LENGTH = 8

_LOGIN_FAILED = "Invalid username or password"


def hash_password(password: str) -> str:
    return bcrypt.using(rounds=settings.bcrypt_rounds).hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.verify(password, password_hash)
    except ValueError:
        # Malformed stored hash
        return False


class AuthService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.user_repo = UserRepository(db)
        self.role_repo = RoleRepository(db)
        self.sessions = SessionManager(db, clock=clock)
        self.audit = AuditLogger(db, clock=clock)

    def register_user(
        self,
        data: RegisterRequest,
        granted_by: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> User:
        """Create an account and attach every default role at global scope.

        The user row and its grants commit together or not at all.

        Raises ValidationError for malformed input and ConflictError if the
        username or email is taken.
        """
        username = data.username.strip()
        email = data.email.strip().lower()
        if not username:
            raise ValidationError("Username required", field="username")
        if "@" not in email:
            raise ValidationError("Valid email address required", field="email")
        if len(data.password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password"
            )
        if self.user_repo.exists(username, email, deadline):
            raise ConflictError("Username or email already registered")

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(data.password),
            display_name=(data.display_name or "").strip() or username,
            status="active",
        )
        now = self.clock()
        scope = Scope.global_()
        grants = [
            RoleGrant(
                role_id=role.id,
                scope_type=scope.type.value,
                scope_value=scope.value,
                granted_at=now,
                granted_by=granted_by,
            )
            for role in self.role_repo.get_defaults(deadline)
        ]
        user = self.user_repo.add(user, grants, deadline)
        logger.info("User registered", extra={"user_id": user.id, "username": username})
        return user

    def login(
        self,
        username_or_email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> Tuple[User, IssuedSession]:
        """Check credentials and open a session."""
        user = self.user_repo.get_by_login(username_or_email, deadline)
        if user is None or not verify_password(password, user.password_hash) or not user.is_active:
            self.audit.record(
                actor=user.id if user is not None else None,
                action="login_failed",
                resource_type="session",
                details={"username": username_or_email},
                ip_address=ip_address,
                user_agent=user_agent,
                status=AuditStatus.FAILED,
                deadline=deadline,
            )
            logger.info("Login failed", extra={"ip_address": ip_address})
            raise AuthenticationError(_LOGIN_FAILED)

        issued = self.sessions.create(user.id, ip_address, user_agent, deadline=deadline)
        self.user_repo.set_last_login(user, self.clock(), deadline)
        self.audit.record(
            actor=user.id,
            action="login_success",
            resource_type="session",
            resource_id=issued.session.id,
            ip_address=ip_address,
            user_agent=user_agent,
            deadline=deadline,
        )
        return user, issued

    def refresh(self, refresh_token: str, deadline: Optional[Deadline] = None) -> IssuedSession:
        return self.sessions.refresh_access_token(refresh_token, deadline)

    def logout(self, principal: Principal, deadline: Optional[Deadline] = None) -> None:
        self.sessions.delete(principal.session_id, deadline)

    def logout_all(self, user_id: str, deadline: Optional[Deadline] = None) -> int:
        return self.sessions.delete_by_user_id(user_id, deadline)

    def get_user(self, user_id: str, deadline: Optional[Deadline] = None) -> User:
        return self.user_repo.get_by_id(user_id, deadline)

    def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
        deadline: Optional[Deadline] = None,
    ) -> int:
        """Set a new password and revoke every session of the user. Returns the revoked count."""
        user = self.user_repo.get_by_id(user_id, deadline)
        if not verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="new_password"
            )
        self.user_repo.set_password_hash(user, hash_password(new_password), deadline)
        revoked = self.sessions.delete_by_user_id(user_id, deadline)
        logger.info("Password changed", extra={"user_id": user_id, "sessions_revoked": revoked})
        return revoked
