"""Grant service: scoped user-role assignments with optional expiry."""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import as_utc, utcnow
from ..core.deadline import Deadline
from ..core.scope import Scope, ScopeType
from ..exceptions import GrantNotFoundError, ValidationError
from ..models import RoleGrant
from ..repositories import GrantRepository, RoleRepository
from ..schemas.grant import GrantFilters, RoleGrantCreate

logger = logging.getLogger(__name__)


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(value).astimezone(timezone.utc)


class GrantService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.grant_repo = GrantRepository(db)
        self.role_repo = RoleRepository(db)

    def assign_role(self, grant: RoleGrantCreate, deadline: Optional[Deadline] = None) -> RoleGrant:
        """Grant a role to a user at a scope.

        Re-assigning the same (user, role, scope) refreshes granted_at,
        granted_by and expires_at instead of failing. An expiry that is
        already in the past is rejected.
        """
        if not grant.user_id.strip():
            raise ValidationError("user_id is required", field="user_id")
        scope = Scope.from_parts(grant.scope_type, grant.scope_value)
        now = self.clock()
        expires_at = _to_utc(grant.expires_at)
        if expires_at is not None and expires_at <= now:
            raise ValidationError("expires_at must be in the future", field="expires_at")

        self.role_repo.get_by_id(grant.role_id, deadline)
        row = self.grant_repo.upsert(
            user_id=grant.user_id,
            role_id=grant.role_id,
            scope=scope,
            granted_at=now,
            granted_by=grant.granted_by,
            expires_at=expires_at,
            deadline=deadline,
        )
        logger.info(
            "Role assigned",
            extra={"user_id": grant.user_id, "role_id": grant.role_id, "scope": str(scope)},
        )
        return row

    def remove_role(
        self,
        user_id: str,
        role_id: str,
        scope_type: str,
        scope_value: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> None:
        """Delete exactly the grant keyed by (user, role, scope)."""
        scope = Scope.from_parts(scope_type, scope_value)
        removed = self.grant_repo.delete_exact(user_id, role_id, scope, deadline)
        if removed == 0:
            raise GrantNotFoundError(user_id, role_id, scope.type.value, scope.value)
        logger.info(
            "Role removed",
            extra={"user_id": user_id, "role_id": role_id, "scope": str(scope)},
        )

    def list_user_grants(
        self,
        user_id: str,
        filters: Optional[GrantFilters] = None,
        deadline: Optional[Deadline] = None,
    ) -> List[RoleGrant]:
        """A user's grants, live ones only unless include_expired is set."""
        filters = filters or GrantFilters()
        scope_value = filters.scope_value
        if filters.scope_type is ScopeType.GLOBAL and scope_value is None:
            scope_value = ""
        return self.grant_repo.list_for_user(
            user_id,
            now=self.clock(),
            scope_type=filters.scope_type,
            scope_value=scope_value,
            include_expired=filters.include_expired,
            deadline=deadline,
        )
