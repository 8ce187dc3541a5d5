"""Authorization resolver: allow or deny one action at one scope.

Deny by default. A request is allowed only if the principal holds a live
grant, at the request scope or one of its ancestors, of a role that carries
the exact (resource_type, action) permission. There is no superuser bypass
and no wildcard permission; super_admin is simply a role holding the whole
catalog.

Every call reads storage. Nothing is cached between calls, so a revoked or
expired grant stops counting on the very next check.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import utcnow
from ..core.deadline import Deadline
from ..core.principal import Principal
from ..core.scope import ScopeContext, candidate_scopes
from ..models import Permission
from ..repositories import GrantRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    reason: Optional[str] = None


class AuthorizationResolver:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.grant_repo = GrantRepository(db)

    def check(
        self,
        principal: Principal,
        action: str,
        resource_type: str,
        scope_context: Optional[ScopeContext] = None,
        deadline: Optional[Deadline] = None,
    ) -> bool:
        """True if *principal* may perform *action* on *resource_type* in *scope_context*."""
        scopes = candidate_scopes(scope_context or ScopeContext())
        allowed = self.grant_repo.has_permission(
            principal.user_id,
            resource_type,
            action,
            scopes,
            now=self.clock(),
            deadline=deadline,
        )
        logger.debug(
            "Permission %s",
            "granted" if allowed else "denied",
            extra={
                "user_id": principal.user_id,
                "permission": f"{resource_type}:{action}",
                "scope": str(scopes[-1]),
            },
        )
        return allowed

    def explain(
        self,
        principal: Principal,
        action: str,
        resource_type: str,
        scope_context: Optional[ScopeContext] = None,
        deadline: Optional[Deadline] = None,
    ) -> PermissionDecision:
        """Like check(), with a human-readable reason on deny."""
        scope_context = scope_context or ScopeContext()
        if self.check(principal, action, resource_type, scope_context, deadline):
            return PermissionDecision(allowed=True)
        return PermissionDecision(
            allowed=False,
            reason=(
                f"Permission denied: {resource_type}:{action} "
                f"at {scope_context.to_scope()}"
            ),
        )

    def get_user_permissions(
        self,
        user_id: str,
        cluster: Optional[str] = None,
        namespace: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> List[Permission]:
        """Distinct permissions the user holds at the given scope, ordered by name."""
        scopes = candidate_scopes(ScopeContext(cluster=cluster, namespace=namespace))
        return self.grant_repo.permissions_for(user_id, scopes, now=self.clock(), deadline=deadline)
