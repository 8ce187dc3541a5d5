"""Role grant schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..core.scope import ScopeType


class RoleGrantCreate(BaseModel):
    """Assign role_id to user_id at one scope.

    scope_value is omitted for global, the cluster name for cluster scope and
    "cluster/namespace" for namespace scope.
    """
    user_id: str
    role_id: str
    scope_type: ScopeType = ScopeType.GLOBAL
    scope_value: Optional[str] = None
    expires_at: Optional[datetime] = None
    granted_by: Optional[str] = None


class RoleGrantRequest(BaseModel):
    """Body of POST /api/users/{user_id}/roles."""
    role_id: str
    scope_type: ScopeType = ScopeType.GLOBAL
    scope_value: Optional[str] = None
    expires_at: Optional[datetime] = None


class RoleGrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    role_id: str
    role_name: Optional[str] = None
    scope_type: str
    scope_value: str
    granted_at: datetime
    granted_by: Optional[str] = None
    expires_at: Optional[datetime] = None


class GrantFilters(BaseModel):
    scope_type: Optional[ScopeType] = None
    scope_value: Optional[str] = None
    include_expired: bool = False
