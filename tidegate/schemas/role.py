"""Role and permission schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ROLE_TYPES = ("system", "custom")


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    resource_type: str
    action: str
    scope: str


class RoleBase(BaseModel):
    display_name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    is_default: bool = False


class RoleCreate(RoleBase):
    """Schema for creating a custom role.

    permission_ids, when given, become the role's initial permission set.
    """
    name: str = Field(min_length=1, max_length=100)
    permission_ids: List[str] = []

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("Role name cannot be empty")
        if any(ch.isspace() for ch in v):
            raise ValueError("Role name cannot contain whitespace")
        return v


class RoleUpdate(BaseModel):
    """Partial update. Only fields explicitly sent are applied."""
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_default: Optional[bool] = None


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    type: str
    is_default: bool
    created_at: datetime
    updated_at: datetime
    created_by: Optional[str] = None


class RoleDetailResponse(RoleResponse):
    permissions: List[PermissionResponse] = []


class RoleFilters(BaseModel):
    type: Optional[str] = None
    is_default: Optional[bool] = None
    search: Optional[str] = None


class RolePermissionsUpdate(BaseModel):
    permission_ids: List[str]
