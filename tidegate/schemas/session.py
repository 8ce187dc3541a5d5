"""Session and authentication schemas."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import UserSession
from .grant import RoleGrantResponse


@dataclass
class IssuedSession:
    """Result of SessionManager.create.

    token and refresh_token are plaintext and exist only here. They are
    handed to the client once and never stored or logged.
    """
    token: str
    refresh_token: str
    session: UserSession


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    expires_at: datetime
    created_at: datetime
    last_used_at: datetime


class SessionFilters(BaseModel):
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    active: Optional[bool] = None


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, description="Username or email")
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: datetime


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8)
    display_name: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str
    display_name: Optional[str] = None
    status: str
    created_at: datetime
    last_login_at: Optional[datetime] = None


class PermissionCheckRequest(BaseModel):
    resource_type: str
    action: str
    cluster: Optional[str] = None
    namespace: Optional[str] = None


class PermissionCheckResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None


class EffectivePermissionsResponse(BaseModel):
    user_id: str
    cluster: Optional[str] = None
    namespace: Optional[str] = None
    permissions: List[str]


class LoginResponse(TokenResponse):
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse
    session_id: str
    grants: List[RoleGrantResponse] = []
