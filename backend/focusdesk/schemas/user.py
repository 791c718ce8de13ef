import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Role(enum.StrEnum):
    guest = "guest"
    user = "user"
    manager = "manager"
    admin = "admin"


class UserMapping(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    internal_user_id: int
    external_id: str
    email: str
    created_at: datetime
    last_seen_at: datetime


class InternalUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    internal_user_id: int
    email: str
    role: Role = Role.user
    is_active: bool = True
    created_at: datetime


class UserResponse(InternalUser):
    pass


class UserListItem(InternalUser):
    external_id: str
    last_seen_at: datetime


class RoleUpdateRequest(BaseModel):
    role: str = Field(..., description="One of guest, user, manager, admin")


class UserSyncRequest(BaseModel):
    external_id: str = Field(..., min_length=1, max_length=255, description="Subject ID from the identity provider")
    # Use str instead of EmailStr to allow system-generated emails for forward auth
    email: str = Field(..., min_length=3, max_length=255)
    id_token: str | None = Field(
        None, description="OIDC ID token for verification (required when OIDC is configured)"
    )


class UserSyncResponse(BaseModel):
    internal_user_id: int
    email: str
    role: Role
    access_token: str = Field(..., description="JWT token for API authentication")


class AuthStatusResponse(BaseModel):
    configured: bool
    mode: str
    error: str | None = None
