import enum
import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from focusdesk.schemas.layout import LayoutResponse
from focusdesk.schemas.user import Role


class FocusType(enum.StrEnum):
    standard = "standard"
    user = "user"
    template = "template"
    shared = "shared"


class Focus(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str = ""
    type: FocusType = FocusType.standard
    assigned_roles: list[Role]
    is_default: bool = False
    is_active: bool = True
    created_by: int
    layout_data: dict[str, Any] | None = None
    layout_revision: int = 0
    created_at: datetime
    updated_at: datetime


# Create/update payloads are loose; FocusRegistry validates them
# so that service callers and HTTP callers get the same field errors.
class FocusCreate(BaseModel):
    name: str = Field(..., max_length=100)
    description: str = Field(default="", max_length=500)
    type: str = FocusType.standard.value
    assigned_roles: list[str] = Field(default_factory=lambda: [Role.user.value])
    is_default: bool = False
    layout_data: dict[str, Any] | None = None


class FocusUpdate(BaseModel):
    name: str | None = Field(None, max_length=100)
    description: str | None = Field(None, max_length=500)
    type: str | None = None
    assigned_roles: list[str] | None = None
    is_default: bool | None = None
    layout_data: dict[str, Any] | None = None


class ShareFocusRequest(BaseModel):
    shared: bool


class FocusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str
    type: FocusType
    assigned_roles: list[Role]
    is_default: bool
    is_favorite: bool = False
    created_by: int
    has_layout: bool = False
    layout_revision: int
    created_at: datetime
    updated_at: datetime


class SelectFocusResponse(BaseModel):
    focus: FocusResponse
    layout: LayoutResponse


class CurrentFocusResponse(BaseModel):
    focus: FocusResponse | None = None
