import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class UserFocusPreference(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    focus_id: uuid.UUID
    is_favorite: bool = False
    last_used_at: datetime | None = None
    custom_layout: dict[str, Any] | None = None
    layout_revision: int = 0


class WorkspaceSettings(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    current_focus_id: uuid.UUID | None = None
    # Row version for compare-and-swap on current_focus_id
    version: int = 0


class FavoriteResponse(BaseModel):
    focus_id: uuid.UUID
    is_favorite: bool
