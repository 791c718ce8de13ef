import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from focusdesk.database import Base, JSONDocument


class FocusPreferenceRecord(Base):
    __tablename__ = "user_focus_preferences"

    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.internal_user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    focus_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("focuses.id", ondelete="CASCADE"), primary_key=True
    )
    is_favorite: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Personal override of the focus layout
    custom_layout: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument)
    layout_revision: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class WorkspaceSettingsRecord(Base):
    __tablename__ = "workspace_settings"

    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.internal_user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    current_focus_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, index=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Free-standing local snapshot
    local_layout: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument)
    local_layout_revision: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
