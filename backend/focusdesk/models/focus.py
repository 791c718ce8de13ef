import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from focusdesk.database import Base, JSONDocument


class FocusRecord(Base):
    __tablename__ = "focuses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    type: Mapped[str] = mapped_column(String(20), default="standard", nullable=False, index=True)
    assigned_roles: Mapped[list[str]] = mapped_column(JSONDocument, default=list, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_by: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    # Workspace snapshot document, versioned by layout_revision
    layout_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument)
    layout_revision: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
