from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from focusdesk.database import Base


class IdSequence(Base):
    """Named counters advanced with a single UPDATE ... RETURNING."""

    __tablename__ = "id_sequences"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False)


class UserMappingRecord(Base):
    __tablename__ = "user_mappings"

    internal_user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    external_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    user: Mapped["UserRecord"] = relationship(
        "UserRecord", back_populates="mapping", uselist=False, cascade="all, delete-orphan"
    )


class UserRecord(Base):
    __tablename__ = "users"

    internal_user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("user_mappings.internal_user_id", ondelete="CASCADE"),
        primary_key=True,
        autoincrement=False,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    mapping: Mapped["UserMappingRecord"] = relationship("UserMappingRecord", back_populates="user")
