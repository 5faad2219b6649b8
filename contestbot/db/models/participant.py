from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from contestbot.core.time import utcnow
from contestbot.db.base import Base


class Participant(Base):
    """A user's contest state within one chat."""

    __tablename__ = "contest_participants"
    __table_args__ = (UniqueConstraint("user_id", "chat_id", name="uq_contest_participants_user_chat"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    user_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    chat_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)

    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tiktok_task_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # ordered set of visited task links
    tiktok_links: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    # globally unique, independent of chat
    referral_code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    referred_by: Mapped[int | None] = mapped_column(BigInteger, index=True, nullable=True)
    referral_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
    # tie-break only: when the first referral point was earned
    first_referral_point_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}" if self.last_name else self.first_name

    @property
    def display_name(self) -> str:
        return f"@{self.username}" if self.username else self.full_name

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "chat_id": self.chat_id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "points": self.points,
            "tiktok_task_completed": self.tiktok_task_completed,
            "tiktok_links": list(self.tiktok_links or []),
            "referral_code": self.referral_code,
            "referred_by": self.referred_by,
            "referral_count": self.referral_count,
            "is_active": self.is_active,
            "joined_at": self.joined_at,
            "updated_at": self.updated_at,
            "first_referral_point_at": self.first_referral_point_at,
        }
