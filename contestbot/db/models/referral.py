from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from contestbot.core.time import utcnow
from contestbot.db.base import Base


class ReferralStatus:
    ACTIVE = "ACTIVE"
    LEFT = "LEFT"


class Referral(Base):
    """Referral relationship inside one chat.

    Created when a new participant joins with a resolvable referral code.
    Moves ACTIVE -> LEFT once, when the referred user leaves the chat.
    """

    __tablename__ = "contest_referrals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    referrer_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    referred_user_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    chat_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)

    status: Mapped[str] = mapped_column(String(16), default=ReferralStatus.ACTIVE, nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, default=2, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
