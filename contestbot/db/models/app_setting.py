from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String

from contestbot.core.time import utcnow
from contestbot.db.base import Base


class AppSetting(Base):
    """Small KV storage for runtime-tunable settings."""

    __tablename__ = "app_settings"

    key = Column(String(128), primary_key=True)
    int_value = Column(Integer, nullable=True)
    str_value = Column(String(512), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    def touch(self) -> None:
        self.updated_at = utcnow()
