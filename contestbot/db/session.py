from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession, async_sessionmaker,
                                    create_async_engine)

from contestbot.core.config import make_async_db_url

log = logging.getLogger(__name__)


def init_engine(database_url: str, **engine_kwargs) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Creates the engine and its sessionmaker. The caller owns both."""
    url = make_async_db_url(database_url)
    if url.startswith("postgresql+asyncpg://"):
        engine_kwargs.setdefault("pool_size", 10)
        engine_kwargs.setdefault("max_overflow", 20)
        engine_kwargs.setdefault("pool_timeout", 30)
    engine = create_async_engine(url, pool_pre_ping=True, **engine_kwargs)
    sessionmaker = async_sessionmaker(engine, expire_on_commit=False)
    log.info("db_engine_initialized")
    return engine, sessionmaker


async def create_schema(engine: AsyncEngine) -> None:
    """Dev/test helper; production schema comes from alembic."""
    from contestbot.db.base import Base
    from contestbot.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
