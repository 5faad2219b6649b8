from __future__ import annotations

import pytest
from sqlalchemy.pool import StaticPool

from contestbot.core.config import Settings
from contestbot.db.session import create_schema, init_engine
from contestbot.repo import ContestStorage
from contestbot.services.cache import TtlCache
from contestbot.services.contest import ContestService
from contestbot.services.settings import ContestSettings

CHAT_ID = -100123


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        bot_token="123:test",
        database_url="sqlite+aiosqlite://",
        channel_id=CHAT_ID,
        bot_username="contest_bot",
    )


@pytest.fixture
async def db():
    # one shared in-memory connection for the whole test
    engine, sessionmaker = init_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine, sessionmaker
    await engine.dispose()


@pytest.fixture
def storage(db) -> ContestStorage:
    return ContestStorage(db[1])


@pytest.fixture
def contest_settings(settings) -> ContestSettings:
    return ContestSettings(settings)


@pytest.fixture
def cache(clock) -> TtlCache:
    return TtlCache(default_ttl=3600, max_keys=100, clock=clock)


@pytest.fixture
def contest(storage, contest_settings, cache) -> ContestService:
    return ContestService(storage, contest_settings, cache)
