import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


def make_async_db_url(url: str) -> str:
    """Accepts Railway-style DATABASE_URL and returns sqlalchemy async url."""
    if url.startswith("postgresql+asyncpg://") or url.startswith("sqlite+aiosqlite://"):
        return url
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://") :]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url[len("sqlite://") :]
    raise RuntimeError("Unsupported DATABASE_URL format")


@dataclass(frozen=True)
class Settings:
    bot_token: str
    database_url: str
    # the contest channel; events from other chats are ignored
    channel_id: int
    bot_username: str | None = None

    scheduler_enabled: bool = True
    leaderboard_period_seconds: int = 3600
    leaderboard_size: int = 5

    # point values; runtime overrides live in app_settings
    points_per_task: int = 3
    points_per_referral: int = 2
    tiktok_url: str = "https://www.tiktok.com/@lo_sbloccatore"
    task_min_wait_seconds: int = 30

    # task button rate limit: N clicks per window
    task_rate_limit_max: int = 5
    task_rate_limit_window_seconds: int = 300

    cache_ttl_seconds: int = 3600
    cache_max_keys: int = 1000


def load_settings() -> Settings:
    bot_token = (os.getenv("BOT_TOKEN") or "").strip()
    if not bot_token:
        raise RuntimeError("BOT_TOKEN is missing")

    database_url_raw = os.getenv("DATABASE_URL", "").strip()
    if not database_url_raw:
        raise RuntimeError("DATABASE_URL is missing")

    channel_raw = os.getenv("CHANNEL_ID", "").strip()
    if not channel_raw.lstrip("-").isdigit():
        raise RuntimeError("CHANNEL_ID is missing or invalid (must be digits, optionally negative)")

    return Settings(
        bot_token=bot_token,
        database_url=make_async_db_url(database_url_raw),
        channel_id=int(channel_raw),
        bot_username=(os.getenv("BOT_USERNAME") or "").strip().lstrip("@") or None,
        scheduler_enabled=_env_bool("SCHEDULER_ENABLED", True),
        leaderboard_period_seconds=_env_int("LEADERBOARD_PERIOD_SECONDS", 3600),
        leaderboard_size=_env_int("LEADERBOARD_SIZE", 5),
        points_per_task=_env_int("POINTS_PER_TASK", 3),
        points_per_referral=_env_int("POINTS_PER_REFERRAL", 2),
        tiktok_url=(os.getenv("TIKTOK_URL") or "https://www.tiktok.com/@lo_sbloccatore").strip(),
        task_min_wait_seconds=_env_int("TASK_MIN_WAIT_SECONDS", 30),
        task_rate_limit_max=_env_int("TASK_RATE_LIMIT_MAX", 5),
        task_rate_limit_window_seconds=_env_int("TASK_RATE_LIMIT_WINDOW_SECONDS", 300),
        cache_ttl_seconds=_env_int("CACHE_TTL", 3600),
        cache_max_keys=_env_int("CACHE_MAX_KEYS", 1000),
    )
