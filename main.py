import asyncio
import logging
import subprocess
import sys

from aiogram import Bot

from contestbot.bot.app import run_bot
from contestbot.core.config import load_settings
from contestbot.core.logging import setup_logging
from contestbot.db.session import init_engine
from contestbot.repo import ContestStorage
from contestbot.scheduler.worker import run_scheduler
from contestbot.services.cache import TtlCache
from contestbot.services.contest import ContestService
from contestbot.services.settings import ContestSettings

log = logging.getLogger(__name__)


def _run_alembic_upgrade_head_best_effort() -> None:
    """Apply migrations at boot (best-effort)."""
    try:
        subprocess.check_call([sys.executable, "-m", "alembic", "upgrade", "head"])
        log.info("alembic_upgrade_head_done")
    except Exception:
        log.exception("alembic_upgrade_head_failed")


async def main() -> None:
    setup_logging()
    settings = load_settings()
    _run_alembic_upgrade_head_best_effort()

    engine, sessionmaker = init_engine(settings.database_url)
    cache = TtlCache(default_ttl=settings.cache_ttl_seconds, max_keys=settings.cache_max_keys)
    contest = ContestService(ContestStorage(sessionmaker), ContestSettings(settings), cache)

    bot = Bot(token=settings.bot_token)
    jobs = [run_bot(bot, contest, settings)]
    if settings.scheduler_enabled:
        jobs.append(run_scheduler(bot, contest, settings))

    try:
        await asyncio.gather(*jobs)
    finally:
        await bot.session.close()
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
