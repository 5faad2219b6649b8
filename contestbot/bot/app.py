import logging

from aiogram import Bot, Dispatcher

from contestbot.bot.handlers import router as contest_router
from contestbot.bot.middlewares import CorrelationIdMiddleware, RateLimitMiddleware
from contestbot.core.config import Settings
from contestbot.services.contest import ContestService

log = logging.getLogger(__name__)


def build_dispatcher(contest: ContestService, settings: Settings) -> Dispatcher:
    # contest and settings reach handlers as keyword arguments
    dp = Dispatcher(contest=contest, settings=settings)
    for observer in (dp.message, dp.callback_query, dp.chat_join_request, dp.chat_member):
        observer.middleware(CorrelationIdMiddleware())
    dp.callback_query.middleware(RateLimitMiddleware(contest.cache, min_interval_sec=0.4))

    dp.include_router(contest_router)
    return dp


async def run_bot(bot: Bot, contest: ContestService, settings: Settings) -> None:
    dp = build_dispatcher(contest, settings)
    log.info("bot_start")
    # chat_member updates are only delivered when asked for explicitly
    await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
