from __future__ import annotations

import asyncio
import logging

from aiogram import Bot

from contestbot.bot.ui import format_leaderboard
from contestbot.core.config import Settings
from contestbot.services.contest import ContestService

log = logging.getLogger(__name__)


async def post_leaderboard(bot: Bot, contest: ContestService, settings: Settings) -> bool:
    """Posts the current top N to the contest channel. False when nobody is ranked yet."""
    top = await contest.get_leaderboard(settings.channel_id, settings.leaderboard_size)
    if not top:
        log.info("leaderboard_skipped_empty", extra={"chat_id": settings.channel_id})
        return False
    await bot.send_message(settings.channel_id, format_leaderboard(top))
    log.info("leaderboard_posted", extra={"chat_id": settings.channel_id, "reason": f"size={len(top)}"})
    return True


async def run_scheduler(bot: Bot, contest: ContestService, settings: Settings) -> None:
    """Leaderboard loop (single replica).

    The first post happens one period after boot.
    """
    log.info("scheduler_start")

    while True:
        await asyncio.sleep(settings.leaderboard_period_seconds)
        try:
            await post_leaderboard(bot, contest, settings)
        except Exception:
            log.exception("scheduler_loop_error")
