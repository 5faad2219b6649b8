from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Update

from contestbot.services.cache import TtlCache

log = logging.getLogger(__name__)


class CorrelationIdMiddleware(BaseMiddleware):
    """Adds corr_id to logger records via extra in handler calls."""

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        update: Update | None = data.get("event_update")
        if update:
            data["corr_id"] = f"u{update.update_id}"
            data["update_id"] = update.update_id
        return await handler(event, data)


class RateLimitMiddleware(BaseMiddleware):
    """Drops repeated presses of the same button inside `min_interval_sec`."""

    def __init__(self, cache: TtlCache, min_interval_sec: float = 0.4):
        self.cache = cache
        self.min_interval_sec = min_interval_sec

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        # only for callback queries
        cb = getattr(event, "data", None)
        from_user = getattr(event, "from_user", None)
        if cb and from_user:
            if not self.cache.check_rate_limit(f"cb:{from_user.id}:{cb}", 1, self.min_interval_sec):
                log.debug("callback_throttled", extra={"user_id": from_user.id})
                return None
        return await handler(event, data)
