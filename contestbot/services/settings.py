from __future__ import annotations

from contestbot.core.config import Settings
from contestbot.repo import ContestRepository

# app_settings keys
KEY_POINTS_PER_TASK = "points_per_task"
KEY_POINTS_PER_REFERRAL = "points_per_referral"
KEY_TIKTOK_URL = "tiktok_url"


class ContestSettings:
    """Point values and task URL.

    A row in app_settings wins over the static config, so admins can retune the
    contest without a restart. Reads happen inside the caller's transaction.
    """

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def static(self) -> Settings:
        return self._settings

    async def _int(self, repo: ContestRepository, key: str, default: int) -> int:
        row = await repo.get_app_setting(key)
        if not row or row.int_value is None:
            return int(default)
        return int(row.int_value)

    async def task_points(self, repo: ContestRepository) -> int:
        return await self._int(repo, KEY_POINTS_PER_TASK, self._settings.points_per_task)

    async def referral_points(self, repo: ContestRepository) -> int:
        return await self._int(repo, KEY_POINTS_PER_REFERRAL, self._settings.points_per_referral)

    async def default_task_url(self, repo: ContestRepository) -> str:
        row = await repo.get_app_setting(KEY_TIKTOK_URL)
        if row and row.str_value:
            return row.str_value
        return self._settings.tiktok_url
