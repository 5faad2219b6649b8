from __future__ import annotations

import enum
import logging

from contestbot.db.models import Participant
from contestbot.events import (ContestEvent, JoinRequested, MemberJoined, MemberLeft,
                               StartRequested, TaskButtonClicked)
from contestbot.repo import ContestStorage, DuplicateError
from contestbot.services.cache import TtlCache
from contestbot.services.participants import ParticipantRegistry
from contestbot.services.ranking import PersonalLeaderboard, RankingEngine
from contestbot.services.referrals import ReferralLedger
from contestbot.services.settings import ContestSettings
from contestbot.services.tasks import TaskEngine

log = logging.getLogger(__name__)


class TaskClickOutcome(str, enum.Enum):
    COMPLETED = "completed"
    NOT_YOUR_BUTTON = "not_your_button"
    RATE_LIMITED = "rate_limited"
    TOO_EARLY = "too_early"
    ALREADY_COMPLETED = "already_completed"


def build_referral_link(referral_code: str, bot_username: str | None) -> str:
    base = f"https://t.me/{bot_username}" if bot_username else "https://t.me/your_bot"
    return f"{base}?start={referral_code}"


class ContestService:
    """Entry point for handlers and the scheduler.

    Each public operation runs in its own storage transaction.
    """

    def __init__(self, storage: ContestStorage, settings: ContestSettings, cache: TtlCache):
        self.storage = storage
        self.settings = settings
        self.cache = cache

        self.referrals = ReferralLedger(settings)
        self.registry = ParticipantRegistry(settings, self.referrals)
        self.tasks = TaskEngine(settings)
        self.ranking = RankingEngine()

    # ---- participants ---------------------------------------------------------
    async def get_or_create_participant(
        self,
        user_id: int,
        chat_id: int,
        first_name: str,
        last_name: str | None = None,
        username: str | None = None,
        referral_code: str | None = None,
    ) -> Participant:
        try:
            async with self.storage.transaction() as repo:
                return await self.registry.get_or_create_participant(
                    repo, user_id, chat_id, first_name, last_name, username, referral_code
                )
        except DuplicateError:
            # a concurrent call created the row; ours rolled back with its award
            async with self.storage.transaction() as repo:
                existing = await repo.find_participant(user_id, chat_id)
            if existing is None:
                raise
            log.info("participant_create_race_lost", extra={"user_id": user_id, "chat_id": chat_id})
            return existing

    async def get_participant_stats(self, user_id: int, chat_id: int) -> Participant | None:
        async with self.storage.transaction() as repo:
            return await repo.find_participant(user_id, chat_id)

    async def find_participant_by_referral_code(self, code: str) -> Participant | None:
        async with self.storage.transaction() as repo:
            return await self.registry.find_participant_by_referral_code(repo, code)

    # ---- ledger ---------------------------------------------------------------
    async def handle_user_left(self, user_id: int, chat_id: int) -> int:
        async with self.storage.transaction() as repo:
            return await self.referrals.handle_user_left(repo, user_id, chat_id)

    # ---- tasks ----------------------------------------------------------------
    async def complete_tiktok_task_via_button(self, user_id: int, chat_id: int) -> bool:
        async with self.storage.transaction() as repo:
            return await self.tasks.complete_tiktok_task_via_button(repo, user_id, chat_id)

    async def handle_tiktok_submission(self, user_id: int, chat_id: int, link: str) -> bool:
        async with self.storage.transaction() as repo:
            return await self.tasks.handle_tiktok_submission(repo, user_id, chat_id, link)

    async def handle_task_click(self, event: TaskButtonClicked) -> TaskClickOutcome:
        """Button press gates, then the one-time award."""
        static = self.settings.static
        if event.target_user_id != event.user_id:
            return TaskClickOutcome.NOT_YOUR_BUTTON
        if not self.cache.check_rate_limit(
            f"tiktok_rate:{event.user_id}",
            static.task_rate_limit_max,
            static.task_rate_limit_window_seconds,
        ):
            log.info("task_click_rate_limited", extra={"user_id": event.user_id})
            return TaskClickOutcome.RATE_LIMITED
        if not self.cache.task_wait_elapsed(event.user_id, static.task_min_wait_seconds):
            log.info("task_click_too_early", extra={"user_id": event.user_id})
            return TaskClickOutcome.TOO_EARLY

        participant = await self.get_or_create_participant(
            event.user_id, event.chat_id, event.first_name, event.last_name, event.username
        )
        if participant.tiktok_task_completed:
            return TaskClickOutcome.ALREADY_COMPLETED
        if await self.complete_tiktok_task_via_button(event.user_id, event.chat_id):
            return TaskClickOutcome.COMPLETED
        return TaskClickOutcome.ALREADY_COMPLETED

    # ---- ranking --------------------------------------------------------------
    async def get_leaderboard(self, chat_id: int, limit: int = 10) -> list[Participant]:
        async with self.storage.transaction() as repo:
            return await self.ranking.get_leaderboard(repo, chat_id, limit)

    async def get_participant_rank(self, user_id: int, chat_id: int) -> int:
        async with self.storage.transaction() as repo:
            return await self.ranking.get_participant_rank(repo, user_id, chat_id)

    async def get_personal_leaderboard(self, user_id: int, chat_id: int, range_: int = 5) -> PersonalLeaderboard:
        async with self.storage.transaction() as repo:
            return await self.ranking.get_personal_leaderboard(repo, user_id, chat_id, range_)

    # ---- message dedup --------------------------------------------------------
    def claim_welcome(self, user_id: int) -> bool:
        """True the first time within the welcome TTL; also starts the task timer."""
        if self.cache.welcome_sent_at(user_id) is not None:
            return False
        self.cache.mark_welcome_sent(user_id)
        return True

    def claim_goodbye(self, user_id: int) -> bool:
        if self.cache.is_goodbye_sent(user_id):
            return False
        self.cache.mark_goodbye_sent(user_id)
        return True

    # ---- events ---------------------------------------------------------------
    async def dispatch(self, event: ContestEvent):
        if isinstance(event, (JoinRequested, StartRequested)):
            return await self.get_or_create_participant(
                event.user_id, event.chat_id, event.first_name, event.last_name, event.username, event.referral_code
            )
        if isinstance(event, MemberJoined):
            return await self.get_or_create_participant(
                event.user_id, event.chat_id, event.first_name, event.last_name, event.username
            )
        if isinstance(event, MemberLeft):
            return await self.handle_user_left(event.user_id, event.chat_id)
        if isinstance(event, TaskButtonClicked):
            return await self.handle_task_click(event)
        raise TypeError(f"unsupported contest event: {type(event).__name__}")
