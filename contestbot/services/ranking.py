from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from contestbot.core.time import ensure_tz
from contestbot.db.models import Participant
from contestbot.repo import ContestRepository


@dataclass(frozen=True)
class RankedParticipant:
    rank: int
    participant: Participant


@dataclass(frozen=True)
class PersonalLeaderboard:
    user_rank: int = 0
    user_points: int = 0
    window: list[RankedParticipant] = field(default_factory=list)


def ranking_key(p: Participant) -> tuple:
    """Better rank sorts first.

    1. more points
    2. earlier first referral point; having one beats having none
    3. more referrals
    4. earlier join
    5. lower row id, for rows that joined in the same instant
    """
    if p.first_referral_point_at is not None:
        first_point = (0, ensure_tz(p.first_referral_point_at).timestamp())
    else:
        first_point = (1, 0.0)
    return (
        -int(p.points or 0),
        first_point,
        -int(p.referral_count or 0),
        ensure_tz(p.joined_at).timestamp(),
        int(p.id or 0),
    )


def sort_participants(participants: Iterable[Participant]) -> list[Participant]:
    return sorted(participants, key=ranking_key)


class RankingEngine:
    """Read-only queries over the active participants of a chat."""

    async def ranked(self, repo: ContestRepository, chat_id: int) -> list[Participant]:
        return sort_participants(await repo.list_active_participants(chat_id))

    async def get_leaderboard(self, repo: ContestRepository, chat_id: int, limit: int = 10) -> list[Participant]:
        if limit <= 0:
            return []
        return (await self.ranked(repo, chat_id))[:limit]

    async def get_participant_rank(self, repo: ContestRepository, user_id: int, chat_id: int) -> int:
        """1-based rank among active participants; 0 if absent or inactive."""
        for idx, p in enumerate(await self.ranked(repo, chat_id)):
            if p.user_id == user_id:
                return idx + 1
        return 0

    async def get_personal_leaderboard(
        self,
        repo: ContestRepository,
        user_id: int,
        chat_id: int,
        range_: int = 5,
    ) -> PersonalLeaderboard:
        ranked = await self.ranked(repo, chat_id)
        user_idx = next((i for i, p in enumerate(ranked) if p.user_id == user_id), None)
        if user_idx is None:
            return PersonalLeaderboard()

        range_ = max(0, range_)
        start = max(0, user_idx - range_)
        end = min(len(ranked), user_idx + range_ + 1)
        window = [RankedParticipant(rank=i + 1, participant=ranked[i]) for i in range(start, end)]
        return PersonalLeaderboard(
            user_rank=user_idx + 1,
            user_points=ranked[user_idx].points,
            window=window,
        )
