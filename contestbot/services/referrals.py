from __future__ import annotations

import logging

from contestbot.core.time import utcnow
from contestbot.db.models import Participant, Referral, ReferralStatus
from contestbot.repo import ContestRepository
from contestbot.services.settings import ContestSettings

log = logging.getLogger(__name__)


class ReferralLedger:
    """Awards referral points on attribution and takes them back on departure."""

    def __init__(self, settings: ContestSettings):
        self._settings = settings

    async def attribute(
        self,
        repo: ContestRepository,
        *,
        referrer: Participant,
        referred_user_id: int,
        chat_id: int,
    ) -> Referral:
        points = await self._settings.referral_points(repo)
        referral = await repo.create_referral(
            referrer_id=referrer.user_id,
            referred_user_id=referred_user_id,
            chat_id=chat_id,
            status=ReferralStatus.ACTIVE,
            points_awarded=points,
        )
        # one statement: counters plus the first-point timestamp, which coalesce
        # keeps at its first value
        await repo.update_participant_atomic(
            referrer.id,
            increment={"points": points, "referral_count": 1},
            set_once={"first_referral_point_at": utcnow()},
        )
        log.info(
            "referral_attributed",
            extra={"referrer_id": referrer.user_id, "user_id": referred_user_id, "chat_id": chat_id, "points": points},
        )
        return referral

    async def handle_user_left(self, repo: ContestRepository, user_id: int, chat_id: int) -> int:
        """Deactivates the participant and reverses its ACTIVE referrals.

        Returns how many referrals this call reversed. The status guard on the
        referral UPDATE makes a second call (or a concurrent one) reverse nothing.
        """
        participant = await repo.find_participant(user_id, chat_id)
        if participant is not None and participant.is_active:
            await repo.update_participant_atomic(participant.id, values={"is_active": False})

        reversed_count = 0
        referrals = await repo.find_referrals_by_referred_user(user_id, chat_id, ReferralStatus.ACTIVE)
        for referral in referrals:
            won = await repo.update_referral_status(
                referral.id,
                ReferralStatus.LEFT,
                utcnow(),
                expected_status=ReferralStatus.ACTIVE,
            )
            if not won:
                log.info("referral_already_reversed", extra={"user_id": user_id, "chat_id": chat_id})
                continue

            reversed_count += 1
            referrer = await repo.find_participant(referral.referrer_id, chat_id)
            if referrer is None:
                log.warning(
                    "referrer_missing_on_reversal",
                    extra={"referrer_id": referral.referrer_id, "user_id": user_id, "chat_id": chat_id},
                )
                continue

            await repo.update_participant_atomic(
                referrer.id,
                increment={"points": -referral.points_awarded, "referral_count": -1},
            )
            log.info(
                "referral_reversed",
                extra={
                    "referrer_id": referral.referrer_id,
                    "user_id": user_id,
                    "chat_id": chat_id,
                    "points": referral.points_awarded,
                },
            )
        return reversed_count
