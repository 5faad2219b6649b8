from __future__ import annotations

import logging
import re
import secrets

from contestbot.core.time import now_ms
from contestbot.db.models import Participant
from contestbot.repo import ContestRepository
from contestbot.services.referrals import ReferralLedger
from contestbot.services.settings import ContestSettings

log = logging.getLogger(__name__)

REFERRAL_CODE_LENGTH = 15
REFERRAL_CODE_ATTEMPTS = 8
_REFERRAL_CODE_RE = re.compile(r"^[A-Za-z0-9_-]{1,32}$")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_MAX_USER_ID = 2**63 - 1


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_BASE36[r])
    return "".join(reversed(out))


def generate_referral_code(user_id: int, timestamp_ms: int | None = None) -> str:
    """REF + base36 millisecond timestamp + hex user id, uppercased, 15 chars max."""
    ts = _base36(now_ms() if timestamp_ms is None else timestamp_ms)
    return f"REF{ts}{abs(user_id):x}".upper()[:REFERRAL_CODE_LENGTH]


def random_referral_code() -> str:
    return f"REF{secrets.token_hex(6)}".upper()


def is_valid_referral_code(code: str | None) -> bool:
    return bool(code) and _REFERRAL_CODE_RE.match(code) is not None


def _is_user_id(code: str) -> bool:
    # must fit a BIGINT column
    return code.isascii() and code.isdigit() and len(code) <= 19 and int(code) <= _MAX_USER_ID


class ParticipantRegistry:
    def __init__(self, settings: ContestSettings, ledger: ReferralLedger):
        self._settings = settings
        self._ledger = ledger

    async def get_or_create_participant(
        self,
        repo: ContestRepository,
        user_id: int,
        chat_id: int,
        first_name: str,
        last_name: str | None = None,
        username: str | None = None,
        referral_code: str | None = None,
    ) -> Participant:
        """Returns the participant, creating or reactivating it as needed.

        Referral attribution happens only when the row is created here; a
        referral code passed for an existing participant is ignored.
        """
        existing = await repo.find_participant(user_id, chat_id)
        if existing is not None:
            if existing.is_active:
                return existing
            await repo.update_participant_atomic(
                existing.id,
                values={
                    "is_active": True,
                    "first_name": first_name,
                    "last_name": last_name or None,
                    "username": username or None,
                },
            )
            log.info("participant_reactivated", extra={"user_id": user_id, "chat_id": chat_id})
            return await repo.find_participant(user_id, chat_id)

        code = await self._new_referral_code(repo, user_id)
        referrer = None
        if referral_code:
            referrer = await self._resolve_referrer(repo, referral_code, user_id=user_id, chat_id=chat_id)

        task_url = await self._settings.default_task_url(repo)
        participant = await repo.create_participant(
            user_id=user_id,
            chat_id=chat_id,
            first_name=first_name,
            last_name=last_name or None,
            username=username or None,
            referral_code=code,
            referred_by=referrer.user_id if referrer else None,
            points=0,
            referral_count=0,
            tiktok_task_completed=False,
            tiktok_links=[task_url] if task_url else [],
            is_active=True,
        )

        if referrer is not None:
            await self._ledger.attribute(repo, referrer=referrer, referred_user_id=user_id, chat_id=chat_id)

        log.info(
            "participant_created",
            extra={"user_id": user_id, "chat_id": chat_id, "referrer_id": participant.referred_by},
        )
        return participant

    async def find_participant_by_referral_code(self, repo: ContestRepository, code: str) -> Participant | None:
        """Exact match only."""
        if not is_valid_referral_code(code):
            return None
        return await repo.find_participant_by_referral_code(code)

    async def _new_referral_code(self, repo: ContestRepository, user_id: int) -> str:
        code = generate_referral_code(user_id)
        for _ in range(REFERRAL_CODE_ATTEMPTS):
            if not await repo.referral_code_exists(code):
                return code
            log.info("referral_code_collision", extra={"user_id": user_id})
            code = random_referral_code()
        # the unique constraint still guards this one
        return f"REF{user_id:X}{secrets.token_hex(4).upper()}"[:32]

    async def _resolve_referrer(
        self,
        repo: ContestRepository,
        referral_code: str,
        *,
        user_id: int,
        chat_id: int,
    ) -> Participant | None:
        code = referral_code.strip()
        if not is_valid_referral_code(code):
            log.warning("referral_code_invalid", extra={"user_id": user_id, "chat_id": chat_id})
            return None

        referrer = await repo.find_participant_by_referral_code(code)
        if referrer is None and _is_user_id(code):
            # old links carried the raw user id
            referrer = await repo.find_participant(int(code), chat_id)
            if referrer is not None:
                log.info("referrer_found_by_user_id", extra={"referrer_id": referrer.user_id, "chat_id": chat_id})

        if referrer is None:
            log.warning("referrer_not_found", extra={"user_id": user_id, "chat_id": chat_id, "reason": code})
            return None
        if referrer.chat_id != chat_id:
            log.warning("referrer_in_other_chat", extra={"referrer_id": referrer.user_id, "chat_id": chat_id})
            return None
        if referrer.user_id == user_id:
            log.info("self_referral_ignored", extra={"user_id": user_id, "chat_id": chat_id})
            return None
        return referrer
