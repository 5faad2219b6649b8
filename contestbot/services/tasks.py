from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit, urlunsplit

from contestbot.repo import ContestRepository
from contestbot.services.settings import ContestSettings

log = logging.getLogger(__name__)

_TIKTOK_PATTERNS = (
    re.compile(r"^https?://(www\.)?tiktok\.com/@[\w.-]+/video/\d+"),
    re.compile(r"^https?://vm\.tiktok\.com/\w+"),
    re.compile(r"^https?://(www\.)?tiktok\.com/t/\w+"),
)
_TIKTOK_IN_TEXT = re.compile(
    r"(https?://)?(www\.)?(tiktok\.com|vm\.tiktok\.com)/[\w\-._~:/?#\[\]@!$&'()*+,;=]*",
    re.IGNORECASE,
)


def _is_tiktok_host(host: str) -> bool:
    return host == "tiktok.com" or host.endswith(".tiktok.com")


def normalize_tiktok_link(link: str) -> str | None:
    """Lowercases scheme and host, drops the fragment. None if not a TikTok URL."""
    try:
        parts = urlsplit((link or "").strip())
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https"):
        return None
    host = (parts.hostname or "").lower()
    if not _is_tiktok_host(host):
        return None
    netloc = host if parts.port is None else f"{host}:{parts.port}"
    return urlunsplit((parts.scheme.lower(), netloc, parts.path or "/", parts.query, ""))


def is_valid_tiktok_link(link: str) -> bool:
    return any(p.match(link) for p in _TIKTOK_PATTERNS)


def is_tiktok_url(url: str) -> bool:
    return _TIKTOK_IN_TEXT.search(url or "") is not None


def extract_tiktok_url(text: str) -> str | None:
    m = _TIKTOK_IN_TEXT.search(text or "")
    return m.group(0) if m else None


class TaskEngine:
    """Point awards for the external TikTok task.

    The button path pays once per participant. The link path pays once per
    distinct link, so a participant can earn it repeatedly.
    """

    def __init__(self, settings: ContestSettings):
        self._settings = settings

    async def complete_tiktok_task_via_button(self, repo: ContestRepository, user_id: int, chat_id: int) -> bool:
        participant = await repo.find_participant(user_id, chat_id)
        if participant is None:
            log.warning("task_participant_missing", extra={"user_id": user_id, "chat_id": chat_id})
            return False
        if participant.tiktok_task_completed:
            log.info("task_already_completed", extra={"user_id": user_id, "chat_id": chat_id})
            return False

        points = await self._settings.task_points(repo)
        won = await repo.update_participant_atomic(
            participant.id,
            values={"tiktok_task_completed": True},
            increment={"points": points},
            only_if={"tiktok_task_completed": False},
        )
        if not won:
            # a concurrent click flipped the flag first
            log.info("task_already_completed", extra={"user_id": user_id, "chat_id": chat_id, "reason": "race"})
            return False

        log.info("task_completed", extra={"user_id": user_id, "chat_id": chat_id, "points": points})
        return True

    async def handle_tiktok_submission(self, repo: ContestRepository, user_id: int, chat_id: int, link: str) -> bool:
        normalized = normalize_tiktok_link(link)
        if not normalized or not is_valid_tiktok_link(normalized):
            log.warning("task_link_invalid", extra={"user_id": user_id, "chat_id": chat_id})
            return False

        participant = await repo.lock_participant(user_id, chat_id)
        if participant is None:
            log.warning("task_participant_missing", extra={"user_id": user_id, "chat_id": chat_id})
            return False

        links = list(participant.tiktok_links or [])
        if normalized in links:
            log.info("task_link_duplicate", extra={"user_id": user_id, "chat_id": chat_id})
            return False
        links.append(normalized)

        points = await self._settings.task_points(repo)
        await repo.update_participant_atomic(
            participant.id,
            values={"tiktok_links": links, "tiktok_task_completed": True},
            increment={"points": points},
        )
        log.info(
            "task_link_accepted",
            extra={"user_id": user_id, "chat_id": chat_id, "points": points, "reason": f"links={len(links)}"},
        )
        return True
