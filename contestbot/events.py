"""Typed contest events.

Built once at the Telegram boundary (contestbot.bot.events) and consumed by
ContestService.dispatch without further shape checks.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

TASK_BUTTON_PREFIX = "tiktok_points:"


@dataclass(frozen=True)
class JoinRequested:
    user_id: int
    chat_id: int
    first_name: str
    last_name: str | None = None
    username: str | None = None
    referral_code: str | None = None


@dataclass(frozen=True)
class StartRequested:
    user_id: int
    chat_id: int
    first_name: str
    last_name: str | None = None
    username: str | None = None
    referral_code: str | None = None


@dataclass(frozen=True)
class MemberJoined:
    user_id: int
    chat_id: int
    first_name: str
    last_name: str | None = None
    username: str | None = None


@dataclass(frozen=True)
class MemberLeft:
    user_id: int
    chat_id: int


@dataclass(frozen=True)
class TaskButtonClicked:
    user_id: int
    chat_id: int
    payload: str
    first_name: str
    last_name: str | None = None
    username: str | None = None

    @property
    def target_user_id(self) -> int | None:
        """The user the button was issued to, from `tiktok_points:<user_id>`."""
        if not self.payload.startswith(TASK_BUTTON_PREFIX):
            return None
        raw = self.payload[len(TASK_BUTTON_PREFIX):]
        return int(raw) if raw.isascii() and raw.isdigit() else None


ContestEvent = Union[JoinRequested, StartRequested, MemberJoined, MemberLeft, TaskButtonClicked]


def task_button_payload(user_id: int) -> str:
    return f"{TASK_BUTTON_PREFIX}{user_id}"
