"""aiogram objects -> contest events.

Only the fields the contest needs are read, so tests can pass any object with
the same attribute shape.
"""
from __future__ import annotations

import re
from typing import Any

from contestbot.events import (JoinRequested, MemberJoined, MemberLeft, StartRequested,
                               TaskButtonClicked)

# invite links created for a referrer are named "Referral: <code>"
_INVITE_LINK_NAME_RE = re.compile(r"^Referral: (.+)$")

MEMBER_STATUSES = frozenset({"member", "administrator", "creator", "restricted"})
LEFT_STATUSES = frozenset({"left", "kicked", "banned"})


def _status(member: Any) -> str:
    # aiogram's ChatMemberStatus is a str enum; compare by value
    raw = getattr(member, "status", "")
    return str(getattr(raw, "value", raw))


def referral_code_from_invite_link(name: str | None) -> str | None:
    if not name:
        return None
    m = _INVITE_LINK_NAME_RE.match(name)
    if not m:
        return None
    return m.group(1).strip() or None


def join_request_event(req: Any) -> JoinRequested:
    user = req.from_user
    invite_link = getattr(req, "invite_link", None)
    return JoinRequested(
        user_id=user.id,
        chat_id=req.chat.id,
        first_name=user.first_name,
        last_name=user.last_name,
        username=user.username,
        referral_code=referral_code_from_invite_link(getattr(invite_link, "name", None)),
    )


def member_update_event(upd: Any) -> MemberJoined | MemberLeft | None:
    """Membership transitions only; promotions and the like give None."""
    old, new = _status(upd.old_chat_member), _status(upd.new_chat_member)
    user = upd.new_chat_member.user
    if old in MEMBER_STATUSES and new in LEFT_STATUSES:
        return MemberLeft(user_id=user.id, chat_id=upd.chat.id)
    if old not in MEMBER_STATUSES and new in MEMBER_STATUSES:
        return MemberJoined(
            user_id=user.id,
            chat_id=upd.chat.id,
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
        )
    return None


def start_payload(text: str | None) -> str | None:
    parts = (text or "").split(maxsplit=1)
    if len(parts) != 2:
        return None
    return parts[1].strip() or None


def start_event(message: Any, chat_id: int) -> StartRequested:
    """`/start <code>` in private chat, attributed to the contest chat."""
    user = message.from_user
    code = start_payload(message.text)
    if code == str(user.id):
        # the bot's own fallback link carries the user's id
        code = None
    return StartRequested(
        user_id=user.id,
        chat_id=chat_id,
        first_name=user.first_name,
        last_name=user.last_name,
        username=user.username,
        referral_code=code,
    )


def task_click_event(cb: Any, chat_id: int) -> TaskButtonClicked:
    user = cb.from_user
    return TaskButtonClicked(
        user_id=user.id,
        chat_id=chat_id,
        payload=cb.data or "",
        first_name=user.first_name,
        last_name=user.last_name,
        username=user.username,
    )
