from __future__ import annotations

import logging

from aiogram import Bot, F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandStart
from aiogram.types import CallbackQuery, ChatJoinRequest, ChatMemberUpdated, Message

from contestbot.bot.events import join_request_event, member_update_event, start_event, task_click_event
from contestbot.bot.keyboards import kb_tiktok_task
from contestbot.bot.ui import (FALLBACK_TEXT, format_leaderboard, format_personal, goodbye_text,
                               stats_text, welcome_text)
from contestbot.core.config import Settings
from contestbot.db.models import Participant
from contestbot.events import TASK_BUTTON_PREFIX, MemberLeft
from contestbot.services.contest import ContestService, TaskClickOutcome, build_referral_link
from contestbot.services.tasks import extract_tiktok_url

log = logging.getLogger(__name__)

router = Router()

_CLICK_ANSWERS = {
    TaskClickOutcome.COMPLETED: "🎉 Hai ricevuto i punti del task TikTok!",
    TaskClickOutcome.NOT_YOUR_BUTTON: "Questo pulsante non è per te.",
    TaskClickOutcome.RATE_LIMITED: "Troppi tentativi, riprova tra qualche minuto.",
    TaskClickOutcome.TOO_EARLY: 'Devi prima cliccare "Apri TikTok" e seguire il profilo. Attendi almeno 30 secondi.',
    TaskClickOutcome.ALREADY_COMPLETED: "Hai già completato questo task.",
}


async def _referral_link(bot: Bot, settings: Settings, code: str) -> str:
    username = settings.bot_username
    if not username:
        username = (await bot.me()).username
    return build_referral_link(code, username)


async def _notify(bot: Bot, user_id: int, text: str, **kwargs) -> bool:
    try:
        await bot.send_message(user_id, text, **kwargs)
    except TelegramAPIError as e:
        # users who never opened the bot cannot be messaged
        log.warning("notify_failed", extra={"user_id": user_id, "reason": str(e)})
        return False
    return True


async def send_welcome(bot: Bot, contest: ContestService, settings: Settings, participant: Participant) -> bool:
    if not contest.claim_welcome(participant.user_id):
        log.info("welcome_already_sent", extra={"user_id": participant.user_id})
        return False
    link = await _referral_link(bot, settings, participant.referral_code)
    markup = None
    if not participant.tiktok_task_completed:
        tiktok_url = (participant.tiktok_links or [settings.tiktok_url])[0]
        markup = kb_tiktok_task(participant.user_id, tiktok_url)
    return await _notify(bot, participant.user_id, welcome_text(participant, link), reply_markup=markup)


@router.chat_join_request()
async def on_join_request(req: ChatJoinRequest, bot: Bot, contest: ContestService, settings: Settings) -> None:
    if req.chat.id != settings.channel_id:
        log.info("join_request_ignored", extra={"user_id": req.from_user.id, "chat_id": req.chat.id})
        return

    event = join_request_event(req)
    try:
        await req.approve()
    except TelegramAPIError:
        log.exception("join_request_approve_failed", extra={"user_id": event.user_id, "chat_id": event.chat_id})
        return

    try:
        participant = await contest.dispatch(event)
        await send_welcome(bot, contest, settings, participant)
    except Exception:
        log.exception("join_request_failed", extra={"user_id": event.user_id, "chat_id": event.chat_id})


@router.chat_member()
async def on_chat_member(upd: ChatMemberUpdated, bot: Bot, contest: ContestService, settings: Settings) -> None:
    if upd.chat.id != settings.channel_id:
        return
    event = member_update_event(upd)
    if event is None:
        return

    try:
        if isinstance(event, MemberLeft):
            reversed_count = await contest.dispatch(event)
            log.info(
                "member_left",
                extra={"user_id": event.user_id, "chat_id": event.chat_id, "reason": f"reversed={reversed_count}"},
            )
            if contest.claim_goodbye(event.user_id):
                await _notify(bot, event.user_id, goodbye_text(upd.new_chat_member.user.first_name))
            return

        participant = await contest.dispatch(event)
        await send_welcome(bot, contest, settings, participant)
    except Exception:
        log.exception("chat_member_update_failed", extra={"user_id": event.user_id, "chat_id": event.chat_id})


@router.callback_query(F.data.startswith(TASK_BUTTON_PREFIX))
async def on_task_button(cb: CallbackQuery, contest: ContestService, settings: Settings) -> None:
    try:
        outcome = await contest.dispatch(task_click_event(cb, settings.channel_id))
    except Exception:
        log.exception("task_button_failed", extra={"user_id": cb.from_user.id})
        await cb.answer(FALLBACK_TEXT, show_alert=True)
        return

    await cb.answer(_CLICK_ANSWERS[outcome], show_alert=outcome is not TaskClickOutcome.COMPLETED)
    if outcome is TaskClickOutcome.COMPLETED and cb.message:
        try:
            await cb.message.edit_reply_markup(reply_markup=None)
        except TelegramAPIError:
            log.warning("task_keyboard_remove_failed", extra={"user_id": cb.from_user.id})


@router.message(CommandStart())
async def cmd_start(message: Message, bot: Bot, contest: ContestService, settings: Settings) -> None:
    event = start_event(message, settings.channel_id)
    try:
        participant = await contest.dispatch(event)
        rank = await contest.get_participant_rank(event.user_id, event.chat_id)
        link = await _referral_link(bot, settings, participant.referral_code)
    except Exception:
        log.exception("start_failed", extra={"user_id": event.user_id})
        await message.answer(FALLBACK_TEXT)
        return
    await message.answer(stats_text(participant, rank, link))


@router.message(Command("classifica"))
async def cmd_leaderboard(message: Message, contest: ContestService, settings: Settings) -> None:
    try:
        top = await contest.get_leaderboard(settings.channel_id, settings.leaderboard_size)
    except Exception:
        log.exception("leaderboard_failed", extra={"user_id": message.from_user.id})
        await message.answer(FALLBACK_TEXT)
        return
    await message.answer(format_leaderboard(top))


@router.message(Command("punti"))
async def cmd_points(message: Message, contest: ContestService, settings: Settings) -> None:
    user_id = message.from_user.id
    try:
        board = await contest.get_personal_leaderboard(user_id, settings.channel_id)
    except Exception:
        log.exception("personal_leaderboard_failed", extra={"user_id": user_id})
        await message.answer(FALLBACK_TEXT)
        return
    await message.answer(format_personal(board, user_id))


# registered last so commands above take precedence
@router.message(F.chat.type == "private", F.text)
async def on_private_text(message: Message, contest: ContestService, settings: Settings) -> None:
    link = extract_tiktok_url(message.text)
    if not link:
        return
    if not link.lower().startswith("http"):
        link = "https://" + link

    user_id = message.from_user.id
    if contest.cache.is_clicked(user_id, link):
        await message.answer("Hai già inviato questo link.")
        return

    try:
        awarded = await contest.handle_tiktok_submission(user_id, settings.channel_id, link)
    except Exception:
        log.exception("tiktok_submission_failed", extra={"user_id": user_id})
        await message.answer(FALLBACK_TEXT)
        return

    contest.cache.mark_click(user_id, link)
    if awarded:
        await message.answer("🎉 Link registrato, punti aggiunti!")
    else:
        await message.answer("Link non valido o già registrato.")
