from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from contestbot.events import task_button_payload


def kb_tiktok_task(user_id: int, tiktok_url: str) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="🎵 Apri TikTok", url=tiktok_url)
    b.button(text="✅ Ho seguito, dammi i punti", callback_data=task_button_payload(user_id))
    b.adjust(1)
    return b.as_markup()
