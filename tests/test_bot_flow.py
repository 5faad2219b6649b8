from types import SimpleNamespace

from conftest import CHAT_ID, FakeClock

from contestbot.bot.handlers import on_chat_member, on_private_text, on_task_button, send_welcome
from contestbot.bot.ui import format_leaderboard, format_personal
from contestbot.scheduler.worker import post_leaderboard
from contestbot.services.contest import ContestService


class FakeBot:
    def __init__(self):
        self.sent: list[tuple[int, str, dict]] = []

    async def send_message(self, chat_id, text, **kwargs):
        self.sent.append((chat_id, text, kwargs))


class FakeCallback:
    def __init__(self, user_id: int, data: str):
        self.from_user = SimpleNamespace(id=user_id, first_name="Quinto", last_name=None, username=None)
        self.data = data
        self.message = None
        self.answers: list[tuple[str, bool]] = []

    async def answer(self, text=None, show_alert=False, **kwargs):
        self.answers.append((text, show_alert))


async def test_scheduler_posts_top_n(contest: ContestService, settings) -> None:
    bot = FakeBot()
    assert await post_leaderboard(bot, contest, settings) is False
    assert bot.sent == []

    for uid in range(1, 8):
        await contest.get_or_create_participant(uid, CHAT_ID, f"U{uid}")
    assert await post_leaderboard(bot, contest, settings) is True

    [(chat_id, text, _)] = bot.sent
    assert chat_id == CHAT_ID
    assert text.count(" punti") == settings.leaderboard_size


async def test_welcome_is_sent_once_with_task_button(contest: ContestService, settings) -> None:
    bot = FakeBot()
    p = await contest.get_or_create_participant(2, CHAT_ID, "Quinto")

    assert await send_welcome(bot, contest, settings, p) is True
    assert await send_welcome(bot, contest, settings, p) is False

    [(user_id, text, kwargs)] = bot.sent
    assert user_id == 2
    assert f"https://t.me/contest_bot?start={p.referral_code}" in text
    buttons = [b for row in kwargs["reply_markup"].inline_keyboard for b in row]
    assert buttons[0].url == settings.tiktok_url
    assert buttons[1].callback_data == "tiktok_points:2"


async def test_task_button_handler(contest: ContestService, settings, clock: FakeClock) -> None:
    contest.claim_welcome(2)
    clock.advance(30)

    cb = FakeCallback(2, "tiktok_points:2")
    await on_task_button(cb, contest, settings)
    other = FakeCallback(3, "tiktok_points:2")
    await on_task_button(other, contest, settings)

    assert cb.answers[0][1] is False
    assert other.answers[0] == ("Questo pulsante non è per te.", True)
    assert (await contest.get_participant_stats(2, CHAT_ID)).points == 3


async def test_leave_handler_reverses_and_says_goodbye_once(contest: ContestService, settings) -> None:
    bot = FakeBot()
    p = await contest.get_or_create_participant(1, CHAT_ID, "Paolo")
    await contest.get_or_create_participant(2, CHAT_ID, "Quinto", referral_code=p.referral_code)

    user = SimpleNamespace(id=2, first_name="Quinto", last_name=None, username=None)
    upd = SimpleNamespace(
        chat=SimpleNamespace(id=CHAT_ID),
        old_chat_member=SimpleNamespace(status="member", user=user),
        new_chat_member=SimpleNamespace(status="left", user=user),
    )
    await on_chat_member(upd, bot, contest, settings)
    await on_chat_member(upd, bot, contest, settings)

    assert (await contest.get_participant_stats(1, CHAT_ID)).points == 0
    assert [chat_id for chat_id, _, _ in bot.sent] == [2]


async def test_other_chats_are_ignored(contest: ContestService, settings) -> None:
    bot = FakeBot()
    user = SimpleNamespace(id=2, first_name="Quinto", last_name=None, username=None)
    upd = SimpleNamespace(
        chat=SimpleNamespace(id=-100999),
        old_chat_member=SimpleNamespace(status="left", user=user),
        new_chat_member=SimpleNamespace(status="member", user=user),
    )
    await on_chat_member(upd, bot, contest, settings)

    assert await contest.get_participant_stats(2, -100999) is None
    assert bot.sent == []


async def test_personal_text(contest: ContestService) -> None:
    for uid in (1, 2, 3):
        await contest.get_or_create_participant(uid, CHAT_ID, f"U{uid}")

    board = await contest.get_personal_leaderboard(2, CHAT_ID)
    text = format_personal(board, 2)
    assert text.startswith("📊 Sei al posto 2 con 0 punti")
    assert "U2 — 0 punti 👈" in text

    assert "Non partecipi" in format_personal(await contest.get_personal_leaderboard(9, CHAT_ID), 9)
    assert "Nessun partecipante" in format_leaderboard([])


class FakeMessage:
    def __init__(self, user_id: int, text: str):
        self.from_user = SimpleNamespace(id=user_id, first_name="Quinto", last_name=None, username=None)
        self.text = text
        self.replies: list[str] = []

    async def answer(self, text, **kwargs):
        self.replies.append(text)


async def test_link_submission_from_private_chat(contest: ContestService, settings) -> None:
    await contest.get_or_create_participant(2, CHAT_ID, "Quinto")

    first = FakeMessage(2, "ecco il mio video vm.tiktok.com/ZMone")
    await on_private_text(first, contest, settings)
    again = FakeMessage(2, "https://vm.tiktok.com/ZMone")
    await on_private_text(again, contest, settings)
    chatter = FakeMessage(2, "ciao a tutti")
    await on_private_text(chatter, contest, settings)

    assert first.replies == ["🎉 Link registrato, punti aggiunti!"]
    assert again.replies == ["Hai già inviato questo link."]
    assert chatter.replies == []
    assert (await contest.get_participant_stats(2, CHAT_ID)).points == 3
