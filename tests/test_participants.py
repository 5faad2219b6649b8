import re

from conftest import CHAT_ID

from contestbot.db.models import Referral
from contestbot.repo import ContestStorage
from contestbot.services.contest import ContestService
from contestbot.services.participants import (generate_referral_code, is_valid_referral_code,
                                              random_referral_code)
from sqlalchemy import func, select


async def _count(storage: ContestStorage, model) -> int:
    async with storage.transaction() as repo:
        return await repo.session.scalar(select(func.count()).select_from(model))


def test_generated_code_format() -> None:
    code = generate_referral_code(0x1F, timestamp_ms=36**3)
    assert code == "REF10001F"
    assert len(generate_referral_code(123456789)) <= 15
    assert re.fullmatch(r"REF[0-9A-Z]+", generate_referral_code(123456789))


def test_random_code_is_valid() -> None:
    code = random_referral_code()
    assert code.startswith("REF")
    assert is_valid_referral_code(code)


def test_referral_code_validation() -> None:
    assert is_valid_referral_code("REFABC123")
    assert is_valid_referral_code("ref_abc-1")
    assert not is_valid_referral_code("")
    assert not is_valid_referral_code(None)
    assert not is_valid_referral_code("A" * 33)
    assert not is_valid_referral_code("REF ABC")
    assert not is_valid_referral_code("REF;DROP")


async def test_new_participant_starts_empty(contest: ContestService, settings) -> None:
    p = await contest.get_or_create_participant(1, CHAT_ID, "Paolo")

    assert p.points == 0
    assert p.referral_count == 0
    assert p.is_active is True
    assert p.tiktok_task_completed is False
    assert p.referred_by is None
    assert p.tiktok_links == [settings.tiktok_url]
    assert p.referral_code.startswith("REF")


async def test_get_or_create_is_idempotent(contest: ContestService, storage: ContestStorage) -> None:
    referrer = await contest.get_or_create_participant(1, CHAT_ID, "Paolo")

    first = await contest.get_or_create_participant(2, CHAT_ID, "Quinto", referral_code=referrer.referral_code)
    second = await contest.get_or_create_participant(2, CHAT_ID, "Quinto", referral_code=referrer.referral_code)

    assert first.id == second.id
    assert first.referral_code == second.referral_code
    assert await _count(storage, Referral) == 1

    referrer = await contest.get_participant_stats(1, CHAT_ID)
    assert referrer.points == 2
    assert referrer.referral_count == 1


async def test_referral_attribution(contest: ContestService) -> None:
    p = await contest.get_or_create_participant(1, CHAT_ID, "Paolo")
    q = await contest.get_or_create_participant(2, CHAT_ID, "Quinto", referral_code=p.referral_code)

    p = await contest.get_participant_stats(1, CHAT_ID)
    assert q.referred_by == 1
    assert p.points == 2
    assert p.referral_count == 1
    assert p.first_referral_point_at is not None


async def test_first_referral_point_timestamp_set_once(contest: ContestService) -> None:
    p = await contest.get_or_create_participant(1, CHAT_ID, "Paolo")
    await contest.get_or_create_participant(2, CHAT_ID, "Quinto", referral_code=p.referral_code)
    first_at = (await contest.get_participant_stats(1, CHAT_ID)).first_referral_point_at

    await contest.get_or_create_participant(3, CHAT_ID, "Terzo", referral_code=p.referral_code)
    p = await contest.get_participant_stats(1, CHAT_ID)

    assert p.referral_count == 2
    assert p.points == 4
    assert p.first_referral_point_at == first_at


async def test_numeric_code_falls_back_to_user_id(contest: ContestService) -> None:
    await contest.get_or_create_participant(555, CHAT_ID, "Paolo")

    q = await contest.get_or_create_participant(2, CHAT_ID, "Quinto", referral_code="555")

    p = await contest.get_participant_stats(555, CHAT_ID)
    assert q.referred_by == 555
    assert p.points == 2
    assert p.referral_count == 1


async def test_numeric_fallback_stays_in_chat(contest: ContestService) -> None:
    await contest.get_or_create_participant(555, -100999, "Altrove")

    q = await contest.get_or_create_participant(2, CHAT_ID, "Quinto", referral_code="555")

    assert q.referred_by is None
    assert (await contest.get_participant_stats(555, -100999)).points == 0


async def test_unknown_or_invalid_code_does_not_block_creation(contest: ContestService, storage) -> None:
    a = await contest.get_or_create_participant(2, CHAT_ID, "Quinto", referral_code="REFNOPE")
    b = await contest.get_or_create_participant(3, CHAT_ID, "Terzo", referral_code="bad code!")

    assert a.referred_by is None
    assert b.referred_by is None
    assert await _count(storage, Referral) == 0


async def test_oversized_numeric_code_does_not_block_creation(contest: ContestService, storage) -> None:
    await contest.get_or_create_participant(1, CHAT_ID, "Paolo")

    a = await contest.get_or_create_participant(2, CHAT_ID, "Quinto", referral_code="9" * 25)
    b = await contest.get_or_create_participant(3, CHAT_ID, "Terzo", referral_code=str(2**63))

    assert a.referred_by is None
    assert b.referred_by is None
    assert await contest.get_participant_stats(2, CHAT_ID) is not None
    assert (await contest.get_participant_stats(1, CHAT_ID)).points == 0
    assert await _count(storage, Referral) == 0


async def test_self_referral_ignored(contest: ContestService, storage) -> None:
    p = await contest.get_or_create_participant(1, CHAT_ID, "Paolo")
    await contest.handle_user_left(1, CHAT_ID)

    # rejoining reactivates; the code is the user's own
    again = await contest.get_or_create_participant(1, CHAT_ID, "Paolo", referral_code=p.referral_code)
    assert again.points == 0
    assert await _count(storage, Referral) == 0
    # a brand new row with its own numeric id as code is also ignored
    q = await contest.get_or_create_participant(2, CHAT_ID, "Quinto", referral_code="2")
    assert q.referred_by is None


async def test_inactive_participant_is_reactivated(contest: ContestService) -> None:
    p = await contest.get_or_create_participant(1, CHAT_ID, "Paolo", username="old")
    await contest.handle_user_left(1, CHAT_ID)
    assert (await contest.get_participant_stats(1, CHAT_ID)).is_active is False

    again = await contest.get_or_create_participant(1, CHAT_ID, "Paolo", "Rossi", username="new")

    assert again.id == p.id
    assert again.is_active is True
    assert again.username == "new"
    assert again.last_name == "Rossi"
    assert again.referral_code == p.referral_code


async def test_find_by_referral_code_is_exact(contest: ContestService) -> None:
    p = await contest.get_or_create_participant(1, CHAT_ID, "Paolo")

    found = await contest.find_participant_by_referral_code(p.referral_code)
    assert found is not None and found.user_id == 1
    assert await contest.find_participant_by_referral_code(p.referral_code.lower()) is None
    assert await contest.find_participant_by_referral_code("") is None
    assert await contest.find_participant_by_referral_code("x" * 40) is None


async def test_referral_code_collision_retries(contest: ContestService, monkeypatch) -> None:
    from contestbot.services import participants

    monkeypatch.setattr(participants, "generate_referral_code", lambda user_id, timestamp_ms=None: "REFSAME")
    a = await contest.get_or_create_participant(1, CHAT_ID, "Paolo")
    b = await contest.get_or_create_participant(2, CHAT_ID, "Quinto")

    assert a.referral_code == "REFSAME"
    assert b.referral_code != "REFSAME"
    assert b.referral_code.startswith("REF")


async def test_lost_creation_race_returns_existing_row(contest: ContestService, monkeypatch) -> None:
    existing = await contest.get_or_create_participant(1, CHAT_ID, "Paolo")

    # simulate a concurrent call that saw no row before the insert
    async def stale_create(repo, user_id, chat_id, first_name, *args):
        await repo.create_participant(
            user_id=user_id, chat_id=chat_id, first_name=first_name, referral_code="REFRACE", tiktok_links=[]
        )
        raise AssertionError("insert should have failed")

    monkeypatch.setattr(contest.registry, "get_or_create_participant", stale_create)
    got = await contest.get_or_create_participant(1, CHAT_ID, "Paolo")

    assert got.id == existing.id
    assert got.referral_code == existing.referral_code
