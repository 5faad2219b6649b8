from __future__ import annotations

from typing import Sequence

from contestbot.db.models import Participant
from contestbot.services.ranking import PersonalLeaderboard

MEDALS = ("🥇", "🥈", "🥉")

FALLBACK_TEXT = "Si è verificato un errore. Riprova più tardi."


def _place(rank: int) -> str:
    return MEDALS[rank - 1] if 0 < rank <= len(MEDALS) else f"{rank}."


def format_leaderboard(participants: Sequence[Participant]) -> str:
    if not participants:
        return "🏆 Classifica\n\nNessun partecipante per ora."
    lines = ["🏆 Classifica", ""]
    for i, p in enumerate(participants, start=1):
        lines.append(f"{_place(i)} {p.display_name} — {p.points} punti")
    return "\n".join(lines)


def format_personal(board: PersonalLeaderboard, user_id: int) -> str:
    if not board.user_rank:
        return "Non partecipi ancora al contest. Unisciti al canale per iniziare!"
    lines = [f"📊 Sei al posto {board.user_rank} con {board.user_points} punti", ""]
    for item in board.window:
        p = item.participant
        marker = " 👈" if p.user_id == user_id else ""
        lines.append(f"{_place(item.rank)} {p.display_name} — {p.points} punti{marker}")
    return "\n".join(lines)


def welcome_text(participant: Participant, referral_link: str) -> str:
    if participant.tiktok_task_completed:
        return (
            f"Bentornato {participant.first_name}! 👋\n\n"
            f"Hai {participant.points} punti.\n"
            f"Invita i tuoi amici con il tuo link:\n{referral_link}"
        )
    return (
        f"Benvenuto {participant.first_name}! 👋\n\n"
        "1. Segui il nostro profilo TikTok\n"
        "2. Torna qui e premi il pulsante per ricevere i punti\n\n"
        f"Invita i tuoi amici con il tuo link:\n{referral_link}"
    )


def goodbye_text(first_name: str) -> str:
    return f"Ciao {first_name}, ci dispiace vederti andare via. Puoi rientrare quando vuoi!"


def stats_text(participant: Participant, rank: int, referral_link: str) -> str:
    task = "completato ✅" if participant.tiktok_task_completed else "da completare"
    return (
        f"Punti: {participant.points}\n"
        f"Posizione: {rank or '-'}\n"
        f"Inviti: {participant.referral_count}\n"
        f"Task TikTok: {task}\n\n"
        f"Il tuo link di invito:\n{referral_link}"
    )
