"""Helpers for duel codes, identifiers, deadlines and response shaping."""
from __future__ import annotations

from datetime import datetime, timedelta
from random import Random
from typing import Any, Iterable, Optional
from uuid import UUID

from quizduel.models.duel import Duel
from quizduel.models.duel_participant import DuelParticipant
from quizduel.utils.clock import ensure_utc

# 32 symbols: no I, O, 0 or 1
DUEL_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_duel_code(rng: Random, length: int = 6) -> str:
    """Draw a join code uniformly from the duel code alphabet."""
    return "".join(rng.choice(DUEL_CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    """Normalize user-entered join codes."""
    return (code or "").strip().upper()


def normalize_id(value: Any) -> str:
    """Canonical string form for question/option ids.

    UUID-shaped values are rendered in canonical lowercase hyphenated form so
    client casing does not affect judging; anything else is kept verbatim.
    """
    if isinstance(value, UUID):
        return str(value)
    text = str(value).strip()
    try:
        return str(UUID(text))
    except ValueError:
        return text


def lobby_expired(duel: Duel, now: datetime) -> bool:
    """True once ``now`` is past the lobby expiry."""
    return now > ensure_utc(duel.expires_at)


def round_deadline(duel: Duel, time_limit_seconds: int) -> Optional[datetime]:
    """Wall-clock end of the round, or None before launch."""
    started_at = ensure_utc(duel.started_at)
    if started_at is None:
        return None
    return started_at + timedelta(seconds=time_limit_seconds)


def round_timed_out(duel: Duel, now: datetime, time_limit_seconds: int) -> bool:
    """True when more than the time limit has elapsed since launch."""
    deadline = round_deadline(duel, time_limit_seconds)
    return deadline is not None and now > deadline


def format_participant(participant: DuelParticipant) -> dict:
    user = participant.user
    return {
        "id": participant.user_id,
        "first_name": user.first_name if user else "",
        "last_name": user.last_name if user else "",
        "avatar": user.avatar if user else None,
        "rank": participant.rank,
        "stars_won": participant.stars_won,
        "correct_count": participant.correct_count,
        "score": participant.score,
        "finished_at": participant.finished_at,
    }


def format_duel_summary(duel: Duel) -> dict:
    """Public summary returned on lobby creation."""
    return {
        "id": duel.duel_id,
        "code": duel.code,
        "max_participants": duel.max_participants,
        "difficulty": duel.difficulty,
        "stars_cost": duel.stake,
        "status": duel.status,
        "expires_at": duel.expires_at,
    }


def format_duel_detail(
    duel: Duel,
    participants: Iterable[DuelParticipant],
    user_id: UUID,
) -> dict:
    """Lobby/round detail as seen by one of its participants."""
    return {
        "id": duel.duel_id,
        "code": duel.code,
        "creator_id": duel.creator_id,
        "max_participants": duel.max_participants,
        "difficulty": duel.difficulty,
        "stars_cost": duel.stake,
        "status": duel.status,
        "started_at": duel.started_at,
        "finished_at": duel.finished_at,
        "expires_at": duel.expires_at,
        "is_creator": duel.creator_id == user_id,
        "participants": [format_participant(p) for p in participants],
    }


def format_my_duel(
    membership: DuelParticipant,
    duel: Duel,
    participants: list[DuelParticipant],
    user_id: UUID,
) -> dict:
    """One row of the caller's duel history."""
    return {
        "id": duel.duel_id,
        "code": duel.code,
        "difficulty": duel.difficulty,
        "stars_cost": duel.stake,
        "status": duel.status,
        "max_participants": duel.max_participants,
        "participant_count": len(participants),
        "is_creator": duel.creator_id == user_id,
        "my_rank": membership.rank,
        "my_stars_won": membership.stars_won,
        "my_correct_count": membership.correct_count,
        "created_at": duel.created_at,
        "started_at": duel.started_at,
        "finished_at": duel.finished_at,
        "participants": [format_participant(p) for p in participants],
    }
