"""Pure duel rules: answer judging, score, ranking and prize split."""
import math
from typing import Iterable, Mapping, Sequence

from quizduel.models.duel_participant import DuelParticipant
from quizduel.services.duels.helpers import normalize_id
from quizduel.utils.clock import ensure_utc


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def is_question_correct(selected: Iterable, correct_option_ids: set[str]) -> bool:
    """A question is correct only when the selected set equals the correct set.

    Duplicated selections make the cardinality differ, so they are wrong too.
    """
    chosen = [normalize_id(option_id) for option_id in selected]
    return len(chosen) == len(correct_option_ids) and set(chosen) == correct_option_ids


def count_correct_answers(
    question_ids: Sequence[str],
    answers: Mapping[str, Sequence],
    correct_options: Mapping[str, set[str]],
) -> int:
    """Count round questions answered exactly right.

    Questions missing from ``correct_options`` (deleted since launch) never
    count as correct.
    """
    normalized = {normalize_id(key): value or [] for key, value in (answers or {}).items()}
    correct_count = 0
    for question_id in question_ids:
        key = normalize_id(question_id)
        correct = correct_options.get(key)
        if not correct:
            continue
        if is_question_correct(normalized.get(key, []), correct):
            correct_count += 1
    return correct_count


def compute_score(correct_count: int, total: int) -> int:
    """Percentage score in [0, 100]."""
    if total <= 0:
        return 0
    return round_half_up(100 * correct_count / total)


def ranking_key(participant: DuelParticipant):
    """Sort key: more correct answers, then earlier finish, then earlier join.

    Participants who never finished sort after every finisher.
    """
    finished_at = ensure_utc(participant.finished_at)
    finish_key = finished_at.timestamp() if finished_at else math.inf
    joined_key = ensure_utc(participant.joined_at).timestamp()
    return (
        -participant.correct_count,
        finish_key,
        joined_key,
        str(participant.participant_id),
    )


def rank_participants(participants: Iterable[DuelParticipant]) -> list[DuelParticipant]:
    """Return participants ordered best first."""
    return sorted(participants, key=ranking_key)


def split_prize_pool(stake: int, participant_count: int, first_share: float = 0.70) -> list[int]:
    """Prize per finishing position.

    First place gets round(pool * share); second place gets the exact
    remainder so the whole pool is redistributed; everyone else gets 0.
    """
    pool = stake * participant_count
    if participant_count <= 0:
        return []
    if participant_count == 1:
        return [pool]
    first_prize = round_half_up(pool * first_share)
    prizes = [first_prize]
    if participant_count > 1:
        prizes.append(pool - first_prize)
    prizes.extend([0] * (participant_count - len(prizes)))
    return prizes
