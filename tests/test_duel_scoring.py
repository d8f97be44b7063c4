"""Tests for duel judging, scoring, ranking and the prize split."""
import uuid
from datetime import UTC, datetime, timedelta

import pytest

from quizduel.models.duel_participant import DuelParticipant
from quizduel.services.duels.scoring import (
    compute_score,
    count_correct_answers,
    is_question_correct,
    rank_participants,
    round_half_up,
    split_prize_pool,
)

T0 = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


def _participant(correct_count=0, finished_after=None, joined_after=0):
    return DuelParticipant(
        participant_id=uuid.uuid4(),
        duel_id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        joined_at=T0 + timedelta(seconds=joined_after),
        correct_count=correct_count,
        finished_at=T0 + timedelta(seconds=finished_after) if finished_after is not None else None,
    )


class TestRoundHalfUp:
    def test_halves_round_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(10.5) == 11

    def test_below_half_rounds_down(self):
        assert round_half_up(2.49) == 2
        assert round_half_up(0.0) == 0


class TestScore:
    @pytest.mark.parametrize(
        "correct, total, expected",
        [
            (6, 10, 60),
            (10, 10, 100),
            (0, 10, 0),
            (1, 3, 33),
            (2, 3, 67),
            (1, 8, 13),  # 12.5 rounds up
        ],
    )
    def test_percentage(self, correct, total, expected):
        assert compute_score(correct, total) == expected

    def test_empty_round_scores_zero(self):
        assert compute_score(0, 0) == 0


class TestJudging:
    def test_exact_set_is_correct_in_any_order(self):
        assert is_question_correct(["b", "a"], {"a", "b"})

    def test_subset_is_wrong(self):
        assert not is_question_correct(["a"], {"a", "b"})

    def test_superset_is_wrong(self):
        assert not is_question_correct(["a", "b", "c"], {"a", "b"})

    def test_duplicated_selection_is_wrong(self):
        assert not is_question_correct(["a", "a"], {"a"})

    def test_uuid_casing_is_ignored(self):
        option_id = uuid.uuid4()
        assert is_question_correct([str(option_id).upper()], {str(option_id)})

    def test_count_correct_answers(self):
        key = {"q1": {"a"}, "q2": {"b", "c"}, "q3": {"d"}}
        answers = {"q1": ["a"], "q2": ["b"], "q3": ["d"]}

        assert count_correct_answers(["q1", "q2", "q3"], answers, key) == 2

    def test_unanswered_and_unknown_questions_count_as_wrong(self):
        key = {"q1": {"a"}}
        answers = {"q1": ["a"], "q2": ["x"], "not-in-round": ["a"]}

        assert count_correct_answers(["q1", "q2", "q3"], answers, key) == 1

    def test_missing_answers_mapping(self):
        assert count_correct_answers(["q1"], None, {"q1": {"a"}}) == 0


class TestRanking:
    def test_more_correct_answers_rank_first(self):
        low = _participant(correct_count=6, finished_after=10)
        high = _participant(correct_count=8, finished_after=200)

        assert rank_participants([low, high]) == [high, low]

    def test_earlier_finish_breaks_ties(self):
        slow = _participant(correct_count=7, finished_after=120)
        fast = _participant(correct_count=7, finished_after=60)

        assert rank_participants([slow, fast]) == [fast, slow]

    def test_non_finishers_rank_after_finishers(self):
        never = _participant(correct_count=0, finished_after=None, joined_after=0)
        finished = _participant(correct_count=0, finished_after=299, joined_after=5)

        assert rank_participants([never, finished]) == [finished, never]

    def test_join_order_breaks_full_ties(self):
        late = _participant(correct_count=5, finished_after=100, joined_after=30)
        early = _participant(correct_count=5, finished_after=100, joined_after=1)

        assert rank_participants([late, early]) == [early, late]

    def test_naive_timestamps_are_treated_as_utc(self):
        aware = _participant(correct_count=3, finished_after=50)
        naive = _participant(correct_count=3)
        naive.finished_at = (T0 + timedelta(seconds=40)).replace(tzinfo=None)

        assert rank_participants([aware, naive]) == [naive, aware]


class TestPrizePool:
    def test_two_players_medium_stake(self):
        # Pool 20: winner 14, runner-up 6
        assert split_prize_pool(10, 2) == [14, 6]

    def test_three_players_third_gets_nothing(self):
        assert split_prize_pool(5, 3) == [11, 4, 0]  # pool 15, 10.5 rounds up

    def test_four_players_hard_stake(self):
        assert split_prize_pool(20, 4) == [56, 24, 0, 0]

    def test_random_stake_pool(self):
        assert split_prize_pool(12, 3) == [25, 11, 0]  # pool 36, 25.2 rounds down

    @pytest.mark.parametrize("stake", [5, 10, 12, 20])
    @pytest.mark.parametrize("count", [2, 3, 4])
    def test_pool_is_fully_redistributed(self, stake, count):
        prizes = split_prize_pool(stake, count)

        assert len(prizes) == count
        assert sum(prizes) == stake * count
        assert prizes[0] >= prizes[1]

    def test_single_participant_takes_whole_pool(self):
        assert split_prize_pool(10, 1) == [10]

    def test_no_participants(self):
        assert split_prize_pool(10, 0) == []

    def test_custom_first_place_share(self):
        assert split_prize_pool(10, 2, first_share=0.5) == [10, 10]
