"""
Tests for DuelSubmissionService - judging, question delivery and settlement triggers.
"""
from random import Random
import uuid

import pytest
from sqlalchemy import select

from quizduel.models.duel import Duel
from quizduel.models.duel_participant import DuelParticipant
from quizduel.services.duels import (
    QuestionSampler,
    AlreadySubmittedError,
    DuelNotFoundError,
    InvalidDuelStateError,
    NotParticipantError,
)
from quizduel.services.transaction_service import TransactionService
from conftest import answer_key, answers_with_correct_count, wrong_answers


async def _round_question_ids(db_session, duel_id) -> list[str]:
    duel = await db_session.get(Duel, duel_id, populate_existing=True)
    return list(duel.question_ids)


class TestSubmit:
    """Test answer submission and judging."""

    @pytest.mark.asyncio
    async def test_two_player_scenario(self, db_session, make_playing_duel, submission_service, clock):
        """Should rank 8/10 above 6/10 and split a 20 star pool 14/6."""
        summary, alice, (bob,), bank = await make_playing_duel(difficulty="MOYEN")
        question_ids = await _round_question_ids(db_session, summary["id"])

        clock.advance(seconds=60)
        alice_result = await submission_service.submit(
            alice.user_id, summary["id"], answers_with_correct_count(question_ids, bank, 6)
        )
        clock.advance(seconds=30)
        bob_result = await submission_service.submit(
            bob.user_id, summary["id"], answers_with_correct_count(question_ids, bank, 8)
        )

        assert alice_result == {"score": 60, "correct_count": 6, "total": 10}
        assert bob_result == {"score": 80, "correct_count": 8, "total": 10}

        duel = await db_session.get(Duel, summary["id"], populate_existing=True)
        assert duel.status == "FINISHED"

        transactions = TransactionService(db_session)
        assert await transactions.get_balance(alice.user_id) == 96
        assert await transactions.get_balance(bob.user_id) == 104

    @pytest.mark.asyncio
    async def test_first_submission_keeps_duel_playing(self, db_session, make_playing_duel, submission_service):
        """Should not settle while a participant is still playing."""
        summary, alice, _, bank = await make_playing_duel()
        question_ids = await _round_question_ids(db_session, summary["id"])

        await submission_service.submit(alice.user_id, summary["id"], answer_key(bank))

        duel = await db_session.get(Duel, summary["id"], populate_existing=True)
        assert duel.status == "PLAYING"
        assert len(question_ids) == 10

    @pytest.mark.asyncio
    async def test_exact_set_required_for_multiple_choice(
        self, db_session, make_ready_duel, question_factory, submission_service, clock
    ):
        """Should only count a QCM question when every correct option is selected."""
        bank = await question_factory(difficulty="FACILE", count=10, question_type="QCM")
        summary, creator, _ = await make_ready_duel(difficulty="FACILE")
        await QuestionSampler(db_session, clock, rng=Random(2)).launch(creator.user_id, summary["id"])
        key = answer_key(bank)
        question_ids = await _round_question_ids(db_session, summary["id"])

        answers = {}
        for index, question_id in enumerate(question_ids):
            correct = key[question_id]
            if index < 4:
                answers[question_id] = list(reversed(correct))  # exact set, any order
            elif index < 7:
                answers[question_id] = correct[:1]  # partial
            else:
                answers[question_id] = correct + correct[:1]  # duplicate selection

        result = await submission_service.submit(creator.user_id, summary["id"], answers)

        assert result["correct_count"] == 4
        assert result["score"] == 40

    @pytest.mark.asyncio
    async def test_answers_outside_round_are_ignored(self, db_session, make_playing_duel, submission_service):
        """Should not credit answers to questions that are not in the round."""
        summary, alice, _, bank = await make_playing_duel()
        question_ids = await _round_question_ids(db_session, summary["id"])
        outside = [q for q in bank if str(q.question_id) not in question_ids]

        result = await submission_service.submit(alice.user_id, summary["id"], answer_key(outside))

        assert result["correct_count"] == 0
        assert result["score"] == 0

    @pytest.mark.asyncio
    async def test_uppercase_ids_are_accepted(self, db_session, make_playing_duel, submission_service):
        """Should judge ids regardless of their letter case."""
        summary, alice, _, bank = await make_playing_duel()
        question_ids = await _round_question_ids(db_session, summary["id"])
        key = answer_key(bank)

        answers = {qid.upper(): [oid.upper() for oid in key[qid]] for qid in question_ids}
        result = await submission_service.submit(alice.user_id, summary["id"], answers)

        assert result["correct_count"] == 10

    @pytest.mark.asyncio
    async def test_double_submission_refused(self, db_session, make_playing_duel, submission_service):
        """Should keep the first submission and refuse the second."""
        summary, creator, _, bank = await make_playing_duel(max_participants=3)
        question_ids = await _round_question_ids(db_session, summary["id"])

        await submission_service.submit(creator.user_id, summary["id"], wrong_answers(bank))

        with pytest.raises(AlreadySubmittedError):
            await submission_service.submit(creator.user_id, summary["id"], answer_key(bank))

        participant = (await db_session.execute(
            select(DuelParticipant)
            .where(DuelParticipant.duel_id == summary["id"], DuelParticipant.user_id == creator.user_id)
            .execution_options(populate_existing=True)
        )).scalar_one()
        assert participant.correct_count == 0
        assert set(question_ids) <= set(participant.answers)

    @pytest.mark.asyncio
    async def test_non_participant_refused(self, make_playing_duel, submission_service, user_factory):
        """Should refuse submissions from users outside the duel."""
        summary, _, _, bank = await make_playing_duel()
        outsider = await user_factory()

        with pytest.raises(NotParticipantError):
            await submission_service.submit(outsider.user_id, summary["id"], answer_key(bank))

    @pytest.mark.asyncio
    async def test_submit_before_launch_refused(self, make_ready_duel, submission_service):
        """Should refuse submissions until the round starts."""
        summary, creator, _ = await make_ready_duel()

        with pytest.raises(InvalidDuelStateError):
            await submission_service.submit(creator.user_id, summary["id"], {})

    @pytest.mark.asyncio
    async def test_submit_after_finish_refused(self, make_playing_duel, submission_service):
        """Should refuse submissions once the duel is settled."""
        summary, alice, (bob,), bank = await make_playing_duel()
        await submission_service.submit(alice.user_id, summary["id"], answer_key(bank))
        await submission_service.submit(bob.user_id, summary["id"], answer_key(bank))

        with pytest.raises(InvalidDuelStateError):
            await submission_service.submit(alice.user_id, summary["id"], answer_key(bank))

    @pytest.mark.asyncio
    async def test_unknown_duel(self, submission_service, user_factory):
        """Should raise DuelNotFoundError for a missing duel."""
        user = await user_factory()

        with pytest.raises(DuelNotFoundError):
            await submission_service.submit(user.user_id, uuid.uuid4(), {})

    @pytest.mark.asyncio
    async def test_late_submission_settles_round(self, db_session, make_playing_duel, submission_service, clock):
        """Should settle the duel when a submission arrives past the time limit."""
        summary, creator, joiners, bank = await make_playing_duel(max_participants=3)

        clock.advance(seconds=301)
        result = await submission_service.submit(joiners[0].user_id, summary["id"], answer_key(bank))

        assert result["correct_count"] == 10
        duel = await db_session.get(Duel, summary["id"], populate_existing=True)
        assert duel.status == "FINISHED"


class TestGetQuestions:
    """Test round question delivery."""

    @pytest.mark.asyncio
    async def test_answer_key_hidden_while_playing(self, db_session, make_playing_duel, submission_service):
        """Should serve the round in launch order without correctness data."""
        summary, alice, _, _ = await make_playing_duel()
        question_ids = await _round_question_ids(db_session, summary["id"])

        payload = await submission_service.get_questions(alice.user_id, summary["id"])

        assert payload["status"] == "PLAYING"
        assert payload["time_limit"] == 300
        assert [str(q["id"]) for q in payload["questions"]] == question_ids
        for question in payload["questions"]:
            assert len(question["options"]) == 4
            for option in question["options"]:
                assert "is_correct" not in option
                assert "explanation" not in option

    @pytest.mark.asyncio
    async def test_answer_key_revealed_when_finished(self, make_playing_duel, submission_service):
        """Should include correctness and explanations once settled."""
        summary, alice, (bob,), bank = await make_playing_duel()
        await submission_service.submit(alice.user_id, summary["id"], answer_key(bank))
        await submission_service.submit(bob.user_id, summary["id"], wrong_answers(bank))

        payload = await submission_service.get_questions(alice.user_id, summary["id"])

        assert payload["status"] == "FINISHED"
        for question in payload["questions"]:
            flags = [option["is_correct"] for option in question["options"]]
            assert flags.count(True) == 1
            assert question["options"][0]["explanation"] == "Because"

    @pytest.mark.asyncio
    async def test_timed_out_round_settles_on_read(self, db_session, make_playing_duel, submission_service, clock):
        """Should settle a round past its time limit before serving it."""
        summary, alice, _, _ = await make_playing_duel()
        clock.advance(seconds=301)

        payload = await submission_service.get_questions(alice.user_id, summary["id"])

        assert payload["status"] == "FINISHED"
        assert "is_correct" in payload["questions"][0]["options"][0]

    @pytest.mark.asyncio
    async def test_not_started(self, make_ready_duel, submission_service):
        """Should refuse serving questions before launch."""
        summary, creator, _ = await make_ready_duel()

        with pytest.raises(InvalidDuelStateError):
            await submission_service.get_questions(creator.user_id, summary["id"])

    @pytest.mark.asyncio
    async def test_non_participant(self, make_playing_duel, submission_service, user_factory):
        """Should hide the round from users outside the duel."""
        summary, _, _, _ = await make_playing_duel()
        outsider = await user_factory()

        with pytest.raises(NotParticipantError):
            await submission_service.get_questions(outsider.user_id, summary["id"])
