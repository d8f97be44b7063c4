"""Duel submission judging and round question delivery."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.orm import selectinload
from typing import Mapping, Optional, Sequence
from uuid import UUID
import logging

from quizduel.config import Settings, get_settings
from quizduel.models.base import DuelStatus
from quizduel.models.duel import Duel
from quizduel.models.duel_participant import DuelParticipant
from quizduel.models.quiz import Question
from quizduel.services.duels.exceptions import (
    AlreadySubmittedError,
    DuelNotFoundError,
    InvalidDuelStateError,
    NotParticipantError,
)
from quizduel.services.duels.helpers import normalize_id, round_timed_out
from quizduel.services.duels.scoring import compute_score, count_correct_answers
from quizduel.services.duels.settlement_service import DuelSettlementService
from quizduel.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


def _as_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


class DuelSubmissionService:
    """Serves round questions and judges participant submissions."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utc_now,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.clock = clock
        self.settings = settings or get_settings()
        self.settlement_service = DuelSettlementService(db, clock, self.settings)

    async def get_questions(self, user_id: UUID, duel_id: UUID) -> dict:
        """
        Get the round's questions in their launch order.

        Correct flags and explanations are only included once the duel is
        FINISHED. A PLAYING duel past its time limit is settled first.

        Raises:
            DuelNotFoundError: If the duel does not exist
            NotParticipantError: If the caller is not seated in the duel
            InvalidDuelStateError: If the round has not started
        """
        duel = await self._get_duel(duel_id)
        if duel is None:
            raise DuelNotFoundError("Duel not found")
        if await self._get_participant(duel_id, user_id) is None:
            raise NotParticipantError("You are not part of this duel")
        if duel.status not in (DuelStatus.PLAYING.value, DuelStatus.FINISHED.value):
            raise InvalidDuelStateError("The duel has not started yet")

        if await self.settlement_service.settle_if_timed_out(duel):
            duel = await self._get_duel(duel_id)

        reveal = duel.status == DuelStatus.FINISHED.value
        question_ids = list(duel.question_ids or [])
        by_id = await self._load_questions(question_ids)

        questions = []
        for question_id in question_ids:
            question = by_id.get(normalize_id(question_id))
            if question is None:
                continue
            options = []
            for option in question.options:
                item = {"id": option.option_id, "content": option.content}
                if reveal:
                    item["is_correct"] = option.is_correct
                    item["explanation"] = option.explanation
                options.append(item)
            questions.append({
                "id": question.question_id,
                "content": question.content,
                "type": question.type,
                "options": options,
            })

        return {
            "duel_id": duel_id,
            "status": duel.status,
            "questions": questions,
            "time_limit": self.settings.duel_time_limit_seconds,
            "started_at": duel.started_at,
        }

    async def submit(
        self,
        user_id: UUID,
        duel_id: UUID,
        answers: Mapping[str, Sequence],
    ) -> dict:
        """
        Judge and record a participant's answers.

        A question is correct only when the selected options are exactly the
        correct ones. Once every participant has submitted, or the time
        limit has passed, the duel is settled before returning.

        Args:
            user_id: UUID of the participant
            duel_id: UUID of the duel
            answers: question id -> selected option ids

        Returns:
            dict: score, correct_count and total for the caller only

        Raises:
            DuelNotFoundError: If the duel does not exist
            InvalidDuelStateError: If the duel is not PLAYING
            NotParticipantError: If the caller is not seated in the duel
            AlreadySubmittedError: If the caller already submitted
        """
        duel = await self._get_duel(duel_id)
        if duel is None:
            raise DuelNotFoundError("Duel not found")
        if duel.status != DuelStatus.PLAYING.value:
            raise InvalidDuelStateError("This duel is not being played")

        participant = await self._get_participant(duel_id, user_id)
        if participant is None:
            raise NotParticipantError("You are not part of this duel")
        if participant.finished_at is not None:
            raise AlreadySubmittedError("You have already submitted your answers")

        question_ids = list(duel.question_ids or [])
        answer_key = await self._load_answer_key(question_ids)
        correct_count = count_correct_answers(question_ids, answers, answer_key)
        total = len(question_ids)
        score = compute_score(correct_count, total)
        stored_answers = {
            normalize_id(question_id): [normalize_id(option_id) for option_id in (selected or [])]
            for question_id, selected in (answers or {}).items()
        }

        participant_id = participant.participant_id
        now = self.clock()
        try:
            claimed = await self.db.execute(
                update(Duel)
                .where(Duel.duel_id == duel_id, Duel.status == DuelStatus.PLAYING.value)
                .values(updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                raise InvalidDuelStateError("This duel is not being played")

            recorded = await self.db.execute(
                update(DuelParticipant)
                .where(
                    DuelParticipant.participant_id == participant_id,
                    DuelParticipant.finished_at.is_(None),
                )
                .values(
                    answers=stored_answers,
                    score=score,
                    correct_count=correct_count,
                    finished_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if recorded.rowcount == 0:
                raise AlreadySubmittedError("You have already submitted your answers")

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"User {user_id} submitted duel {duel_id}: {correct_count}/{total} correct, score={score}"
        )

        pending = await self.db.scalar(
            select(func.count())
            .select_from(DuelParticipant)
            .where(DuelParticipant.duel_id == duel_id, DuelParticipant.finished_at.is_(None))
        )
        timed_out = round_timed_out(duel, self.clock(), self.settings.duel_time_limit_seconds)
        if pending == 0 or timed_out:
            await self.settlement_service.finalize_duel(duel_id)

        return {"score": score, "correct_count": correct_count, "total": total}

    async def _load_questions(self, question_ids: Sequence[str]) -> dict[str, Question]:
        ids = [uid for uid in (_as_uuid(qid) for qid in question_ids) if uid is not None]
        if not ids:
            return {}
        result = await self.db.execute(
            select(Question)
            .where(Question.question_id.in_(ids))
            .options(selectinload(Question.options))
            .execution_options(populate_existing=True)
        )
        return {str(question.question_id): question for question in result.scalars().all()}

    async def _load_answer_key(self, question_ids: Sequence[str]) -> dict[str, set[str]]:
        questions = await self._load_questions(question_ids)
        return {
            question_id: {str(option.option_id) for option in question.options if option.is_correct}
            for question_id, question in questions.items()
        }

    async def _get_duel(self, duel_id: UUID) -> Optional[Duel]:
        return await self.db.get(Duel, duel_id, populate_existing=True)

    async def _get_participant(self, duel_id: UUID, user_id: UUID) -> Optional[DuelParticipant]:
        result = await self.db.execute(
            select(DuelParticipant)
            .where(DuelParticipant.duel_id == duel_id, DuelParticipant.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
