"""Question sampling for duel rounds."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, exists
from functools import cmp_to_key
from random import Random
from typing import Optional
from uuid import UUID
import logging

from quizduel.config import Settings, get_settings
from quizduel.models.base import DuelDifficulty, DuelStatus
from quizduel.models.duel import Duel
from quizduel.models.quiz import Quiz, Question, QuestionOption
from quizduel.services.duels.exceptions import (
    DuelNotFoundError,
    InsufficientContentError,
    InvalidDuelStateError,
    NotCreatorError,
)
from quizduel.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class QuestionSampler:
    """Picks the question set of a round and launches the duel."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utc_now,
        settings: Optional[Settings] = None,
        rng: Optional[Random] = None,
    ):
        self.db = db
        self.clock = clock
        self.settings = settings or get_settings()
        self.rng = rng or Random()

    async def launch(self, user_id: UUID, duel_id: UUID) -> dict:
        """
        Start a full lobby: sample the questions and move it to PLAYING.

        Args:
            user_id: UUID of the caller, must be the creator
            duel_id: UUID of the duel

        Returns:
            dict: duel_id, status, started_at and question_count

        Raises:
            DuelNotFoundError: If the duel does not exist
            NotCreatorError: If the caller is not the creator
            InvalidDuelStateError: If the duel is not READY
            InsufficientContentError: If fewer questions qualify than a round needs
        """
        duel = await self.db.get(Duel, duel_id, populate_existing=True)
        if duel is None:
            raise DuelNotFoundError("Duel not found")
        if duel.creator_id != user_id:
            raise NotCreatorError("Only the creator can launch the duel")
        if duel.status != DuelStatus.READY.value:
            raise InvalidDuelStateError("The lobby must be full before launching")

        required = self.settings.duel_question_count
        candidates = await self.get_candidate_question_ids(duel.difficulty)
        question_ids = self.shuffle(candidates)[:required]
        if len(question_ids) < required:
            logger.warning(
                f"Duel {duel_id} cannot launch: {len(candidates)}/{required} "
                f"questions for difficulty {duel.difficulty}"
            )
            raise InsufficientContentError(found=len(candidates), required=required)

        now = self.clock()
        try:
            launched = await self.db.execute(
                update(Duel)
                .where(Duel.duel_id == duel_id, Duel.status == DuelStatus.READY.value)
                .values(
                    status=DuelStatus.PLAYING.value,
                    started_at=now,
                    question_ids=question_ids,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if launched.rowcount == 0:
                raise InvalidDuelStateError("The lobby must be full before launching")
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Duel {duel_id} launched by {user_id}: READY -> PLAYING, {len(question_ids)} questions")
        return {
            "duel_id": duel_id,
            "status": DuelStatus.PLAYING.value,
            "started_at": now,
            "question_count": len(question_ids),
        }

    async def get_candidate_question_ids(self, difficulty: str) -> list[str]:
        """Ids of questions eligible for a duel of this difficulty.

        Only questions with at least one correct option qualify. The random
        selector spans every quiz.
        """
        has_correct_option = exists().where(
            QuestionOption.question_id == Question.question_id,
            QuestionOption.is_correct.is_(True),
        )
        query = select(Question.question_id).where(has_correct_option)
        if difficulty != DuelDifficulty.RANDOM.value:
            query = query.join(Quiz, Quiz.quiz_id == Question.quiz_id).where(
                Quiz.difficulty == difficulty
            )
        result = await self.db.execute(
            query.order_by(Question.created_at, Question.question_id)
        )
        return [str(question_id) for question_id in result.scalars().all()]

    def shuffle(self, question_ids: list[str]) -> list[str]:
        """Comparator shuffle with a random tie-break per compared pair."""
        return sorted(question_ids, key=cmp_to_key(lambda a, b: self.rng.random() - 0.5))
