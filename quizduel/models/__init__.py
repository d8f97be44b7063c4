"""Database models."""
from quizduel.models.base import (
    DuelStatus,
    DuelDifficulty,
    QuestionType,
    TransactionType,
    ACTIVE_STATUSES,
    LOBBY_STATUSES,
    TERMINAL_STATUSES,
)
from quizduel.models.user import User
from quizduel.models.quiz import Quiz, Question, QuestionOption
from quizduel.models.duel import Duel
from quizduel.models.duel_participant import DuelParticipant
from quizduel.models.transaction import Transaction

__all__ = [
    "DuelStatus",
    "DuelDifficulty",
    "QuestionType",
    "TransactionType",
    "ACTIVE_STATUSES",
    "LOBBY_STATUSES",
    "TERMINAL_STATUSES",
    "User",
    "Quiz",
    "Question",
    "QuestionOption",
    "Duel",
    "DuelParticipant",
    "Transaction",
]
