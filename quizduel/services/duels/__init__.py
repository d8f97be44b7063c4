"""Duel coordinator: lobby, sampling, judging and settlement services."""
from quizduel.services.duels.exceptions import (
    DuelError,
    DuelNotFoundError,
    DuelForbiddenError,
    NotCreatorError,
    NotParticipantError,
    InvalidDuelStateError,
    AlreadySubmittedError,
    DuelFullError,
    DuelExpiredError,
    InsufficientFundsError,
    InsufficientContentError,
    InvalidDuelConfigError,
    CodeAllocationError,
)
from quizduel.services.duels.lobby_service import DuelLobbyService
from quizduel.services.duels.question_sampler import QuestionSampler
from quizduel.services.duels.submission_service import DuelSubmissionService
from quizduel.services.duels.settlement_service import DuelSettlementService

__all__ = [
    "DuelError",
    "DuelNotFoundError",
    "DuelForbiddenError",
    "NotCreatorError",
    "NotParticipantError",
    "InvalidDuelStateError",
    "AlreadySubmittedError",
    "DuelFullError",
    "DuelExpiredError",
    "InsufficientFundsError",
    "InsufficientContentError",
    "InvalidDuelConfigError",
    "CodeAllocationError",
    "DuelLobbyService",
    "QuestionSampler",
    "DuelSubmissionService",
    "DuelSettlementService",
]
