"""Duel Pydantic schemas."""
from pydantic import Field
from datetime import datetime
from typing import Optional, List, Dict
from uuid import UUID

from quizduel.models.base import DuelDifficulty
from quizduel.schemas.base import BaseRequest, BaseSchema


# Request schemas
class CreateDuelRequest(BaseRequest):
    """Request to create a new duel lobby."""
    max_participants: int = Field(..., ge=2, le=4, description="Seats in the lobby")
    difficulty: DuelDifficulty = Field(..., description="FACILE, MOYEN, DIFFICILE or ALEATOIRE")


class JoinDuelRequest(BaseRequest):
    """Request to join a lobby by code."""
    code: str = Field(..., min_length=1, max_length=16, description="Join code, case-insensitive")


class SubmitDuelRequest(BaseRequest):
    """Request to submit a participant's answers."""
    duel_id: UUID
    answers: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Question id -> selected option ids",
    )


# Response schemas
class DuelSummaryResponse(BaseSchema):
    """Public lobby summary returned on creation."""
    id: UUID
    code: str
    max_participants: int
    difficulty: str
    stars_cost: int
    status: str
    expires_at: datetime


class DuelParticipantResponse(BaseSchema):
    """Participant as shown in lobby and result views."""
    id: UUID
    first_name: str
    last_name: str
    avatar: Optional[str] = None
    rank: Optional[int] = None
    stars_won: int
    correct_count: int
    score: int
    finished_at: Optional[datetime] = None


class DuelDetailResponse(BaseSchema):
    """Lobby/round detail for a participant."""
    id: UUID
    code: str
    creator_id: UUID
    max_participants: int
    difficulty: str
    stars_cost: int
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    expires_at: datetime
    is_creator: bool
    participants: List[DuelParticipantResponse]


class MyDuelResponse(BaseSchema):
    """One row of the caller's duel history."""
    id: UUID
    code: str
    difficulty: str
    stars_cost: int
    status: str
    max_participants: int
    participant_count: int
    is_creator: bool
    my_rank: Optional[int] = None
    my_stars_won: int
    my_correct_count: int
    created_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    participants: List[DuelParticipantResponse]


class DuelOptionResponse(BaseSchema):
    """Answer option; correctness is only present once the duel is finished."""
    id: UUID
    content: str
    is_correct: Optional[bool] = None
    explanation: Optional[str] = None


class DuelQuestionResponse(BaseSchema):
    """Round question with its options."""
    id: UUID
    content: str
    type: str
    options: List[DuelOptionResponse]


class DuelQuestionsResponse(BaseSchema):
    """Round question set in launch order plus countdown data."""
    duel_id: UUID
    status: str
    questions: List[DuelQuestionResponse]
    time_limit: int
    started_at: Optional[datetime] = None


class LaunchDuelResponse(BaseSchema):
    """Response after launching a round."""
    duel_id: UUID
    status: str
    started_at: datetime
    question_count: int


class SubmitDuelResponse(BaseSchema):
    """Caller's own result."""
    score: int
    correct_count: int
    total: int


class LeaveDuelResponse(BaseSchema):
    """Response after leaving or cancelling a lobby."""
    duel_id: UUID
    status: str
    cancelled: bool
    stars_refunded: int


class DuelCleanupResponse(BaseSchema):
    """Result of one sweep run."""
    cancelled: int
    finalized: int
