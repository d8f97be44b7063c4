"""Duel API router."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID
import logging

from quizduel.database import get_db
from quizduel.dependencies import get_clock, get_current_user, require_cleanup_token
from quizduel.models.user import User
from quizduel.schemas.duel import (
    CreateDuelRequest,
    JoinDuelRequest,
    SubmitDuelRequest,
    DuelSummaryResponse,
    DuelDetailResponse,
    MyDuelResponse,
    DuelQuestionsResponse,
    LaunchDuelResponse,
    SubmitDuelResponse,
    LeaveDuelResponse,
    DuelCleanupResponse,
)
from quizduel.services.duels import (
    DuelLobbyService,
    QuestionSampler,
    DuelSubmissionService,
    DuelSettlementService,
    DuelNotFoundError,
    DuelForbiddenError,
    InvalidDuelStateError,
    DuelFullError,
    DuelExpiredError,
    InsufficientFundsError,
    InsufficientContentError,
    InvalidDuelConfigError,
    CodeAllocationError,
)
from quizduel.utils.clock import Clock
from quizduel.utils.exceptions import InsufficientBalanceError, UserNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_http_error(error: Exception, action: str) -> HTTPException:
    """Translate a service exception into the HTTP error the client sees."""
    if isinstance(error, HTTPException):
        return error
    if isinstance(error, (DuelNotFoundError, UserNotFoundError)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, DuelForbiddenError):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, (InvalidDuelStateError, DuelFullError)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, DuelExpiredError):
        return HTTPException(status_code=410, detail=str(error))
    if isinstance(error, (InsufficientFundsError, InsufficientBalanceError)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, (InsufficientContentError, InvalidDuelConfigError)):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, CodeAllocationError):
        return HTTPException(status_code=503, detail=str(error))

    logger.error(f"Error trying to {action}: {type(error).__name__}: {error}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Failed to {action}")


@router.post("", response_model=DuelSummaryResponse, status_code=201)
async def create_duel(
    request: CreateDuelRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Create a lobby and stake the creator's stars."""
    try:
        lobby_service = DuelLobbyService(db, clock)
        summary = await lobby_service.create_duel(
            user_id=user.user_id,
            max_participants=request.max_participants,
            difficulty=request.difficulty.value,
        )
        return DuelSummaryResponse(**summary)
    except Exception as e:
        raise _to_http_error(e, "create duel")


@router.post("/join", response_model=DuelDetailResponse)
async def join_duel(
    request: JoinDuelRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Join a lobby by code; re-joining returns the lobby unchanged."""
    try:
        lobby_service = DuelLobbyService(db, clock)
        detail = await lobby_service.join_duel(user.user_id, request.code)
        return DuelDetailResponse(**detail)
    except Exception as e:
        raise _to_http_error(e, "join duel")


@router.get("/my", response_model=List[MyDuelResponse])
async def list_my_duels(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """List the caller's most recent duels."""
    try:
        lobby_service = DuelLobbyService(db, clock)
        duels = await lobby_service.list_user_duels(user.user_id)
        return [MyDuelResponse(**item) for item in duels]
    except Exception as e:
        raise _to_http_error(e, "list duels")


@router.post("/submit", response_model=SubmitDuelResponse)
async def submit_duel(
    request: SubmitDuelRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Submit answers and get the caller's own score."""
    try:
        submission_service = DuelSubmissionService(db, clock)
        result = await submission_service.submit(user.user_id, request.duel_id, request.answers)
        return SubmitDuelResponse(**result)
    except Exception as e:
        raise _to_http_error(e, "submit duel")


@router.post(
    "/cleanup",
    response_model=DuelCleanupResponse,
    dependencies=[Depends(require_cleanup_token)],
)
async def cleanup_duels(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Run the expired-lobby and timed-out-round sweeps once."""
    try:
        cancelled = await DuelLobbyService(db, clock).check_expired_duels()
        finalized = await DuelSettlementService(db, clock).check_timed_out_duels()
        return DuelCleanupResponse(cancelled=cancelled, finalized=finalized)
    except Exception as e:
        raise _to_http_error(e, "clean up duels")


@router.get("/{duel_id}", response_model=DuelDetailResponse)
async def get_duel(
    duel_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Get lobby/round detail; only participants may view it."""
    try:
        lobby_service = DuelLobbyService(db, clock)
        detail = await lobby_service.get_duel(user.user_id, duel_id)
        return DuelDetailResponse(**detail)
    except Exception as e:
        raise _to_http_error(e, "get duel")


@router.get(
    "/{duel_id}/questions",
    response_model=DuelQuestionsResponse,
    response_model_exclude_none=True,
)
async def get_duel_questions(
    duel_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Get the round's questions; answers are revealed once finished."""
    try:
        submission_service = DuelSubmissionService(db, clock)
        payload = await submission_service.get_questions(user.user_id, duel_id)
        return DuelQuestionsResponse(**payload)
    except Exception as e:
        raise _to_http_error(e, "get duel questions")


@router.post("/{duel_id}/launch", response_model=LaunchDuelResponse)
async def launch_duel(
    duel_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Creator starts the round of a full lobby."""
    try:
        sampler = QuestionSampler(db, clock)
        result = await sampler.launch(user.user_id, duel_id)
        return LaunchDuelResponse(**result)
    except Exception as e:
        raise _to_http_error(e, "launch duel")


@router.delete("/{duel_id}/leave", response_model=LeaveDuelResponse)
async def leave_duel(
    duel_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Leave a lobby; the creator leaving cancels it for everyone."""
    try:
        lobby_service = DuelLobbyService(db, clock)
        result = await lobby_service.leave_duel(user.user_id, duel_id)
        return LeaveDuelResponse(**result)
    except Exception as e:
        raise _to_http_error(e, "leave duel")
