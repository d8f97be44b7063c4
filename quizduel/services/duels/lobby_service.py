"""Duel lobby service: create, join, leave and expire wagering lobbies."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from datetime import datetime, timedelta
from random import Random
from typing import Optional
from uuid import UUID
import logging
import uuid

from quizduel.config import Settings, get_settings
from quizduel.models.base import (
    ACTIVE_STATUSES,
    LOBBY_STATUSES,
    TERMINAL_STATUSES,
    DuelDifficulty,
    DuelStatus,
    TransactionType,
)
from quizduel.models.duel import Duel
from quizduel.models.duel_participant import DuelParticipant
from quizduel.models.user import User
from quizduel.services.duels.exceptions import (
    CodeAllocationError,
    DuelExpiredError,
    DuelFullError,
    DuelNotFoundError,
    InsufficientFundsError,
    InvalidDuelConfigError,
    InvalidDuelStateError,
    NotParticipantError,
)
from quizduel.services.duels.helpers import (
    format_duel_detail,
    format_duel_summary,
    format_my_duel,
    generate_duel_code,
    lobby_expired,
    normalize_code,
)
from quizduel.services.duels.settlement_service import DuelSettlementService
from quizduel.services.transaction_service import TransactionService
from quizduel.utils.clock import Clock, utc_now
from quizduel.utils.exceptions import InsufficientBalanceError, UserNotFoundError

logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 4


class DuelLobbyService:
    """Service for managing duel lobbies and the stars held in escrow."""

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
        self.transaction_service = TransactionService(db, clock)
        self.settlement_service = DuelSettlementService(db, clock, self.settings)

    async def create_duel(
        self,
        user_id: UUID,
        max_participants: int,
        difficulty: str,
    ) -> dict:
        """
        Create a new lobby with the caller seated as creator.

        The creator's stake is debited, the duel row and the creator's seat
        are inserted and the ledger row is written in one transaction.

        Args:
            user_id: UUID of the creator
            max_participants: Seats in the lobby (2-4)
            difficulty: FACILE, MOYEN, DIFFICILE or ALEATOIRE

        Returns:
            dict: Public lobby summary

        Raises:
            InvalidDuelConfigError: If seats or difficulty are out of range
            UserNotFoundError: If the creator does not exist
            InsufficientFundsError: If the creator cannot cover the stake
            CodeAllocationError: If no free join code could be drawn
        """
        if not MIN_PARTICIPANTS <= max_participants <= MAX_PARTICIPANTS:
            raise InvalidDuelConfigError(
                f"max_participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}"
            )
        try:
            difficulty = DuelDifficulty(difficulty).value
        except ValueError:
            raise InvalidDuelConfigError(f"Unknown duel difficulty: {difficulty}")

        stake = self.settings.stake_for(difficulty)

        user = await self.db.get(User, user_id, populate_existing=True)
        if user is None:
            raise UserNotFoundError(f"User not found: {user_id}")
        if user.stars < stake:
            raise InsufficientFundsError(required=stake, available=user.stars)

        for attempt in range(1, self.settings.duel_code_max_attempts + 1):
            code = generate_duel_code(self.rng, self.settings.duel_code_length)
            if await self._code_in_use(code):
                logger.debug(f"Duel code collision on {code} (attempt {attempt})")
                continue

            now = self.clock()
            duel = Duel(
                duel_id=uuid.uuid4(),
                code=code,
                creator_id=user_id,
                max_participants=max_participants,
                difficulty=difficulty,
                stake=stake,
                question_ids=[],
                status=DuelStatus.WAITING.value,
                created_at=now,
                updated_at=now,
                expires_at=now + timedelta(minutes=self.settings.duel_expiry_minutes),
            )
            creator_seat = DuelParticipant(
                participant_id=uuid.uuid4(),
                duel_id=duel.duel_id,
                user_id=user_id,
                joined_at=now,
            )

            try:
                self.db.add(duel)
                await self.db.flush()
                self.db.add(creator_seat)
                await self.transaction_service.create_transaction(
                    user_id=user_id,
                    amount=-stake,
                    trans_type=TransactionType.DUEL_STAKE.value,
                    reference_id=duel.duel_id,
                    auto_commit=False,
                    now=now,
                )
                await self.db.commit()
            except IntegrityError:
                # Another lobby claimed the same code between the check and the insert
                await self.db.rollback()
                logger.warning(f"Duel code {code} taken concurrently, retrying (attempt {attempt})")
                continue
            except InsufficientBalanceError:
                await self.db.rollback()
                available = await self.transaction_service.get_balance(user_id)
                raise InsufficientFundsError(required=stake, available=available)
            except Exception:
                await self.db.rollback()
                raise

            logger.info(
                f"Duel {duel.duel_id} created by {user_id}: code={code}, "
                f"difficulty={difficulty}, seats={max_participants}, stake={stake}"
            )
            return format_duel_summary(duel)

        logger.error(
            f"Could not allocate a duel code after {self.settings.duel_code_max_attempts} attempts"
        )
        raise CodeAllocationError("Could not allocate a join code, please retry")

    async def join_duel(self, user_id: UUID, code: str) -> dict:
        """
        Join a lobby by its code.

        Re-entry by a current participant returns the lobby without side
        effects. The seat count is re-read after the guarded status update,
        so two callers racing for the last seat cannot both get it.

        Args:
            user_id: UUID of the joining user
            code: Join code (case-insensitive)

        Returns:
            dict: Lobby detail

        Raises:
            DuelNotFoundError: If no duel has this code
            InvalidDuelStateError: If the duel is PLAYING, FINISHED or CANCELLED
            DuelExpiredError: If the lobby is past its expiry
            DuelFullError: If every seat is taken
            InsufficientFundsError: If the user cannot cover the stake
        """
        code = normalize_code(code)
        duel = await self._get_duel_by_code(code)
        if duel is None:
            raise DuelNotFoundError("Duel not found, check the code")

        if duel.status in TERMINAL_STATUSES:
            raise InvalidDuelStateError("This duel is already over")
        if duel.status == DuelStatus.PLAYING.value:
            raise InvalidDuelStateError("This duel is already being played")
        if lobby_expired(duel, self.clock()):
            raise DuelExpiredError("This duel has expired")

        if await self._get_participant(duel.duel_id, user_id) is not None:
            logger.debug(f"User {user_id} re-entered duel {duel.duel_id}")
            return await self.get_duel(user_id, duel.duel_id)

        seats_taken = await self._count_participants(duel.duel_id)
        if seats_taken >= duel.max_participants:
            raise DuelFullError("This duel is full")

        user = await self.db.get(User, user_id, populate_existing=True)
        if user is None:
            raise UserNotFoundError(f"User not found: {user_id}")
        if user.stars < duel.stake:
            raise InsufficientFundsError(required=duel.stake, available=user.stars)

        duel_id = duel.duel_id
        stake = duel.stake
        max_participants = duel.max_participants
        now = self.clock()

        try:
            claimed = await self.db.execute(
                update(Duel)
                .where(Duel.duel_id == duel_id, Duel.status == DuelStatus.WAITING.value)
                .values(updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if await self._get_participant(duel_id, user_id) is not None:
                # A concurrent join by the same user committed first
                await self.db.rollback()
                logger.debug(f"User {user_id} already seated in duel {duel_id}")
                return await self.get_duel(user_id, duel_id)
            if claimed.rowcount == 0:
                status = await self.db.scalar(select(Duel.status).where(Duel.duel_id == duel_id))
                if status == DuelStatus.READY.value:
                    raise DuelFullError("This duel is full")
                raise InvalidDuelStateError(f"Duel can no longer be joined (status {status})")

            seats_taken = await self._count_participants(duel_id)
            if seats_taken >= max_participants:
                raise DuelFullError("This duel is full")

            await self.transaction_service.create_transaction(
                user_id=user_id,
                amount=-stake,
                trans_type=TransactionType.DUEL_STAKE.value,
                reference_id=duel_id,
                auto_commit=False,
                now=now,
            )
            self.db.add(DuelParticipant(
                participant_id=uuid.uuid4(),
                duel_id=duel_id,
                user_id=user_id,
                joined_at=now,
            ))

            if seats_taken + 1 >= max_participants:
                await self.db.execute(
                    update(Duel)
                    .where(Duel.duel_id == duel_id)
                    .values(status=DuelStatus.READY.value, updated_at=now)
                    .execution_options(synchronize_session=False)
                )

            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if await self._get_participant(duel_id, user_id) is None:
                raise
            logger.debug(f"User {user_id} already seated in duel {duel_id}")
            return await self.get_duel(user_id, duel_id)
        except InsufficientBalanceError:
            await self.db.rollback()
            available = await self.transaction_service.get_balance(user_id)
            raise InsufficientFundsError(required=stake, available=available)
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"User {user_id} joined duel {duel_id} ({seats_taken + 1}/{max_participants})"
        )
        if seats_taken + 1 >= max_participants:
            logger.info(f"Duel {duel_id} is full: WAITING -> READY")

        return await self.get_duel(user_id, duel_id)

    async def leave_duel(self, user_id: UUID, duel_id: UUID) -> dict:
        """
        Leave a lobby before it starts.

        A creator leaving cancels the duel and refunds every participant. Any
        other participant is refunded and unseated, and a READY lobby goes
        back to WAITING.

        Returns:
            dict: duel_id, resulting status, whether the duel was cancelled
            and the stars refunded to the caller

        Raises:
            DuelNotFoundError: If the duel does not exist
            InvalidDuelStateError: If the duel is PLAYING, FINISHED or CANCELLED
            NotParticipantError: If the caller is not seated in the duel
        """
        duel = await self._get_duel(duel_id)
        if duel is None:
            raise DuelNotFoundError("Duel not found")
        if duel.status not in LOBBY_STATUSES:
            raise InvalidDuelStateError("Cannot leave a duel that is playing or over")

        participant = await self._get_participant(duel_id, user_id)
        if participant is None:
            raise NotParticipantError("You are not part of this duel")

        is_creator = duel.creator_id == user_id
        stake = duel.stake
        participant_id = participant.participant_id
        now = self.clock()

        try:
            claimed = await self.db.execute(
                update(Duel)
                .where(Duel.duel_id == duel_id, Duel.status.in_(LOBBY_STATUSES))
                .values(updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                raise InvalidDuelStateError("Cannot leave a duel that is playing or over")

            if is_creator:
                refunded = await self._cancel_with_refunds(duel_id, stake, now)
            else:
                removed = await self.db.execute(
                    delete(DuelParticipant)
                    .where(DuelParticipant.participant_id == participant_id)
                    .execution_options(synchronize_session=False)
                )
                if removed.rowcount == 0:
                    raise NotParticipantError("You are not part of this duel")
                await self.transaction_service.create_transaction(
                    user_id=user_id,
                    amount=stake,
                    trans_type=TransactionType.DUEL_REFUND.value,
                    reference_id=duel_id,
                    auto_commit=False,
                    now=now,
                )
                await self.db.execute(
                    update(Duel)
                    .where(Duel.duel_id == duel_id, Duel.status == DuelStatus.READY.value)
                    .values(status=DuelStatus.WAITING.value)
                    .execution_options(synchronize_session=False)
                )
                refunded = 1

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        duel = await self._get_duel(duel_id)
        if is_creator:
            logger.info(f"Duel {duel_id} cancelled by creator {user_id}, {refunded} participants refunded")
        else:
            logger.info(f"User {user_id} left duel {duel_id}, status now {duel.status}")

        return {
            "duel_id": duel_id,
            "status": duel.status,
            "cancelled": is_creator,
            "stars_refunded": stake,
        }

    async def check_expired_duels(self) -> int:
        """
        Cancel every WAITING/READY lobby past its expiry and refund its seats.

        Each duel is cancelled in its own transaction; a failure on one duel
        is logged and does not stop the others.

        Returns:
            Number of duels this sweep cancelled
        """
        duel_ids = await self.list_expired_duel_ids()
        await self.db.rollback()

        cancelled = 0
        for duel_id in duel_ids:
            try:
                if await self._expire_duel(duel_id):
                    cancelled += 1
            except Exception as e:
                await self.db.rollback()
                logger.error(f"Failed to cancel expired duel {duel_id}: {e}", exc_info=True)

        if duel_ids:
            logger.info(f"Expired duel sweep: {cancelled}/{len(duel_ids)} cancelled")
        return cancelled

    async def list_expired_duel_ids(self) -> list[UUID]:
        """WAITING/READY duels past their expiry, oldest deadline first."""
        result = await self.db.execute(
            select(Duel.duel_id)
            .where(Duel.status.in_(LOBBY_STATUSES))
            .where(Duel.expires_at < self.clock())
            .order_by(Duel.expires_at)
        )
        return list(result.scalars().all())

    async def get_duel(self, user_id: UUID, duel_id: UUID) -> dict:
        """
        Get lobby/round detail for one of its participants.

        A PLAYING duel past its time limit is settled before returning.

        Raises:
            DuelNotFoundError: If the duel does not exist
            NotParticipantError: If the caller is not seated in the duel
        """
        duel = await self._load_duel_with_participants(duel_id)
        if duel is None:
            raise DuelNotFoundError("Duel not found")
        if not any(p.user_id == user_id for p in duel.participants):
            raise NotParticipantError("You are not part of this duel")

        if await self.settlement_service.settle_if_timed_out(duel):
            duel = await self._load_duel_with_participants(duel_id)

        return format_duel_detail(duel, duel.participants, user_id)

    async def list_user_duels(self, user_id: UUID, limit: Optional[int] = None) -> list[dict]:
        """Get the caller's duels, most recently joined first."""
        limit = limit or self.settings.duel_history_limit
        result = await self.db.execute(
            select(DuelParticipant)
            .where(DuelParticipant.user_id == user_id)
            .order_by(DuelParticipant.joined_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        memberships = list(result.scalars().all())
        if not memberships:
            return []

        result = await self.db.execute(
            select(Duel)
            .where(Duel.duel_id.in_([m.duel_id for m in memberships]))
            .options(selectinload(Duel.participants).selectinload(DuelParticipant.user))
            .execution_options(populate_existing=True)
        )
        duels_by_id = {duel.duel_id: duel for duel in result.scalars().all()}

        history = []
        for membership in memberships:
            duel = duels_by_id.get(membership.duel_id)
            if duel is None:
                continue
            history.append(format_my_duel(membership, duel, duel.participants, user_id))
        return history

    async def _expire_duel(self, duel_id: UUID) -> bool:
        now = self.clock()
        claimed = await self.db.execute(
            update(Duel)
            .where(
                Duel.duel_id == duel_id,
                Duel.status.in_(LOBBY_STATUSES),
                Duel.expires_at < now,
            )
            .values(updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            await self.db.rollback()
            return False

        try:
            stake = await self.db.scalar(select(Duel.stake).where(Duel.duel_id == duel_id))
            refunded = await self._cancel_with_refunds(duel_id, stake, now)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Duel {duel_id} expired: CANCELLED, {refunded} participants refunded")
        return True

    async def _cancel_with_refunds(self, duel_id: UUID, stake: int, now: datetime) -> int:
        """Refund every seat and cancel. Caller owns the transaction."""
        result = await self.db.execute(
            select(DuelParticipant.user_id).where(DuelParticipant.duel_id == duel_id)
        )
        user_ids = list(result.scalars().all())
        for participant_user_id in user_ids:
            await self.transaction_service.create_transaction(
                user_id=participant_user_id,
                amount=stake,
                trans_type=TransactionType.DUEL_REFUND.value,
                reference_id=duel_id,
                auto_commit=False,
                now=now,
            )
        await self.db.execute(
            update(Duel)
            .where(Duel.duel_id == duel_id)
            .values(status=DuelStatus.CANCELLED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return len(user_ids)

    async def _code_in_use(self, code: str) -> bool:
        result = await self.db.execute(
            select(Duel.duel_id)
            .where(Duel.code == code, Duel.status.in_(ACTIVE_STATUSES))
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def _get_duel_by_code(self, code: str) -> Optional[Duel]:
        """Prefer the active holder of a code over older terminal duels."""
        active_first = case((Duel.status.in_(ACTIVE_STATUSES), 0), else_=1)
        result = await self.db.execute(
            select(Duel)
            .where(Duel.code == code)
            .order_by(active_first, Duel.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_duel(self, duel_id: UUID) -> Optional[Duel]:
        return await self.db.get(Duel, duel_id, populate_existing=True)

    async def _load_duel_with_participants(self, duel_id: UUID) -> Optional[Duel]:
        result = await self.db.execute(
            select(Duel)
            .where(Duel.duel_id == duel_id)
            .options(selectinload(Duel.participants).selectinload(DuelParticipant.user))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_participant(self, duel_id: UUID, user_id: UUID) -> Optional[DuelParticipant]:
        result = await self.db.execute(
            select(DuelParticipant)
            .where(DuelParticipant.duel_id == duel_id, DuelParticipant.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _count_participants(self, duel_id: UUID) -> int:
        return await self.db.scalar(
            select(func.count())
            .select_from(DuelParticipant)
            .where(DuelParticipant.duel_id == duel_id)
        )
