"""Duel settlement: ranking, prize distribution and the round timeout sweep."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from datetime import timedelta
from typing import Optional
from uuid import UUID
import logging

from quizduel.config import Settings, get_settings
from quizduel.models.base import DuelStatus, TransactionType
from quizduel.models.duel import Duel
from quizduel.models.duel_participant import DuelParticipant
from quizduel.services.duels.helpers import round_timed_out
from quizduel.services.duels.scoring import rank_participants, split_prize_pool
from quizduel.services.transaction_service import TransactionService
from quizduel.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class DuelSettlementService:
    """Service that closes PLAYING duels and pays the winners."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utc_now,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.clock = clock
        self.settings = settings or get_settings()
        self.transaction_service = TransactionService(db, clock)

    async def finalize_duel(self, duel_id: UUID) -> bool:
        """
        Rank participants and distribute the prize pool.

        The PLAYING -> FINISHED flip is the first write of the transaction and
        is conditional on the current status, so only one caller can ever pay
        out a given duel. Calling this again, or on a duel that is not
        PLAYING, is a no-op.

        Args:
            duel_id: UUID of the duel

        Returns:
            True if this call settled the duel, False if there was nothing to do
        """
        now = self.clock()
        claimed = await self.db.execute(
            update(Duel)
            .where(Duel.duel_id == duel_id, Duel.status == DuelStatus.PLAYING.value)
            .values(status=DuelStatus.FINISHED.value, finished_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            await self.db.rollback()
            logger.debug(f"Duel {duel_id} not settled: not PLAYING")
            return False

        try:
            duel = await self.db.get(Duel, duel_id, populate_existing=True)
            participants = await self._load_participants(duel_id)
            ranked = rank_participants(participants)
            prizes = split_prize_pool(
                duel.stake, len(ranked), self.settings.duel_first_place_share
            )

            for position, (participant, prize) in enumerate(zip(ranked, prizes), start=1):
                participant.rank = position
                participant.stars_won = prize
                if prize > 0:
                    await self.transaction_service.create_transaction(
                        user_id=participant.user_id,
                        amount=prize,
                        trans_type=TransactionType.DUEL_PAYOUT.value,
                        reference_id=duel_id,
                        auto_commit=False,
                        now=now,
                    )

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Duel {duel_id} finished: pool={duel.stake * len(ranked)}, "
            f"payouts={[(str(p.user_id), p.stars_won) for p in ranked if p.stars_won]}"
        )
        return True

    async def settle_if_timed_out(self, duel: Duel) -> bool:
        """
        Settle a PLAYING duel whose time limit has elapsed.

        Returns:
            True if settlement was attempted; the session was committed or
            rolled back and ``duel`` must be reloaded before further use
        """
        if duel.status != DuelStatus.PLAYING.value:
            return False
        if not round_timed_out(duel, self.clock(), self.settings.duel_time_limit_seconds):
            return False
        logger.info(f"Duel {duel.duel_id} past its time limit, settling on access")
        await self.finalize_duel(duel.duel_id)
        return True

    async def check_timed_out_duels(self) -> int:
        """
        Finalize every PLAYING duel started more than the time limit ago.

        Each duel is settled in its own transaction; a failure on one duel is
        logged and does not stop the others.

        Returns:
            Number of duels this sweep settled
        """
        duel_ids = await self.list_timed_out_duel_ids()
        await self.db.rollback()

        finalized = 0
        for duel_id in duel_ids:
            try:
                if await self.finalize_duel(duel_id):
                    finalized += 1
            except Exception as e:
                await self.db.rollback()
                logger.error(f"Failed to finalize timed-out duel {duel_id}: {e}", exc_info=True)

        if duel_ids:
            logger.info(f"Timed-out duel sweep: {finalized}/{len(duel_ids)} finalized")
        return finalized

    async def list_timed_out_duel_ids(self) -> list[UUID]:
        """PLAYING duels started more than the time limit ago."""
        cutoff = self.clock() - timedelta(seconds=self.settings.duel_time_limit_seconds)
        result = await self.db.execute(
            select(Duel.duel_id)
            .where(Duel.status == DuelStatus.PLAYING.value)
            .where(Duel.started_at < cutoff)
            .order_by(Duel.started_at)
        )
        return list(result.scalars().all())

    async def _load_participants(self, duel_id: UUID) -> list[DuelParticipant]:
        result = await self.db.execute(
            select(DuelParticipant)
            .where(DuelParticipant.duel_id == duel_id)
            .order_by(DuelParticipant.joined_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
