"""Transaction service for atomic star balance updates."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from datetime import datetime
from typing import Optional
from uuid import UUID
import uuid
import logging

from quizduel.models.user import User
from quizduel.models.transaction import Transaction
from quizduel.utils.clock import Clock, utc_now
from quizduel.utils.exceptions import InsufficientBalanceError, UserNotFoundError

logger = logging.getLogger(__name__)


class TransactionService:
    """Service for managing user star transactions."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def create_transaction(
        self,
        user_id: UUID,
        amount: int,
        trans_type: str,
        reference_id: UUID | None = None,
        auto_commit: bool = True,
        now: Optional[datetime] = None,
    ) -> Transaction:
        """
        Apply a star balance change and record it in the ledger.

        The balance is changed with a single conditional UPDATE, so the
        non-negative check and the write are one statement and concurrent
        callers cannot both spend the same stars.

        Args:
            user_id: User UUID
            amount: Amount (negative for stakes, positive for refunds and payouts)
            trans_type: Ledger entry type (see TransactionType)
            reference_id: Optional reference to the duel
            auto_commit: If True, commits immediately. If False, caller must commit.
            now: Timestamp for the ledger row (defaults to the service clock)

        Returns:
            Created transaction

        Raises:
            UserNotFoundError: If the user does not exist
            InsufficientBalanceError: If balance would go negative
        """
        result = await self.db.execute(
            update(User)
            .where(User.user_id == user_id, User.stars + amount >= 0)
            .values(stars=User.stars + amount)
            .returning(User)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        user = result.scalar_one_or_none()

        if user is None:
            current = await self.db.scalar(select(User.stars).where(User.user_id == user_id))
            if current is None:
                raise UserNotFoundError(f"User not found: {user_id}")
            new_balance = current + amount
            raise InsufficientBalanceError(
                f"Insufficient stars: {current} + {amount} = {new_balance} < 0"
            )

        transaction = Transaction(
            transaction_id=uuid.uuid4(),
            user_id=user_id,
            amount=amount,
            type=trans_type,
            reference_id=reference_id,
            balance_after=user.stars,
            created_at=now or self.clock(),
        )
        self.db.add(transaction)

        if auto_commit:
            await self.db.commit()
            await self.db.refresh(transaction)

        logger.info(
            f"Transaction created: user={user_id}, amount={amount}, "
            f"type={trans_type}, reference={reference_id}, "
            f"new_stars={user.stars}, auto_commit={auto_commit}"
        )

        return transaction

    async def get_balance(self, user_id: UUID) -> int:
        """Return the current star balance of a user."""
        stars = await self.db.scalar(select(User.stars).where(User.user_id == user_id))
        if stars is None:
            raise UserNotFoundError(f"User not found: {user_id}")
        return stars

    async def get_user_transactions(
        self,
        user_id: UUID,
        reference_id: UUID | None = None,
        limit: int = 100,
    ) -> list[Transaction]:
        """Get ledger rows for a user, newest first, optionally for one duel."""
        query = select(Transaction).where(Transaction.user_id == user_id)
        if reference_id is not None:
            query = query.where(Transaction.reference_id == reference_id)
        result = await self.db.execute(
            query.order_by(Transaction.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())
