"""Star ledger model."""
from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    ForeignKey,
)
import uuid
from datetime import datetime, UTC
from quizduel.database import Base
from quizduel.models.base import get_uuid_column


class Transaction(Base):
    """One row per star balance movement."""
    __tablename__ = "transactions"

    transaction_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    user_id = get_uuid_column(
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount = Column(Integer, nullable=False)  # Negative for stakes, positive for refunds and payouts
    type = Column(String(50), nullable=False, index=True)
    reference_id = get_uuid_column(nullable=True, index=True)  # References duel_id
    balance_after = Column(Integer, nullable=False)  # For audit trail
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False, index=True)

    def __repr__(self):
        return (f"<Transaction(transaction_id={self.transaction_id}, amount={self.amount}, "
                f"type={self.type})>")
