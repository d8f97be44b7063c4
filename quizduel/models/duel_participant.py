"""Duel Participant model."""
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime, UTC
import uuid

from quizduel.database import Base
from quizduel.models.base import get_uuid_column


class DuelParticipant(Base):
    """One user's seat in one duel.

    ``answers`` maps question id to the list of selected option ids and stays
    null until the participant submits.
    """
    __tablename__ = "duel_participants"

    participant_id = get_uuid_column(primary_key=True, default=uuid.uuid4)

    duel_id = get_uuid_column(
        ForeignKey("duels.duel_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = get_uuid_column(
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    joined_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    # Submission
    answers = Column(JSON, nullable=True)
    score = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    # Settlement
    rank = Column(Integer, nullable=True)
    stars_won = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('duel_id', 'user_id', name='uq_duel_participants_duel_user'),
    )

    # Relationships
    duel = relationship("Duel", back_populates="participants")
    user = relationship("User")

    def __repr__(self):
        return (f"<DuelParticipant(participant_id={self.participant_id}, duel_id={self.duel_id}, "
                f"user_id={self.user_id}, rank={self.rank})>")
