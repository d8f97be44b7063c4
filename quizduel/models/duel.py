"""Duel model: a wagering round between 2-4 players."""
from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Index,
    CheckConstraint,
    text,
)
from sqlalchemy.orm import relationship
from datetime import datetime, UTC
import uuid

from quizduel.database import Base
from quizduel.models.base import get_uuid_column

_ACTIVE_CODE_PREDICATE = text("status IN ('WAITING', 'READY', 'PLAYING')")


class Duel(Base):
    """Duel lobby and round.

    The join code is only reserved while the duel is active; terminal duels
    release it so the code space can be reused.
    """
    __tablename__ = "duels"

    # Primary key
    duel_id = get_uuid_column(primary_key=True, default=uuid.uuid4)

    # Human-entry join code
    code = Column(String(8), nullable=False, index=True)

    creator_id = get_uuid_column(
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Configuration, fixed at creation
    max_participants = Column(Integer, nullable=False, default=2)
    difficulty = Column(String(20), nullable=False)
    # Possible values: 'FACILE', 'MOYEN', 'DIFFICILE', 'ALEATOIRE'
    stake = Column(Integer, nullable=False)

    # Ordered question ids for the round, empty until launch
    question_ids = Column(JSON, nullable=False, default=list)

    status = Column(String(20), nullable=False, default='WAITING', index=True)
    # Possible values: 'WAITING', 'READY', 'PLAYING', 'FINISHED', 'CANCELLED'

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(
            "uq_duels_active_code",
            "code",
            unique=True,
            sqlite_where=_ACTIVE_CODE_PREDICATE,
            postgresql_where=_ACTIVE_CODE_PREDICATE,
        ),
        Index("ix_duels_status_expires_at", "status", "expires_at"),
        CheckConstraint("max_participants BETWEEN 2 AND 4", name="ck_duels_max_participants"),
        CheckConstraint("stake > 0", name="ck_duels_stake_positive"),
    )

    # Relationships
    creator = relationship("User", foreign_keys=[creator_id])
    participants = relationship(
        "DuelParticipant",
        back_populates="duel",
        cascade="all, delete-orphan",
        order_by="DuelParticipant.joined_at",
    )

    def __repr__(self):
        return (f"<Duel(duel_id={self.duel_id}, code={self.code}, "
                f"status={self.status}, stake={self.stake})>")
