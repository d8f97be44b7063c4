"""Base utilities for SQLAlchemy models."""
from enum import Enum
import uuid
from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.sql import sqltypes


class DuelStatus(str, Enum):
    """Duel lifecycle status."""
    WAITING = "WAITING"
    READY = "READY"
    PLAYING = "PLAYING"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"


# Lobby states: participants may still join or leave
LOBBY_STATUSES = (DuelStatus.WAITING.value, DuelStatus.READY.value)
# States that hold escrowed stars and reserve their join code
ACTIVE_STATUSES = (DuelStatus.WAITING.value, DuelStatus.READY.value, DuelStatus.PLAYING.value)
TERMINAL_STATUSES = (DuelStatus.FINISHED.value, DuelStatus.CANCELLED.value)


class DuelDifficulty(str, Enum):
    """Duel difficulty selector: one quiz tier or random across all tiers."""
    EASY = "FACILE"
    MEDIUM = "MOYEN"
    HARD = "DIFFICILE"
    RANDOM = "ALEATOIRE"


class QuestionType(str, Enum):
    """Multiple-answer (QCM) or single-answer (QCU) question."""
    QCM = "QCM"
    QCU = "QCU"


class TransactionType(str, Enum):
    """Star ledger entry types."""
    DUEL_STAKE = "duel_stake"
    DUEL_REFUND = "duel_refund"
    DUEL_PAYOUT = "duel_payout"


class AdaptiveUUID(sqltypes.TypeDecorator):
    """UUID stored natively on PostgreSQL and as lowercase hex elsewhere."""

    impl = sqltypes.String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    @staticmethod
    def _coerce_uuid(value):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))

    def process_bind_param(self, value, dialect):
        value = self._coerce_uuid(value)
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        return value.hex

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self._coerce_uuid(value)


def get_uuid_column(*args, **kwargs):
    """Get UUID column type based on database dialect.

    Args:
        *args: Positional arguments to pass to Column (e.g., ForeignKey)
        **kwargs: Keyword arguments to pass to Column (e.g., primary_key=True)

    Returns:
        Column: Configured SQLAlchemy Column for UUID storage

    Example:
        duel_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
        creator_id = get_uuid_column(ForeignKey("users.user_id"), nullable=False)
    """
    return Column(
        AdaptiveUUID(),
        *args,
        **kwargs
    )
