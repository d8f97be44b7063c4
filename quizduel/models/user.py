"""User model: the star balance owned by the duel economy."""
from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    CheckConstraint,
)
import uuid
from datetime import datetime, UTC
from quizduel.database import Base
from quizduel.models.base import get_uuid_column


class User(Base):
    """Platform user.

    Profile fields are owned by the account service; this service only moves
    ``stars``, which is the single source of truth for the economy.
    """
    __tablename__ = "users"

    user_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    avatar = Column(String(500), nullable=True)
    stars = Column(Integer, default=0, nullable=False)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    __table_args__ = (
        CheckConstraint("stars >= 0", name="ck_users_stars_non_negative"),
    )

    def __repr__(self):
        return f"<User(user_id={self.user_id}, email={self.email}, stars={self.stars})>"
