"""Quiz content models consumed by the duel question sampler."""
from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship
from datetime import datetime, UTC
import uuid

from quizduel.database import Base
from quizduel.models.base import get_uuid_column


class Quiz(Base):
    """A quiz groups questions under one difficulty tier."""
    __tablename__ = "quizzes"

    quiz_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    title = Column(String(200), nullable=False)
    difficulty = Column(String(20), nullable=False, index=True)
    # Possible values: 'FACILE', 'MOYEN', 'DIFFICILE'
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    questions = relationship("Question", back_populates="quiz", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Quiz(quiz_id={self.quiz_id}, title={self.title}, difficulty={self.difficulty})>"


class Question(Base):
    """A quiz question with one or more correct options."""
    __tablename__ = "questions"

    question_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    quiz_id = get_uuid_column(
        ForeignKey("quizzes.quiz_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content = Column(Text, nullable=False)
    type = Column(String(10), nullable=False, default="QCU")
    # Possible values: 'QCM' (several correct options), 'QCU' (single correct option)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    quiz = relationship("Quiz", back_populates="questions")
    options = relationship(
        "QuestionOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuestionOption.position",
    )


class QuestionOption(Base):
    """An answer option; ``is_correct`` is the ground truth for judging."""
    __tablename__ = "question_options"

    option_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    question_id = get_uuid_column(
        ForeignKey("questions.question_id", ondelete="CASCADE"),
        nullable=False,
    )
    content = Column(String(500), nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    explanation = Column(Text, nullable=True)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_question_options_question_correct", "question_id", "is_correct"),
    )

    question = relationship("Question", back_populates="options")
