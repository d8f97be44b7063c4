"""Pytest configuration and fixtures."""
import os
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

BASE_DIR = Path(__file__).resolve().parent.parent

# Point the module-level engine at a throwaway database; each test gets its own file below
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{BASE_DIR / 'test_quizduel.db'}"
# The in-process sweeper is exercised directly, never from the app lifespan
os.environ["DUEL_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["CLEANUP_TOKEN"] = ""

from quizduel.config import get_settings
from quizduel.database import Base
from quizduel.models import Quiz, Question, QuestionOption, QuestionType, User
from quizduel.services.duels import (
    DuelLobbyService,
    QuestionSampler,
    DuelSubmissionService,
    DuelSettlementService,
)

settings = get_settings()

FROZEN_START = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


class FrozenClock:
    """Deterministic clock that only moves when a test advances it."""

    def __init__(self, now: datetime = FROZEN_START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Frozen clock shared by every service a test builds."""
    return FrozenClock()


@pytest.fixture
async def test_engine(tmp_path):
    """Fresh SQLite database per test, created from the ORM metadata."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def lobby_service(db_session, clock):
    return DuelLobbyService(db_session, clock)


@pytest.fixture
def sampler(db_session, clock):
    return QuestionSampler(db_session, clock)


@pytest.fixture
def submission_service(db_session, clock):
    return DuelSubmissionService(db_session, clock)


@pytest.fixture
def settlement_service(db_session, clock):
    return DuelSettlementService(db_session, clock)


@pytest.fixture
def user_factory(db_session):
    """Factory for creating users with a star balance."""

    async def _create_user(
        stars: int = 100,
        first_name: str = "Test",
        last_name: str | None = None,
        avatar: str | None = None,
    ) -> User:
        unique_id = uuid.uuid4().hex[:8]
        user = User(
            user_id=uuid.uuid4(),
            email=f"user{unique_id}@example.com",
            first_name=first_name,
            last_name=last_name or unique_id,
            avatar=avatar,
            stars=stars,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _create_user


@pytest.fixture
def question_factory(db_session):
    """Factory for seeding a quiz with questions and options.

    QCU questions get one correct option out of four; QCM questions get two.
    """

    async def _create_questions(
        difficulty: str = "MOYEN",
        count: int = 10,
        question_type: str = QuestionType.QCU.value,
        with_correct: bool = True,
    ) -> list[Question]:
        quiz = Quiz(quiz_id=uuid.uuid4(), title=f"{difficulty} quiz", difficulty=difficulty)
        questions = []
        correct_positions = {0} if question_type == QuestionType.QCU.value else {0, 1}
        for index in range(count):
            question = Question(
                question_id=uuid.uuid4(),
                content=f"{difficulty} question {index + 1}",
                type=question_type,
            )
            question.options = [
                QuestionOption(
                    option_id=uuid.uuid4(),
                    content=f"Option {position + 1}",
                    is_correct=with_correct and position in correct_positions,
                    explanation="Because" if position in correct_positions else None,
                    position=position,
                )
                for position in range(4)
            ]
            questions.append(question)
        quiz.questions = questions
        db_session.add(quiz)
        await db_session.commit()
        return questions

    return _create_questions


def answer_key(questions: list[Question]) -> dict[str, list[str]]:
    """Map question id -> correct option ids."""
    return {
        str(question.question_id): [str(o.option_id) for o in question.options if o.is_correct]
        for question in questions
    }


def wrong_answers(questions: list[Question]) -> dict[str, list[str]]:
    """Map question id -> one incorrect option id."""
    return {
        str(question.question_id): [str(next(o.option_id for o in question.options if not o.is_correct))]
        for question in questions
    }


def answers_with_correct_count(question_ids: list[str], questions: list[Question], correct: int) -> dict:
    """Answer the first ``correct`` round questions right and the rest wrong."""
    key = answer_key(questions)
    wrong = wrong_answers(questions)
    return {
        question_id: (key[question_id] if index < correct else wrong[question_id])
        for index, question_id in enumerate(question_ids)
    }


@pytest.fixture
def make_ready_duel(lobby_service, user_factory):
    """Create a full lobby: a creator plus enough joiners to fill every seat."""

    async def _make(max_participants: int = 2, difficulty: str = "MOYEN", stars: int = 100):
        creator = await user_factory(stars=stars, first_name="Creator")
        summary = await lobby_service.create_duel(creator.user_id, max_participants, difficulty)
        joiners = []
        for _ in range(max_participants - 1):
            joiner = await user_factory(stars=stars, first_name="Joiner")
            await lobby_service.join_duel(joiner.user_id, summary["code"])
            joiners.append(joiner)
        return summary, creator, joiners

    return _make


@pytest.fixture
def make_playing_duel(make_ready_duel, sampler, question_factory):
    """Create a launched duel backed by a seeded question bank."""

    async def _make(max_participants: int = 2, difficulty: str = "MOYEN", stars: int = 100):
        bank_difficulty = "MOYEN" if difficulty == "ALEATOIRE" else difficulty
        questions = await question_factory(difficulty=bank_difficulty, count=12)
        summary, creator, joiners = await make_ready_duel(max_participants, difficulty, stars)
        await sampler.launch(creator.user_id, summary["id"])
        return summary, creator, joiners, questions

    return _make


@pytest.fixture
async def test_app(session_factory, clock):
    """Create test app with database and clock overrides."""
    from quizduel.main import app
    from quizduel.database import get_db
    from quizduel.dependencies import get_clock

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as ac:
        yield ac


def auth_headers(user: User) -> dict[str, str]:
    return {settings.auth_user_header: str(user.user_id)}
