"""Application configuration management."""
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from sqlalchemy.engine.url import make_url, URL
from typing import Optional
import logging

SQLITE_LOCAL_URL = "sqlite+aiosqlite:///./quizduel.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = SQLITE_LOCAL_URL
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Application
    environment: str = "development"
    frontend_url: str = "http://localhost:5173"
    log_dir: str = "logs"

    # Caller identity is resolved upstream; the gateway forwards the user id in this header
    auth_user_header: str = "X-User-Id"
    # Shared secret for the scheduler hitting /duels/cleanup (empty disables the check)
    cleanup_token: str = ""

    # Duel stakes, in stars per participant
    duel_stake_easy: int = 5
    duel_stake_medium: int = 10
    duel_stake_hard: int = 20
    duel_stake_random: int = 12

    # Duel timing and round shape
    duel_expiry_minutes: int = 30
    duel_question_count: int = 10
    duel_time_limit_seconds: int = 300  # 5 minutes
    duel_first_place_share: float = 0.70  # Second place receives the remainder of the pool

    # Join codes
    duel_code_length: int = 6
    duel_code_max_attempts: int = 25

    # Listing / maintenance
    duel_history_limit: int = 50
    duel_sweep_interval_seconds: int = 60  # 0 disables the in-process sweeper

    def stake_for(self, difficulty) -> int:
        """Return the per-participant stake for a duel difficulty."""
        # quizduel.models imports the database module, which imports this one
        from quizduel.models.base import DuelDifficulty

        stakes = {
            DuelDifficulty.EASY: self.duel_stake_easy,
            DuelDifficulty.MEDIUM: self.duel_stake_medium,
            DuelDifficulty.HARD: self.duel_stake_hard,
            DuelDifficulty.RANDOM: self.duel_stake_random,
        }
        return stakes[DuelDifficulty(difficulty)]

    @model_validator(mode="after")
    def validate_all_config(self):
        """Validate duel economy settings and normalize Postgres URLs."""
        logger = logging.getLogger(__name__)

        for field_name in ("duel_stake_easy", "duel_stake_medium", "duel_stake_hard", "duel_stake_random"):
            if getattr(self, field_name) < 1:
                raise ValueError(f"{field_name} must be at least 1 star")

        if not 0 < self.duel_first_place_share <= 1:
            raise ValueError("duel_first_place_share must be in (0, 1]")

        if self.duel_question_count < 1:
            raise ValueError("duel_question_count must be at least 1")

        if self.duel_time_limit_seconds < 1 or self.duel_expiry_minutes < 1:
            raise ValueError("duel time limit and expiry must be positive")

        if self.duel_code_length < 4:
            raise ValueError("duel_code_length must be at least 4 characters")

        # Database URL normalization
        url = self.database_url
        if not url:
            logger.warning("Empty DATABASE_URL, using SQLite fallback")
            self.database_url = SQLITE_LOCAL_URL
            return self

        parsed: Optional[URL] = None
        try:
            parsed = make_url(url)
        except Exception as e:
            logger.error(f"Failed to parse DATABASE_URL: {e}")
            self.database_url = SQLITE_LOCAL_URL
            return self

        drivername = parsed.drivername
        if drivername.startswith("postgres") and "+asyncpg" not in drivername:
            parsed = parsed.set(drivername="postgresql+asyncpg")
            logger.info(f"Driver normalized: {drivername} -> {parsed.drivername}")
        # Use render_as_string to properly re-encode special characters in password
        self.database_url = parsed.render_as_string(hide_password=False)

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
