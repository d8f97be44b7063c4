"""Sanity checks for the Alembic migration chain.

The revisions in ``quizduel/migrations/versions`` must form one linear path,
and upgrading an empty database to head must produce the same tables and
indexes the ORM models declare.
"""

from __future__ import annotations

from pathlib import Path
import re

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError

from quizduel.database import Base
import quizduel.models  # noqa: F401

ROOT = Path(__file__).resolve().parents[1]
MIGRATIONS_DIR = ROOT / "quizduel" / "migrations"
VERSIONS_DIR = MIGRATIONS_DIR / "versions"

REVISION_PATTERN = re.compile(r"^revision:\s*str\s*=\s*['\"]([^'\"]+)['\"]", re.MULTILINE)
DOWN_REVISION_PATTERN = re.compile(r"^down_revision:.*?=\s*(None|['\"][^'\"]+['\"])", re.MULTILINE)


def _parse_revisions() -> dict[str, str | None]:
    revisions: dict[str, str | None] = {}
    for path in VERSIONS_DIR.glob("*.py"):
        source = path.read_text()

        revision_match = REVISION_PATTERN.search(source)
        assert revision_match, f"Missing revision identifier in {path.name}"
        down_match = DOWN_REVISION_PATTERN.search(source)
        assert down_match, f"Missing down_revision in {path.name}"

        down = down_match.group(1)
        revisions[revision_match.group(1)] = None if down == "None" else down.strip("'\"")

    return revisions


def test_migrations_form_single_linear_chain() -> None:
    revisions = _parse_revisions()
    referenced = {down for down in revisions.values() if down}

    missing = referenced - set(revisions)
    assert not missing, f"down_revision points at unknown migrations: {missing}"

    heads = sorted(set(revisions) - referenced)
    assert len(heads) == 1, f"Multiple migration heads detected: {heads}"

    roots = [rev for rev, down in revisions.items() if down is None]
    assert len(roots) == 1, f"Multiple base migrations detected: {roots}"

    seen: list[str] = []
    current: str | None = heads[0]
    while current:
        assert current not in seen, f"Cycle in migration chain at {current}"
        seen.append(current)
        current = revisions[current]
    assert set(seen) == set(revisions)


def _alembic_config(db_path: Path) -> Config:
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")
    return config


def test_upgrade_head_matches_models(tmp_path) -> None:
    db_path = tmp_path / "migrated.db"
    command.upgrade(_alembic_config(db_path), "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names()) - {"alembic_version"}
        assert tables == set(Base.metadata.tables)

        for table_name, table in Base.metadata.tables.items():
            migrated_columns = {column["name"] for column in inspector.get_columns(table_name)}
            assert migrated_columns == set(table.columns.keys()), table_name

        duel_indexes = {index["name"] for index in inspector.get_indexes("duels")}
        assert "uq_duels_active_code" in duel_indexes
        assert "ix_duels_status_expires_at" in duel_indexes
    finally:
        engine.dispose()


def test_active_code_index_allows_reuse_after_cancel(tmp_path) -> None:
    db_path = tmp_path / "codes.db"
    command.upgrade(_alembic_config(db_path), "head")

    engine = create_engine(f"sqlite:///{db_path}")
    insert_duel = text(
        "INSERT INTO duels (duel_id, code, creator_id, max_participants, difficulty, stake, "
        "question_ids, status, created_at, updated_at, expires_at) VALUES "
        "(:duel_id, 'ABCDEF', :creator_id, 2, 'MOYEN', 10, '[]', :status, "
        "'2025-03-01 12:00:00', '2025-03-01 12:00:00', '2025-03-01 12:30:00')"
    )
    try:
        with engine.begin() as conn:
            conn.execute(
                text("INSERT INTO users (user_id, email, first_name, last_name, stars, created_at) "
                     "VALUES ('u1', 'u1@example.com', 'A', 'B', 100, '2025-03-01 12:00:00')")
            )
            conn.execute(insert_duel, {"duel_id": "d1", "creator_id": "u1", "status": "CANCELLED"})
            conn.execute(insert_duel, {"duel_id": "d2", "creator_id": "u1", "status": "WAITING"})

        with pytest.raises(IntegrityError):
            with engine.begin() as conn:
                conn.execute(insert_duel, {"duel_id": "d3", "creator_id": "u1", "status": "READY"})
    finally:
        engine.dispose()
