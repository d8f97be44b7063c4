"""Create duel and duel participant tables."""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from quizduel.migrations.util import get_uuid_type, get_timestamp_default

# revision identifiers, used by Alembic.
revision: str = '002_duels'
down_revision: Union[str, None] = '001_users_and_quiz_content'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_CODE_PREDICATE = "status IN ('WAITING', 'READY', 'PLAYING')"


def upgrade() -> None:
    uuid = get_uuid_type()
    timestamp_default = get_timestamp_default()

    op.create_table(
        'duels',
        sa.Column('duel_id', uuid, primary_key=True),
        sa.Column('code', sa.String(length=8), nullable=False),
        sa.Column('creator_id', uuid, sa.ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False),
        sa.Column('max_participants', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('difficulty', sa.String(length=20), nullable=False),
        sa.Column('stake', sa.Integer(), nullable=False),
        sa.Column('question_ids', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='WAITING'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=timestamp_default),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=timestamp_default),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('max_participants BETWEEN 2 AND 4', name='ck_duels_max_participants'),
        sa.CheckConstraint('stake > 0', name='ck_duels_stake_positive'),
    )
    op.create_index('ix_duels_code', 'duels', ['code'])
    op.create_index('ix_duels_creator_id', 'duels', ['creator_id'])
    op.create_index('ix_duels_status', 'duels', ['status'])
    op.create_index('ix_duels_status_expires_at', 'duels', ['status', 'expires_at'])
    op.create_index(
        'uq_duels_active_code',
        'duels',
        ['code'],
        unique=True,
        sqlite_where=sa.text(ACTIVE_CODE_PREDICATE),
        postgresql_where=sa.text(ACTIVE_CODE_PREDICATE),
    )

    op.create_table(
        'duel_participants',
        sa.Column('participant_id', uuid, primary_key=True),
        sa.Column('duel_id', uuid, sa.ForeignKey('duels.duel_id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', uuid, sa.ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False, server_default=timestamp_default),
        sa.Column('answers', sa.JSON(), nullable=True),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('correct_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('stars_won', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('duel_id', 'user_id', name='uq_duel_participants_duel_user'),
    )
    op.create_index('ix_duel_participants_duel_id', 'duel_participants', ['duel_id'])
    op.create_index('ix_duel_participants_user_id', 'duel_participants', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_duel_participants_user_id', table_name='duel_participants')
    op.drop_index('ix_duel_participants_duel_id', table_name='duel_participants')
    op.drop_table('duel_participants')
    for index_name in (
        'uq_duels_active_code',
        'ix_duels_status_expires_at',
        'ix_duels_status',
        'ix_duels_creator_id',
        'ix_duels_code',
    ):
        op.drop_index(index_name, table_name='duels')
    op.drop_table('duels')
