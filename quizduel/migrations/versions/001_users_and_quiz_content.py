"""Create users, star ledger and quiz content tables."""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from quizduel.migrations.util import get_uuid_type, get_timestamp_default

# revision identifiers, used by Alembic.
revision: str = '001_users_and_quiz_content'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    uuid = get_uuid_type()
    timestamp_default = get_timestamp_default()

    op.create_table(
        'users',
        sa.Column('user_id', uuid, primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('first_name', sa.String(length=100), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(length=100), nullable=False, server_default=''),
        sa.Column('avatar', sa.String(length=500), nullable=True),
        sa.Column('stars', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=timestamp_default),
        sa.CheckConstraint('stars >= 0', name='ck_users_stars_non_negative'),
    )

    op.create_table(
        'transactions',
        sa.Column('transaction_id', uuid, primary_key=True),
        sa.Column('user_id', uuid, sa.ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('reference_id', uuid, nullable=True),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=timestamp_default),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_type', 'transactions', ['type'])
    op.create_index('ix_transactions_reference_id', 'transactions', ['reference_id'])
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])

    op.create_table(
        'quizzes',
        sa.Column('quiz_id', uuid, primary_key=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('difficulty', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=timestamp_default),
    )
    op.create_index('ix_quizzes_difficulty', 'quizzes', ['difficulty'])

    op.create_table(
        'questions',
        sa.Column('question_id', uuid, primary_key=True),
        sa.Column('quiz_id', uuid, sa.ForeignKey('quizzes.quiz_id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=10), nullable=False, server_default='QCU'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=timestamp_default),
    )
    op.create_index('ix_questions_quiz_id', 'questions', ['quiz_id'])

    op.create_table(
        'question_options',
        sa.Column('option_id', uuid, primary_key=True),
        sa.Column('question_id', uuid, sa.ForeignKey('questions.question_id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.String(length=500), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index(
        'ix_question_options_question_correct', 'question_options', ['question_id', 'is_correct']
    )


def downgrade() -> None:
    op.drop_index('ix_question_options_question_correct', table_name='question_options')
    op.drop_table('question_options')
    op.drop_index('ix_questions_quiz_id', table_name='questions')
    op.drop_table('questions')
    op.drop_index('ix_quizzes_difficulty', table_name='quizzes')
    op.drop_table('quizzes')
    for index_name in (
        'ix_transactions_created_at',
        'ix_transactions_reference_id',
        'ix_transactions_type',
        'ix_transactions_user_id',
    ):
        op.drop_index(index_name, table_name='transactions')
    op.drop_table('transactions')
    op.drop_table('users')
