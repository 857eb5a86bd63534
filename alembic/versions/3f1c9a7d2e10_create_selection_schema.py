"""Create users, targets, entries, selection_runs and winner_records

Revision ID: 3f1c9a7d2e10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), 'sqlite')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
        sa.Column('id', ID_TYPE, autoincrement=True, nullable=False),
        sa.Column('in_app_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('in_app_id', name='uq_users_in_app_id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table('targets',
        sa.Column('id', ID_TYPE, autoincrement=True, nullable=False),
        sa.Column('target_type', sa.String(length=20), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('active_run_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "target_type IN ('contest','giveaway')",
            name='ck_targets_target_type_enum',
        ),
        sa.CheckConstraint(
            "status IN ('open','closed','selection-finalized','selection-forced-redo')",
            name='ck_targets_target_status_enum',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_targets'),
    )
    op.create_index('ix_targets_type_status', 'targets', ['target_type', 'status'])

    op.create_table('entries',
        sa.Column('id', ID_TYPE, autoincrement=True, nullable=False),
        sa.Column('target_id', ID_TYPE, nullable=False),
        sa.Column('user_id', ID_TYPE, nullable=False),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('participation_count', sa.Integer(), nullable=False),
        sa.Column('engagement_count', sa.Integer(), nullable=False),
        sa.Column('quality_rating', sa.Float(), nullable=True),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('is_winner', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'score IS NULL OR (score >= 0 AND score <= 100)',
            name='ck_entries_entry_score_range',
        ),
        sa.CheckConstraint(
            'participation_count >= 0 AND engagement_count >= 0',
            name='ck_entries_entry_counts_non_negative',
        ),
        sa.ForeignKeyConstraint(
            ['target_id'], ['targets.id'],
            name='fk_entries_target_id_targets', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['user_id'], ['users.id'],
            name='fk_entries_user_id_users', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_entries'),
    )
    op.create_index('ix_entries_user_id', 'entries', ['user_id'])
    op.create_index(
        'ix_entries_target_created', 'entries', ['target_id', 'created_at', 'id']
    )

    op.create_table('selection_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('run_key', sa.String(length=32), nullable=False),
        sa.Column('target_id', ID_TYPE, nullable=False),
        sa.Column('method', sa.String(length=20), nullable=False),
        sa.Column('requested_method', sa.String(length=20), nullable=False),
        sa.Column('max_winners', sa.Integer(), nullable=False),
        sa.Column('eligible_count', sa.Integer(), nullable=False),
        sa.Column('selected_count', sa.Integer(), nullable=False),
        sa.Column('shortfall', sa.Integer(), nullable=False),
        sa.Column('seed', sa.String(length=64), nullable=True),
        sa.Column('fallback_reason', sa.Text(), nullable=True),
        sa.Column('criteria', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('forced', sa.Boolean(), nullable=False),
        sa.Column('superseded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['target_id'], ['targets.id'],
            name='fk_selection_runs_target_id_targets', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_selection_runs'),
        sa.UniqueConstraint('run_key', name='uq_selection_runs_run_key'),
    )
    op.create_index('ix_selection_runs_target_id', 'selection_runs', ['target_id'])
    op.create_index(
        'uq_selection_runs_one_active',
        'selection_runs',
        ['target_id'],
        unique=True,
        sqlite_where=sa.text('is_active = 1'),
        postgresql_where=sa.text('is_active'),
    )

    op.create_table('winner_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('run_id', sa.Integer(), nullable=False),
        sa.Column('target_id', ID_TYPE, nullable=False),
        sa.Column('target_type', sa.String(length=20), nullable=False),
        sa.Column('entry_id', ID_TYPE, nullable=False),
        sa.Column('user_id', ID_TYPE, nullable=False),
        sa.Column('method', sa.String(length=20), nullable=False),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=False),
        sa.Column('selection_reason', sa.String(length=255), nullable=False),
        sa.Column('prize_claim_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['run_id'], ['selection_runs.id'],
            name='fk_winner_records_run_id_selection_runs', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['target_id'], ['targets.id'],
            name='fk_winner_records_target_id_targets', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['entry_id'], ['entries.id'],
            name='fk_winner_records_entry_id_entries', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['user_id'], ['users.id'],
            name='fk_winner_records_user_id_users', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_winner_records'),
        sa.UniqueConstraint('run_id', 'rank', name='uq_winner_records_run_rank'),
        sa.UniqueConstraint('run_id', 'entry_id', name='uq_winner_records_run_entry'),
    )
    op.create_index('ix_winner_records_target_id', 'winner_records', ['target_id'])
    op.create_index('ix_winner_records_user_id', 'winner_records', ['user_id'])
    op.create_index('ix_winner_records_method', 'winner_records', ['method'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('winner_records')
    op.drop_table('selection_runs')
    op.drop_table('entries')
    op.drop_table('targets')
    op.drop_table('users')
