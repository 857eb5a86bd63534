"""Add entries.status and operator columns on selection_runs

Revision ID: 8b2e4c6d1a57
Revises: 3f1c9a7d2e10
Create Date: 2026-10-19 15:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b2e4c6d1a57'
down_revision: Union[str, Sequence[str], None] = '3f1c9a7d2e10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    with op.batch_alter_table('entries') as batch_op:
        batch_op.add_column(
            sa.Column(
                'status', sa.String(length=20), nullable=False,
                server_default='submitted',
            )
        )
        batch_op.create_check_constraint(
            'ck_entries_entry_status_enum',
            "status IN ('draft','submitted','entered','withdrawn','disqualified')",
        )

    with op.batch_alter_table('selection_runs') as batch_op:
        batch_op.add_column(sa.Column('selected_by', sa.String(length=64), nullable=True))
        batch_op.add_column(sa.Column('revoked_by', sa.String(length=64), nullable=True))


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('selection_runs') as batch_op:
        batch_op.drop_column('revoked_by')
        batch_op.drop_column('selected_by')

    with op.batch_alter_table('entries') as batch_op:
        batch_op.drop_constraint('ck_entries_entry_status_enum', type_='check')
        batch_op.drop_column('status')
