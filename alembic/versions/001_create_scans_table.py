"""create_scans_table

Revision ID: 001
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


scan_status = sa.Enum('pending', 'completed', 'failed', name='scan_status')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'scans',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('status', scan_status, nullable=False),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('result_json', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('score IS NULL OR (score >= 0 AND score <= 100)', name='check_score_range'),
        sa.CheckConstraint(
            "(status = 'completed' AND score IS NOT NULL) OR (status != 'completed' AND score IS NULL)",
            name='check_score_iff_completed'
        ),
        sa.CheckConstraint(
            "(status = 'pending' AND completed_at IS NULL) OR (status != 'pending' AND completed_at IS NOT NULL)",
            name='check_completed_at_iff_terminal'
        ),
        sa.CheckConstraint("error IS NULL OR status = 'failed'", name='check_error_only_when_failed'),
    )
    op.create_index(op.f('ix_scans_id'), 'scans', ['id'], unique=False)
    op.create_index(op.f('ix_scans_user_id'), 'scans', ['user_id'], unique=False)
    op.create_index(op.f('ix_scans_url'), 'scans', ['url'], unique=False)
    op.create_index(op.f('ix_scans_status'), 'scans', ['status'], unique=False)
    op.create_index('idx_scans_url_status_completed', 'scans', ['url', 'status', 'completed_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_scans_url_status_completed', table_name='scans')
    op.drop_index(op.f('ix_scans_status'), table_name='scans')
    op.drop_index(op.f('ix_scans_url'), table_name='scans')
    op.drop_index(op.f('ix_scans_user_id'), table_name='scans')
    op.drop_index(op.f('ix_scans_id'), table_name='scans')
    op.drop_table('scans')
    scan_status.drop(op.get_bind(), checkfirst=True)
