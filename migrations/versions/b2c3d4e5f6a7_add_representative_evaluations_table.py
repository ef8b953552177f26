"""Add representative_evaluations table.

Revision ID: b2c3d4e5f6a7
Revises: a1b2c3d4e5f6
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b2c3d4e5f6a7'
down_revision = 'a1b2c3d4e5f6'
branch_labels = None
depends_on = None


def upgrade():
    """Create representative_evaluations for monthly scorecards."""
    op.create_table(
        'representative_evaluations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('representative_id', sa.String(64), nullable=False),
        sa.Column('period_month', sa.Date(), nullable=False),
        sa.Column('visits_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deal_closing_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('punctuality_score', sa.Numeric(3, 2), nullable=False, server_default='0'),
        sa.Column('customer_satisfaction', sa.Numeric(3, 2), nullable=False, server_default='0'),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('total_points', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('representative_id', 'period_month', name='uq_representative_evaluation_month'),
    )
    op.create_index(
        'ix_representative_evaluations_period_points',
        'representative_evaluations',
        ['period_month', 'total_points']
    )


def downgrade():
    """Drop representative_evaluations."""
    op.drop_index('ix_representative_evaluations_period_points', table_name='representative_evaluations')
    op.drop_table('representative_evaluations')
