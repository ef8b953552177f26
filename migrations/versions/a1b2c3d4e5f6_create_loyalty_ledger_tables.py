"""Create loyalty accounts, ledger and settings tables.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create loyalty_accounts, loyalty_transactions and loyalty_settings."""
    op.create_table(
        'loyalty_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('account_id', sa.String(64), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_redeemed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_activity_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role', 'account_id', name='uq_loyalty_account_role_id'),
        sa.CheckConstraint('balance >= 0', name='ck_loyalty_account_balance_non_negative'),
    )
    op.create_index('ix_loyalty_accounts_role_balance', 'loyalty_accounts', ['role', 'balance'])

    op.create_table(
        'loyalty_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('account_id', sa.String(64), nullable=False),
        sa.Column('kind', sa.String(30), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('source_order_id', sa.String(100), nullable=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('points <> 0', name='ck_loyalty_transaction_points_nonzero'),
    )
    op.create_index(
        'ix_loyalty_transactions_account_created',
        'loyalty_transactions',
        ['role', 'account_id', 'created_at']
    )
    op.create_index(
        'uq_loyalty_transaction_order_accrual',
        'loyalty_transactions',
        ['role', 'account_id', 'source_order_id'],
        unique=True,
        postgresql_where=sa.text("kind = 'earned'"),
        sqlite_where=sa.text("kind = 'earned'"),
    )

    op.create_table(
        'loyalty_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('value', sa.String(500), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
    )

    # Default points-per-order rule
    settings = sa.table(
        'loyalty_settings',
        sa.column('key', sa.String),
        sa.column('value', sa.String),
        sa.column('description', sa.String),
    )
    op.bulk_insert(settings, [
        {'key': 'customer_points_per_order', 'value': '10',
         'description': 'Points credited to the customer per completed order'},
        {'key': 'representative_points_per_order', 'value': '10',
         'description': 'Points credited to the representative per completed order'},
    ])


def downgrade():
    """Drop loyalty tables."""
    op.drop_table('loyalty_settings')
    op.drop_index('uq_loyalty_transaction_order_accrual', table_name='loyalty_transactions')
    op.drop_index('ix_loyalty_transactions_account_created', table_name='loyalty_transactions')
    op.drop_table('loyalty_transactions')
    op.drop_index('ix_loyalty_accounts_role_balance', table_name='loyalty_accounts')
    op.drop_table('loyalty_accounts')
