"""
Initial bank-feed schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('(CURRENT_TIMESTAMP)')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('(CURRENT_TIMESTAMP)')),
    ]


def upgrade() -> None:
    account_type = sa.Enum('checking', 'savings', 'credit_card', 'cash', 'investment', 'other', name='account_type')
    category_type = sa.Enum('income', 'expense', name='category_type')
    txn_type = sa.Enum('income', 'expense', name='txn_type')
    staging_status = sa.Enum('pending', 'dismissed', 'reconciled', name='staging_status')
    recurring_interval = sa.Enum('monthly', name='recurring_interval')
    check_status = sa.Enum('matched', 'missing', 'pending', name='check_status')
    webhook_log_status = sa.Enum('success', 'error', 'invalid_signature', name='webhook_log_status')

    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
    )

    op.create_table(
        'account',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('type', account_type, nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('current_balance', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('provider_account_id', sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'name', name='uq_account_name'),
    )
    op.create_index('ix_account_provider', 'account', ['provider_account_id'])

    op.create_table(
        'category',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('type', category_type, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'name', name='uq_category_name'),
    )

    op.create_table(
        'transaction',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('account.id', ondelete='CASCADE'), nullable=False),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('category.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('occurred_at', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('type', txn_type, nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('external_id', sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount >= 0', name='ck_txn_amount_unsigned'),
        sa.UniqueConstraint('account_id', 'external_id', name='uq_txn_account_external_id'),
    )
    op.create_index('ix_txn_account_date', 'transaction', ['account_id', 'occurred_at'])

    op.create_table(
        'import_staging',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('account.id', ondelete='CASCADE'), nullable=False),
        sa.Column('occurred_at', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('external_id', sa.String(length=128), nullable=True),
        sa.Column('status', staging_status, nullable=False, server_default='pending'),
        *_timestamps(),
        sa.UniqueConstraint('account_id', 'external_id', name='uq_staging_account_external_id'),
    )
    op.create_index('ix_staging_account_status', 'import_staging', ['account_id', 'status'])

    op.create_table(
        'recurringexpense',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('account.id', ondelete='CASCADE'), nullable=False),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('category.id'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('interval', recurring_interval, nullable=False, server_default='monthly'),
        sa.Column('day_of_month', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('match_pattern', sa.String(length=200), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('day_of_month BETWEEN 1 AND 31', name='ck_recurring_day_of_month'),
        sa.UniqueConstraint('user_id', 'name', name='uq_recurring_expense_name'),
    )

    op.create_table(
        'recurringexpensecheck',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('recurring_expense_id', sa.Integer(), sa.ForeignKey('recurringexpense.id', ondelete='CASCADE'), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('expected_date', sa.Date(), nullable=False),
        sa.Column('status', check_status, nullable=False),
        sa.Column('transaction_id', sa.Integer(), sa.ForeignKey('transaction.id', ondelete='SET NULL'), nullable=True),
        sa.Column('matched_date', sa.Date(), nullable=True),
        sa.Column('matched_amount', sa.Numeric(18, 2), nullable=True),
        sa.Column('days_overdue', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint('recurring_expense_id', 'year', 'month', name='uq_recurring_check_period'),
        sa.UniqueConstraint('transaction_id', name='uq_recurring_check_transaction'),
    )

    op.create_table(
        'webhook',
        sa.Column('id', sa.String(length=36), primary_key=True, nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('secret', sa.String(length=255), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'webhook_log',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('webhook_id', sa.String(length=36), sa.ForeignKey('webhook.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', webhook_log_status, nullable=False),
        sa.Column('request_body', sa.JSON(), nullable=True),
        sa.Column('response_body', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('processing_time_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('(CURRENT_TIMESTAMP)')),
    )
    op.create_index('ix_webhook_log_webhook_created', 'webhook_log', ['webhook_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_webhook_log_webhook_created', table_name='webhook_log')
    op.drop_table('webhook_log')
    op.drop_table('webhook')
    op.drop_table('recurringexpensecheck')
    op.drop_table('recurringexpense')
    op.drop_index('ix_staging_account_status', table_name='import_staging')
    op.drop_table('import_staging')
    op.drop_index('ix_txn_account_date', table_name='transaction')
    op.drop_table('transaction')
    op.drop_table('category')
    op.drop_index('ix_account_provider', table_name='account')
    op.drop_table('account')
    op.drop_table('user')
