"""Create billing tables

Revision ID: 0001_billing_tables
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_billing_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create plans, users, payment methods, subscriptions, transactions and billing history."""

    op.create_table(
        'plans',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('description', sa.String()),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(), nullable=False, server_default='INR'),
        sa.Column('interval', sa.String(), nullable=False, server_default='MONTH'),
        sa.Column('interval_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('trial_period_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('limits', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        sa.Column('is_popular', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gateway_plan_id', sa.String()),
        *_timestamps(),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String()),
        sa.Column('wallet_balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('plan_id', sa.UUID(), sa.ForeignKey('plans.id')),
        sa.Column('subscription_status', sa.String()),
        sa.Column('subscription_start_date', sa.DateTime(timezone=True)),
        sa.Column('subscription_end_date', sa.DateTime(timezone=True)),
        sa.Column('next_billing_date', sa.DateTime(timezone=True)),
        sa.Column('trial_ends_at', sa.DateTime(timezone=True)),
        sa.Column('invoice_usage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gateway_customer_id', sa.String(), index=True),
        *_timestamps(),
        sa.CheckConstraint('wallet_balance >= 0', name='ck_users_wallet_balance_non_negative'),
    )

    op.create_table(
        'payment_methods',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('user_id', sa.UUID(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('expiry_date', sa.DateTime(timezone=True)),
        sa.Column('last_used', sa.DateTime(timezone=True)),
        *_timestamps(),
    )

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('user_id', sa.UUID(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('plan_id', sa.UUID(), sa.ForeignKey('plans.id'), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='INCOMPLETE', index=True),

        # Billing period dates
        sa.Column('current_period_start', sa.DateTime(timezone=True)),
        sa.Column('current_period_end', sa.DateTime(timezone=True)),
        sa.Column('trial_start', sa.DateTime(timezone=True)),
        sa.Column('trial_end', sa.DateTime(timezone=True)),
        sa.Column('canceled_at', sa.DateTime(timezone=True)),
        sa.Column('auto_renew', sa.Boolean(), nullable=False, server_default=sa.true()),

        # Gateway subscription id
        sa.Column('external_id', sa.String(), unique=True, index=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'transactions',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('reference', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('user_id', sa.UUID(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(), nullable=False, server_default='INR'),
        sa.Column('status', sa.String(), nullable=False, server_default='PROCESSING', index=True),
        sa.Column('payment_method', sa.String()),
        sa.Column('description', sa.String()),
        sa.Column('failure_reason', sa.String()),
        sa.Column('processed_at', sa.DateTime(timezone=True)),
        sa.Column('metadata', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='ck_transactions_amount_positive'),
    )

    op.create_table(
        'billing_history',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('user_id', sa.UUID(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('subscription_id', sa.UUID(), sa.ForeignKey('subscriptions.id'), index=True),
        # One row per charge: these two columns carry the deduplication
        sa.Column('transaction_id', sa.UUID(), sa.ForeignKey('transactions.id'), unique=True),
        sa.Column('external_payment_id', sa.String(), unique=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(), nullable=False, server_default='INR'),
        sa.Column('status', sa.String(), nullable=False, server_default='PAID'),
        sa.Column('plan_name', sa.String()),
        sa.Column('billing_reason', sa.String(), nullable=False),
        sa.Column('description', sa.String()),
        sa.Column('period_start', sa.DateTime(timezone=True)),
        sa.Column('period_end', sa.DateTime(timezone=True)),
        sa.Column('paid_at', sa.DateTime(timezone=True)),
        sa.Column('invoice_number', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('payment_method', sa.String()),
        sa.Column('metadata', sa.JSON(), nullable=False),
        *_timestamps(),
    )


def downgrade() -> None:
    """Drop billing tables."""
    op.drop_table('billing_history')
    op.drop_table('transactions')
    op.drop_table('subscriptions')
    op.drop_table('payment_methods')
    op.drop_table('users')
    op.drop_table('plans')
