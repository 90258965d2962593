"""create_escrow_tables

Revision ID: create_escrow_20261001
Revises:
Create Date: 2026-10-01 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'create_escrow_20261001'
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_STATUSES = (
    'PENDING', 'PROCESSING', 'PAID', 'ACCEPTED', 'SHIPPED', 'DELIVERED',
    'COMPLETED', 'DISPUTED', 'CANCELLED', 'REFUNDED', 'EXPIRED',
)
DISPUTE_STATUSES = (
    'OPEN', 'UNDER_REVIEW', 'AWAITING_SELLER', 'AWAITING_BUYER',
    'RESOLVED_BUYER', 'RESOLVED_SELLER', 'CLOSED',
)
WITHDRAWAL_STATUSES = ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'CANCELLED')
REFUND_STATUSES = ('PENDING', 'COMPLETED')
ACTOR_ROLES = ('BUYER', 'SELLER', 'ADMIN', 'SYSTEM')


def _base_columns():
    return [
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'transactions',
        *_base_columns(),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('buyer_id', sa.String(length=64), nullable=True),
        sa.Column('buyer_name', sa.String(length=255), nullable=True),
        sa.Column('buyer_phone', sa.String(length=50), nullable=True),
        sa.Column('buyer_email', sa.String(length=255), nullable=True),
        sa.Column('buyer_address', sa.Text(), nullable=True),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('item_description', sa.Text(), nullable=True),
        sa.Column('item_images', sa.JSON(), nullable=False),
        sa.Column('amount', sa.Numeric(20, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='KES'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('platform_fee', sa.Numeric(20, 2), nullable=True),
        sa.Column('seller_payout', sa.Numeric(20, 2), nullable=True),
        sa.Column('payout_contact', sa.String(length=255), nullable=True),
        sa.Column('payment_method', sa.String(length=50), nullable=True),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('status', sa.Enum(*TRANSACTION_STATUSES, name='transaction_status'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('courier_name', sa.String(length=255), nullable=True),
        sa.Column('tracking_number', sa.String(length=255), nullable=True),
        sa.Column('estimated_delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipping_notes', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='check_transactions_amount_positive'),
        sa.CheckConstraint('quantity > 0', name='check_transactions_quantity_positive'),
        sa.CheckConstraint(
            '(CASE WHEN completed_at IS NOT NULL THEN 1 ELSE 0 END)'
            ' + (CASE WHEN cancelled_at IS NOT NULL THEN 1 ELSE 0 END)'
            ' + (CASE WHEN refunded_at IS NOT NULL THEN 1 ELSE 0 END) <= 1',
            name='check_transactions_single_terminal_timestamp',
        ),
        sa.CheckConstraint('seller_payout IS NULL OR platform_fee IS NOT NULL', name='check_transactions_payout_has_fee'),
    )
    op.create_index(op.f('ix_transactions_id'), 'transactions', ['id'], unique=False)
    op.create_index(op.f('ix_transactions_seller_id'), 'transactions', ['seller_id'], unique=False)
    op.create_index(op.f('ix_transactions_buyer_id'), 'transactions', ['buyer_id'], unique=False)
    op.create_index(op.f('ix_transactions_payment_reference'), 'transactions', ['payment_reference'], unique=True)
    op.create_index(op.f('ix_transactions_status'), 'transactions', ['status'], unique=False)
    op.create_index(op.f('ix_transactions_expires_at'), 'transactions', ['expires_at'], unique=False)
    op.create_index(op.f('ix_transactions_shipped_at'), 'transactions', ['shipped_at'], unique=False)
    op.create_index('ix_transactions_status_expires_at', 'transactions', ['status', 'expires_at'], unique=False)
    op.create_index('ix_transactions_status_shipped_at', 'transactions', ['status', 'shipped_at'], unique=False)

    op.create_table(
        'disputes',
        *_base_columns(),
        sa.Column('transaction_id', sa.String(length=64), nullable=False),
        sa.Column('opened_by_id', sa.String(length=64), nullable=False),
        sa.Column('reason', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('evidence', sa.JSON(), nullable=False),
        sa.Column('status', sa.Enum(*DISPUTE_STATUSES, name='dispute_status'), nullable=False),
        sa.Column('transaction_status_before', sa.String(length=20), nullable=False),
        sa.Column('resolution', sa.Text(), nullable=True),
        sa.Column('resolved_by_id', sa.String(length=64), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], name='fk_disputes_transaction_id'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_disputes_id'), 'disputes', ['id'], unique=False)
    op.create_index(op.f('ix_disputes_transaction_id'), 'disputes', ['transaction_id'], unique=True)
    op.create_index(op.f('ix_disputes_opened_by_id'), 'disputes', ['opened_by_id'], unique=False)
    op.create_index(op.f('ix_disputes_status'), 'disputes', ['status'], unique=False)
    op.create_index(op.f('ix_disputes_deadline'), 'disputes', ['deadline'], unique=False)

    op.create_table(
        'dispute_messages',
        *_base_columns(),
        sa.Column('dispute_id', sa.String(length=64), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.String(length=64), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['dispute_id'], ['disputes.id'], name='fk_dispute_messages_dispute_id'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_dispute_messages_id'), 'dispute_messages', ['id'], unique=False)
    op.create_index(op.f('ix_dispute_messages_dispute_id'), 'dispute_messages', ['dispute_id'], unique=False)
    op.create_index('uq_dispute_messages_sequence', 'dispute_messages', ['dispute_id', 'sequence'], unique=True)

    op.create_table(
        'wallets',
        *_base_columns(),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='KES'),
        sa.Column('available_balance', sa.Numeric(20, 2), nullable=False, server_default='0'),
        sa.Column('pending_balance', sa.Numeric(20, 2), nullable=False, server_default='0'),
        sa.Column('total_earned', sa.Numeric(20, 2), nullable=False, server_default='0'),
        sa.Column('total_spent', sa.Numeric(20, 2), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('available_balance >= 0', name='check_wallets_available_non_negative'),
        sa.CheckConstraint('pending_balance >= 0', name='check_wallets_pending_non_negative'),
        sa.UniqueConstraint('user_id', 'currency', name='uq_wallets_user_currency'),
    )
    op.create_index(op.f('ix_wallets_id'), 'wallets', ['id'], unique=False)
    op.create_index(op.f('ix_wallets_user_id'), 'wallets', ['user_id'], unique=False)

    op.create_table(
        'withdrawals',
        *_base_columns(),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(20, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('account_number', sa.String(length=100), nullable=False),
        sa.Column('platform_fee', sa.Numeric(20, 2), nullable=False),
        sa.Column('provider_fee', sa.Numeric(20, 2), nullable=False),
        sa.Column('fee', sa.Numeric(20, 2), nullable=False),
        sa.Column('net_amount', sa.Numeric(20, 2), nullable=False),
        sa.Column('status', sa.Enum(*WITHDRAWAL_STATUSES, name='withdrawal_status'), nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='check_withdrawals_amount_positive'),
        sa.CheckConstraint('net_amount > 0', name='check_withdrawals_net_positive'),
    )
    op.create_index(op.f('ix_withdrawals_id'), 'withdrawals', ['id'], unique=False)
    op.create_index(op.f('ix_withdrawals_user_id'), 'withdrawals', ['user_id'], unique=False)
    op.create_index(op.f('ix_withdrawals_status'), 'withdrawals', ['status'], unique=False)

    op.create_table(
        'refunds',
        *_base_columns(),
        sa.Column('transaction_id', sa.String(length=64), nullable=False),
        sa.Column('buyer_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(20, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.Enum(*REFUND_STATUSES, name='refund_status'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], name='fk_refunds_transaction_id'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_refunds_id'), 'refunds', ['id'], unique=False)
    op.create_index(op.f('ix_refunds_transaction_id'), 'refunds', ['transaction_id'], unique=True)
    op.create_index(op.f('ix_refunds_buyer_id'), 'refunds', ['buyer_id'], unique=False)
    op.create_index(op.f('ix_refunds_status'), 'refunds', ['status'], unique=False)

    op.create_table(
        'payouts',
        *_base_columns(),
        sa.Column('transaction_id', sa.String(length=64), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(20, 2), nullable=False),
        sa.Column('platform_fee', sa.Numeric(20, 2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='COMPLETED'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], name='fk_payouts_transaction_id'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_payouts_id'), 'payouts', ['id'], unique=False)
    op.create_index(op.f('ix_payouts_transaction_id'), 'payouts', ['transaction_id'], unique=True)
    op.create_index(op.f('ix_payouts_seller_id'), 'payouts', ['seller_id'], unique=False)

    op.create_table(
        'audit_logs',
        *_base_columns(),
        sa.Column('actor_user_id', sa.String(length=64), nullable=True),
        sa.Column('actor_role', sa.Enum(*ACTOR_ROLES, name='actor_role'), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('before', sa.JSON(), nullable=True),
        sa.Column('after', sa.JSON(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('trace_id', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)
    op.create_index(op.f('ix_audit_logs_actor_user_id'), 'audit_logs', ['actor_user_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_actor_role'), 'audit_logs', ['actor_role'], unique=False)
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'], unique=False)
    op.create_index(op.f('ix_audit_logs_entity_type'), 'audit_logs', ['entity_type'], unique=False)
    op.create_index(op.f('ix_audit_logs_entity_id'), 'audit_logs', ['entity_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_trace_id'), 'audit_logs', ['trace_id'], unique=False)


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('payouts')
    op.drop_table('refunds')
    op.drop_table('withdrawals')
    op.drop_table('wallets')
    op.drop_table('dispute_messages')
    op.drop_table('disputes')
    op.drop_table('transactions')
    for enum_name in ('actor_role', 'refund_status', 'withdrawal_status', 'dispute_status', 'transaction_status'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
