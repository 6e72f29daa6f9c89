"""initial commerce schema: cart, chat, orders, coins, escrow and payouts

Revision ID: 5b1d0c2e7a91
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '5b1d0c2e7a91'
down_revision = None
branch_labels = None
depends_on = None

BIGINT = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade():
    op.create_table(
        'user_profile',
        sa.Column('id', BIGINT, primary_key=True),
        sa.Column('display_name', sa.String(100)),
        sa.Column('full_name', sa.String(100)),
        sa.Column('coin_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('escrow_balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('loyalty_enabled', sa.Boolean()),
        sa.Column('loyalty_percentage', sa.Integer()),
        sa.Column('bank_name', sa.String(100)),
        sa.Column('bank_code', sa.String(20)),
        sa.Column('account_number', sa.String(20)),
        sa.Column('account_name', sa.String(120)),
        sa.Column('recipient_code', sa.String(64)),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
        sa.CheckConstraint('coin_balance >= 0', name='ck_user_coin_balance_non_negative'),
        sa.CheckConstraint('escrow_balance >= 0', name='ck_user_escrow_balance_non_negative'),
    )
    op.create_table(
        'product',
        sa.Column('id', BIGINT, primary_key=True),
        sa.Column('seller_id', BIGINT, sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('stock_quantity', sa.Integer()),
        sa.Column('image_url', sa.String(255)),
        sa.Column('is_active', sa.Boolean()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_product_seller_id', 'product', ['seller_id'])
    op.create_table(
        'cart_state',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('storage_key', sa.String(120), nullable=False, unique=True),
        sa.Column('user_id', BIGINT, sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_cart_state_user_id', 'cart_state', ['user_id'])
    op.create_table(
        'chat_thread',
        sa.Column('id', BIGINT, primary_key=True),
        sa.Column('buyer_id', BIGINT, sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('seller_id', BIGINT, sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
        sa.UniqueConstraint('buyer_id', 'seller_id', name='uq_chat_thread_buyer_seller'),
    )
    op.create_index('ix_chat_thread_seller_id', 'chat_thread', ['seller_id'])
    op.create_table(
        'message',
        sa.Column('id', BIGINT, primary_key=True),
        sa.Column('chat_id', BIGINT, sa.ForeignKey('chat_thread.id'), nullable=False),
        sa.Column('sender_id', BIGINT, sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_system', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_message_chat_id', 'message', ['chat_id'])
    op.create_table(
        'orders',
        sa.Column('id', BIGINT, primary_key=True),
        sa.Column('buyer_id', BIGINT, sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('seller_id', BIGINT, sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('chat_id', BIGINT, sa.ForeignKey('chat_thread.id')),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('coin_redeemed', sa.Integer(), nullable=False),
        sa.Column('delivery_address', sa.Text(), nullable=False),
        sa.Column('idempotency_key', sa.String(80)),
        sa.Column('completed_at', sa.DateTime()),
        sa.Column('payout_eligible_at', sa.DateTime()),
        sa.Column('payout_status', sa.String(20)),
        sa.Column('payout_error_log', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('buyer_id', 'idempotency_key', name='uq_orders_buyer_idempotency'),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_non_negative'),
    )
    op.create_index('ix_orders_buyer_id', 'orders', ['buyer_id'])
    op.create_index('ix_orders_seller_status', 'orders', ['seller_id', 'status'])
    op.create_index('ix_orders_payout_due', 'orders', ['status', 'payout_status', 'payout_eligible_at'])
    op.create_table(
        'order_item',
        sa.Column('id', BIGINT, primary_key=True),
        sa.Column('order_id', BIGINT, sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('product_id', BIGINT, sa.ForeignKey('product.id'), nullable=False),
        sa.Column('name', sa.String(150)),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
    )
    op.create_index('ix_order_item_order_id', 'order_item', ['order_id'])
    op.create_table(
        'order_status_log',
        sa.Column('id', BIGINT, primary_key=True),
        sa.Column('order_id', BIGINT, sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('from_status', sa.String(20)),
        sa.Column('to_status', sa.String(20), nullable=False),
        sa.Column('actor_id', BIGINT),
        sa.Column('actor_role', sa.String(10), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_order_status_log_order_id', 'order_status_log', ['order_id'])
    op.create_table(
        'dispute',
        sa.Column('id', BIGINT, primary_key=True),
        sa.Column('order_id', BIGINT, sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('raised_by', BIGINT, sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('reason', sa.String(120), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('status', sa.String(20)),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_dispute_order_id', 'dispute', ['order_id'])
    op.create_table(
        'coin_transaction',
        sa.Column('id', BIGINT, primary_key=True),
        sa.Column('user_id', BIGINT, sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('direction', sa.String(6), nullable=False),
        sa.Column('reference_order_id', BIGINT, sa.ForeignKey('orders.id')),
        sa.Column('note', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('amount > 0', name='ck_coin_transaction_amount_positive'),
    )
    op.create_index('ix_coin_transaction_user_id', 'coin_transaction', ['user_id'])
    op.create_index('ix_coin_transaction_reference_order_id', 'coin_transaction', ['reference_order_id'])
    op.create_table(
        'payout',
        sa.Column('id', BIGINT, primary_key=True),
        sa.Column('kind', sa.String(12), nullable=False),
        sa.Column('order_id', BIGINT, sa.ForeignKey('orders.id')),
        sa.Column('user_id', BIGINT, sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('bank_name', sa.String(100)),
        sa.Column('account_number', sa.String(20)),
        sa.Column('account_name', sa.String(120)),
        sa.Column('recipient_code', sa.String(64)),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('reference', sa.String(64), nullable=False, unique=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_attempt_at', sa.DateTime()),
        sa.Column('last_error', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_payout_order_id', 'payout', ['order_id'])
    op.create_index('ix_payout_user_id', 'payout', ['user_id'])
    op.create_index('ix_payout_status_next_attempt', 'payout', ['status', 'next_attempt_at'])
    op.create_table(
        'escrow_ledger_entry',
        sa.Column('id', BIGINT, primary_key=True),
        sa.Column('user_id', BIGINT, sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('direction', sa.String(6), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('reference', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_escrow_ledger_entry_user_id', 'escrow_ledger_entry', ['user_id'])


def downgrade():
    for table in (
        'escrow_ledger_entry',
        'payout',
        'coin_transaction',
        'dispute',
        'order_status_log',
        'order_item',
        'orders',
        'message',
        'chat_thread',
        'cart_state',
        'product',
        'user_profile',
    ):
        op.drop_table(table)
