"""add_payment_intents_tables

Revision ID: 3b9c4e1f7a25
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b9c4e1f7a25'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create payment_intents table
    op.create_table(
        'payment_intents',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='订单ID'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='支付金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码 ISO-4217'),
        sa.Column('refunded_amount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0', comment='累计退款金额'),
        sa.Column('method', sa.String(length=50), nullable=False, comment='支付方式'),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='created', comment='支付状态'),
        sa.Column('provider', sa.String(length=50), nullable=False, comment='支付渠道'),
        sa.Column('external_reference', sa.String(length=100), nullable=True, comment='渠道参考号'),
        sa.Column('card_brand', sa.String(length=20), nullable=True, comment='卡组织'),
        sa.Column('card_last4', sa.String(length=4), nullable=True, comment='卡号末四位'),
        sa.Column('requires_three_d_secure', sa.Boolean(), nullable=False, server_default=sa.false(), comment='是否需要3DS'),
        sa.Column('installment_count', sa.Integer(), nullable=True, comment='分期数'),
        sa.Column('installment_amount', sa.Numeric(precision=15, scale=2), nullable=True, comment='单期金额'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败/取消原因'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.Column('authorized_at', sa.DateTime(timezone=True), nullable=True, comment='授权时间'),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=True, comment='捕获时间'),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True, comment='失败时间'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True, comment='取消时间'),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True, comment='最近退款时间'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True, comment='过期时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_reference', name='uq_payment_intents_external_reference'),
        sa.CheckConstraint('refunded_amount >= 0 AND refunded_amount <= amount', name='ck_payment_intents_refund_range'),
        comment='支付意图表，每个订单至多一条'
    )

    # Create indexes
    op.create_index('ix_payment_intents_id', 'payment_intents', ['id'], unique=False)
    op.create_index('ix_payment_intents_order_id', 'payment_intents', ['order_id'], unique=True)
    op.create_index('ix_payment_intents_status', 'payment_intents', ['status'], unique=False)
    op.create_index('ix_payment_intents_created_at', 'payment_intents', ['created_at'], unique=False)

    # Create payment_events table (append-only)
    op.create_table(
        'payment_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('intent_id', sa.Integer(), nullable=False, comment='支付意图ID'),
        sa.Column('event_type', sa.String(length=50), nullable=False, comment='事件类型'),
        sa.Column('status', sa.String(length=50), nullable=False, comment='事件发生后的状态'),
        sa.Column('source', sa.String(length=20), nullable=False, server_default='api', comment='事件来源'),
        sa.Column('payload', sa.JSON(), nullable=True, comment='事件载荷'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='创建时间'),
        sa.ForeignKeyConstraint(['intent_id'], ['payment_intents.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        comment='支付审计事件表，只追加'
    )
    op.create_index('ix_payment_events_intent_id', 'payment_events', ['intent_id'], unique=False)
    op.create_index('ix_payment_events_intent_created', 'payment_events', ['intent_id', 'created_at', 'id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_payment_events_intent_created', table_name='payment_events')
    op.drop_index('ix_payment_events_intent_id', table_name='payment_events')
    op.drop_table('payment_events')

    op.drop_index('ix_payment_intents_created_at', table_name='payment_intents')
    op.drop_index('ix_payment_intents_status', table_name='payment_intents')
    op.drop_index('ix_payment_intents_order_id', table_name='payment_intents')
    op.drop_index('ix_payment_intents_id', table_name='payment_intents')
    op.drop_table('payment_intents')
