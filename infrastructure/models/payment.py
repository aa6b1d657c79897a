"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Boolean, Column, Integer, String, Numeric, DateTime, Text, JSON,
    Index, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class PaymentIntentModel(Base):
    """
    支付意图数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.PaymentIntent 中
    """
    __tablename__ = "payment_intents"

    id = Column(Integer, primary_key=True, index=True)

    # 订单信息：一个订单至多一个支付意图
    order_id = Column(Integer, unique=True, index=True, nullable=False, comment="订单ID")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="支付金额")
    currency = Column(String(3), nullable=False, comment="货币代码 ISO-4217")
    refunded_amount = Column(
        Numeric(precision=15, scale=2),
        nullable=False,
        default=0,
        comment="累计退款金额"
    )

    method = Column(String(50), nullable=False, comment="支付方式")
    status = Column(String(50), nullable=False, default="created", index=True, comment="支付状态")

    # 渠道信息
    provider = Column(String(50), nullable=False, comment="支付渠道")
    external_reference = Column(String(100), nullable=True, unique=True, comment="渠道参考号")

    # 卡信息（仅卡支付）
    card_brand = Column(String(20), nullable=True, comment="卡组织")
    card_last4 = Column(String(4), nullable=True, comment="卡号末四位")
    requires_three_d_secure = Column(Boolean, nullable=False, default=False, comment="是否需要3DS")

    # 分期
    installment_count = Column(Integer, nullable=True, comment="分期数")
    installment_amount = Column(Numeric(precision=15, scale=2), nullable=True, comment="单期金额")

    failure_reason = Column(Text, nullable=True, comment="失败/取消原因")
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    authorized_at = Column(DateTime(timezone=True), nullable=True, comment="授权时间")
    captured_at = Column(DateTime(timezone=True), nullable=True, comment="捕获时间")
    failed_at = Column(DateTime(timezone=True), nullable=True, comment="失败时间")
    cancelled_at = Column(DateTime(timezone=True), nullable=True, comment="取消时间")
    refunded_at = Column(DateTime(timezone=True), nullable=True, comment="最近退款时间")
    expires_at = Column(DateTime(timezone=True), nullable=True, comment="过期时间")

    events = relationship("PaymentEventModel", back_populates="intent", lazy="select")

    __table_args__ = (
        Index("ix_payment_intents_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentIntentModel(id={self.id}, order_id={self.order_id}, "
            f"amount={self.amount}, status='{self.status}')>"
        )


class PaymentEventModel(Base):
    """
    支付审计事件模型（只追加）
    """
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    intent_id = Column(
        Integer,
        ForeignKey("payment_intents.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="支付意图ID"
    )
    event_type = Column(String(50), nullable=False, comment="事件类型")
    status = Column(String(50), nullable=False, comment="事件发生后的状态")
    source = Column(String(20), nullable=False, default="api", comment="事件来源")
    payload = Column(JSON, nullable=True, comment="事件载荷")
    created_at = Column(DateTime(timezone=True), nullable=False, comment="创建时间")

    intent = relationship("PaymentIntentModel", back_populates="events")

    __table_args__ = (
        Index("ix_payment_events_intent_created", "intent_id", "created_at", "id"),
    )

    def __repr__(self):
        return f"<PaymentEventModel(id={self.id}, intent_id={self.intent_id}, type='{self.event_type}')>"
