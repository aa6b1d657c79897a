"""
订单表映射（只读金额，写状态）

订单由订单上下文维护，此处仅映射支付流程需要的列。
"""
from sqlalchemy import Column, DateTime, Integer, Numeric, String

from .base import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    buyer_id = Column(Integer, nullable=False, index=True, comment="买家ID")
    total_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="订单总额")
    currency = Column(String(3), nullable=False, default="TRY", comment="货币代码")
    status = Column(String(50), nullable=False, default="pending", comment="订单状态")
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")

    def __repr__(self):
        return f"<OrderModel(id={self.id}, total_amount={self.total_amount}, status='{self.status}')>"
