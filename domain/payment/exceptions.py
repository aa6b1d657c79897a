"""
支付领域异常

NotFound 类异常映射为 404，状态迁移与金额类异常映射为 400（见 core.exceptions）。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentIntentAlreadyExistsException(BusinessException):
    """订单已存在支付意图（唯一约束冲突）"""

    def __init__(self, order_id: int):
        super().__init__(
            code=PaymentCode.INTENT_ALREADY_EXISTS,
            message=f"Payment intent already exists for order {order_id}",
            error_type="PaymentIntentAlreadyExists",
            details={"order_id": order_id},
        )


class PaymentIntentNotFoundException(BusinessException):
    """支付意图不存在"""

    def __init__(self, identifier: str):
        super().__init__(
            code=PaymentCode.INTENT_NOT_FOUND,
            message=f"Payment intent not found: {identifier}",
            error_type="PaymentIntentNotFound",
            details={"identifier": identifier},
        )


class OrderNotFoundException(BusinessException):
    """关联订单不存在"""

    def __init__(self, order_id: int):
        super().__init__(
            code=PaymentCode.ORDER_NOT_FOUND,
            message=f"Order not found: {order_id}",
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class InvalidPaymentTransitionException(BusinessException):
    """非法的状态迁移"""

    def __init__(self, message: str, *, status: str, operation: str):
        super().__init__(
            code=PaymentCode.INVALID_TRANSITION,
            message=message,
            error_type="InvalidTransition",
            details={"status": status, "operation": operation},
            field="status",
        )


class InvalidRefundAmountException(BusinessException):
    """退款金额非法（<=0 或超过剩余可退金额）"""

    def __init__(self, requested: Decimal, remaining: Decimal):
        super().__init__(
            code=PaymentCode.INVALID_REFUND_AMOUNT,
            message=f"Invalid refund amount. Maximum refundable: {remaining:.2f}",
            error_type="InvalidAmount",
            details={"requested": str(requested), "remaining": str(remaining)},
            field="amount",
        )


class UnsupportedProviderCallbackException(BusinessException):
    """无法识别的渠道回调事件类型"""

    def __init__(self, event_type: Optional[str]):
        super().__init__(
            code=PaymentCode.UNSUPPORTED_CALLBACK,
            message=f"Unsupported provider callback event: {event_type}",
            error_type="UnsupportedProviderCallback",
            details={"event_type": event_type},
            field="event_type",
        )
