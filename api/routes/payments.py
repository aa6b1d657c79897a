"""
支付意图API路由 - FastAPI表现层

路由只做参数解析与响应包装，业务规则全部在应用服务与领域层。
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import (
    get_pagination_params,
    get_payment_intent_service,
    get_payment_query_service,
    require_simulation_enabled,
)
from application.dtos.payments import (
    CancelPayment,
    ConfirmThreeDSecure,
    CreatePaymentIntent,
    FailPayment,
    MarkReceived,
    PaginationParams,
    PaymentEventView,
    PaymentIntentQuery,
    PaymentIntentView,
    PaymentStatisticsView,
    ProviderCallback,
    ProviderCallbackResult,
    RefundPayment,
    RefundView,
)
from application.services.payment_intent_service import PaymentIntentApplicationService
from application.services.payment_query_service import PaymentQueryService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.payment.state_machine import PaymentStatus


router = APIRouter(prefix="/payments", tags=["支付"])


@router.post("/intents", summary="创建支付意图（按订单幂等）", response_model=ApiResponse[PaymentIntentView])
async def create_intent(
    data: CreatePaymentIntent,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    """
    为订单创建支付意图

    - **order_id**: 订单ID，金额与币种取自订单
    - **method**: 支付方式
    - **card**: 卡信息（卡支付时用于识别品牌与 3-D Secure 判定）
    - **installment_count**: 分期数（可选）

    同一订单重复调用返回已存在的意图。
    """
    intent = await service.create_intent(data)
    return success_response(data=intent, message="Payment intent created")


@router.get("/intents/by-reference/{reference}", summary="按渠道参考号查询", response_model=ApiResponse[PaymentIntentView])
async def get_intent_by_reference(
    reference: str,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    return success_response(data=await service.get_intent_by_reference(reference))


@router.get("/intents/{intent_id}", summary="查询支付意图", response_model=ApiResponse[PaymentIntentView])
async def get_intent(
    intent_id: int,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    return success_response(data=await service.get_intent(intent_id))


@router.get("/orders/{order_id}/intent", summary="按订单查询支付意图", response_model=ApiResponse[PaymentIntentView])
async def get_intent_by_order(
    order_id: int,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    return success_response(data=await service.get_intent_by_order(order_id))


@router.get("/intents/{intent_id}/events", summary="审计事件", response_model=ApiResponse[List[PaymentEventView]])
async def list_events(
    intent_id: int,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    """按发生时间升序返回支付意图的全部审计事件"""
    return success_response(data=await service.list_events(intent_id))


@router.post("/intents/{intent_id}/authorize", summary="授权", response_model=ApiResponse[PaymentIntentView])
async def authorize(
    intent_id: int,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    return success_response(data=await service.authorize(intent_id), message="Payment authorized")


@router.post("/intents/{intent_id}/capture", summary="捕获", response_model=ApiResponse[PaymentIntentView])
async def capture(
    intent_id: int,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    return success_response(data=await service.capture(intent_id), message="Payment captured")


@router.post("/intents/{intent_id}/cancel", summary="取消", response_model=ApiResponse[PaymentIntentView])
async def cancel(
    intent_id: int,
    data: CancelPayment = CancelPayment(),
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    return success_response(data=await service.cancel(intent_id, data.reason), message="Payment cancelled")


@router.post("/intents/{intent_id}/fail", summary="标记失败", response_model=ApiResponse[PaymentIntentView])
async def fail(
    intent_id: int,
    data: FailPayment,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    return success_response(data=await service.fail(intent_id, data.reason), message="Payment failed")


@router.post("/intents/{intent_id}/refund", summary="退款", response_model=ApiResponse[RefundView])
async def refund(
    intent_id: int,
    data: RefundPayment = RefundPayment(),
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    """
    退款

    - **amount**: 退款金额，缺省时退还剩余全部
    - **reason**: 退款原因
    """
    result = await service.refund(intent_id, data.amount, data.reason)
    return success_response(data=result, message="Refund processed")


@router.post("/intents/{intent_id}/3ds/confirm", summary="3-D Secure 结果确认", response_model=ApiResponse[PaymentIntentView])
async def confirm_three_d_secure(
    intent_id: int,
    data: ConfirmThreeDSecure,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    intent = await service.confirm_three_d_secure(intent_id, data.outcome)
    return success_response(data=intent, message="3D Secure confirmation processed")


@router.post("/intents/{intent_id}/mark-received", summary="人工确认到账", response_model=ApiResponse[PaymentIntentView])
async def mark_received(
    intent_id: int,
    data: MarkReceived = MarkReceived(),
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    intent = await service.mark_received(intent_id, data.note)
    return success_response(data=intent, message="Payment marked as received")


@router.post(
    "/intents/{intent_id}/simulate-success",
    summary="模拟支付成功",
    response_model=ApiResponse[PaymentIntentView],
    dependencies=[Depends(require_simulation_enabled)],
)
async def simulate_success(
    intent_id: int,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    return success_response(data=await service.simulate_success(intent_id), message="Payment simulated as successful")


@router.post(
    "/intents/{intent_id}/simulate-fail",
    summary="模拟支付失败",
    response_model=ApiResponse[PaymentIntentView],
    dependencies=[Depends(require_simulation_enabled)],
)
async def simulate_fail(
    intent_id: int,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    return success_response(data=await service.simulate_failure(intent_id), message="Payment simulated as failed")


@router.post("/webhooks/{provider}", summary="渠道回调（模拟）", response_model=ApiResponse[ProviderCallbackResult])
async def provider_webhook(
    provider: str,
    data: ProviderCallback,
    service: PaymentIntentApplicationService = Depends(get_payment_intent_service),
):
    """未知参考号的回调记录日志后忽略（processed=false），未知事件类型返回 400"""
    result = await service.process_provider_callback(provider, data)
    return success_response(data=result, message="Callback received")


@router.get(
    "/admin/intents",
    summary="后台支付列表",
    response_model=ApiResponse[PaginatedData[PaymentIntentView]],
)
async def admin_list_intents(
    params: PaginationParams = Depends(get_pagination_params),
    status: Optional[PaymentStatus] = Query(None, description="按状态筛选"),
    order_id: Optional[int] = Query(None, description="按订单筛选"),
    user_id: Optional[int] = Query(None, description="按买家筛选"),
    from_date: Optional[datetime] = Query(None, description="创建时间下限（含）"),
    to_date: Optional[datetime] = Query(None, description="创建时间上限（含）"),
    service: PaymentQueryService = Depends(get_payment_query_service),
):
    """按创建时间倒序分页返回支付意图"""
    query = PaymentIntentQuery(
        status=status,
        order_id=order_id,
        user_id=user_id,
        from_date=from_date,
        to_date=to_date,
    )
    items, total = await service.list_intents(query, params.skip, params.limit)
    return paginated_response(items=items, total=total, page=params.page, size=params.limit)


@router.get(
    "/admin/events",
    summary="后台审计事件检索",
    response_model=ApiResponse[PaginatedData[PaymentEventView]],
)
async def admin_search_events(
    params: PaginationParams = Depends(get_pagination_params),
    payment_id: Optional[int] = Query(None, description="支付意图ID"),
    event_type: Optional[str] = Query(None, description="事件类型（子串匹配）"),
    service: PaymentQueryService = Depends(get_payment_query_service),
):
    items, total = await service.search_events(payment_id, event_type, params.skip, params.limit)
    return paginated_response(items=items, total=total, page=params.page, size=params.limit)


@router.get(
    "/admin/failed",
    summary="失败与取消的支付",
    response_model=ApiResponse[PaginatedData[PaymentIntentView]],
)
async def admin_list_failed(
    params: PaginationParams = Depends(get_pagination_params),
    service: PaymentQueryService = Depends(get_payment_query_service),
):
    items, total = await service.list_failed(params.skip, params.limit)
    return paginated_response(items=items, total=total, page=params.page, size=params.limit)


@router.get("/admin/statistics", summary="支付统计", response_model=ApiResponse[PaymentStatisticsView])
async def admin_statistics(
    from_date: Optional[datetime] = Query(None, description="区间起点，缺省按 statistics_window_days 回看"),
    to_date: Optional[datetime] = Query(None, description="区间终点，缺省为当前时间"),
    service: PaymentQueryService = Depends(get_payment_query_service),
):
    return success_response(data=await service.statistics(from_date, to_date))
