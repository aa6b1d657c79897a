"""
统一响应格式定义

所有接口返回 {code, message, data, error}，成功时 error 为空，失败时 data 为空。
"""
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

import structlog
from pydantic import BaseModel, Field, field_serializer

from shared.codes import BusinessCode


T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ErrorDetail(BaseModel):
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utc_now)

    @field_serializer("timestamp")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        # UTC ISO8601，以 Z 结尾
        ts = timestamp.replace(tzinfo=timezone.utc) if timestamp.tzinfo is None else timestamp.astimezone(timezone.utc)
        return ts.isoformat().replace("+00:00", "Z")


class Response(BaseModel, Generic[T]):
    """统一响应模型"""
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


def success_response(data: Any = None, message: str = "Success", code: int = BusinessCode.SUCCESS) -> Response:
    return Response(code=code, message=message, data=data)


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Response:
    """
    创建错误响应

    未显式传入 request_id 时取日志上下文中由 RequestIDMiddleware 绑定的值。
    """
    if request_id is None:
        request_id = structlog.contextvars.get_contextvars().get("request_id")
    return Response(
        code=code,
        message=message,
        error=ErrorDetail(type=error_type, details=details, field=field, request_id=request_id),
    )


class PaginatedData(BaseModel, Generic[T]):
    """分页数据模型"""
    items: list[T]
    total: int
    page: int
    size: int
    pages: int


def paginated_response(items: list, total: int, page: int, size: int, message: str = "Success") -> Response:
    pages = -(-total // size) if size > 0 else 0
    return success_response(
        data=PaginatedData(items=items, total=total, page=page, size=size, pages=pages),
        message=message,
    )
