# order_intake/domain/errors.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    TRANSITION = "transition"
    STORE = "store"


# 唯一的 kind → HTTP 状态映射，调用点不得自行决定状态码
# INVALID_TRANSITION 在本部署固定为 409
HTTP_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.TRANSITION: 409,
    ErrorKind.STORE: 500,
}


def http_status_for(kind: ErrorKind) -> int:
    return HTTP_STATUS_BY_KIND[kind]


class OrderError(Exception):
    kind: ErrorKind = ErrorKind.STORE
    code = "ORDER_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        *,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        if code:
            self.code = code
        self.message = message
        self.context = dict(context or {})

    @property
    def http_status(self) -> int:
        return http_status_for(self.kind)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} code={self.code} message={self.message!r}>"


class ValidationError(OrderError):
    """客户端可修正的输入错误"""

    kind = ErrorKind.VALIDATION
    code = "VALIDATION_ERROR"


class AuthError(OrderError):
    kind = ErrorKind.FORBIDDEN
    code = "FORBIDDEN"


class UnauthorizedError(AuthError):
    """需要凭证但完全没有提供"""

    kind = ErrorKind.UNAUTHORIZED
    code = "UNAUTHORIZED"


class ForbiddenError(AuthError):
    """提供了凭证但权限不足（含无效/过期凭证）"""

    kind = ErrorKind.FORBIDDEN
    code = "FORBIDDEN"


class ConflictError(OrderError):
    kind = ErrorKind.CONFLICT
    code = "CONFLICT"


class DuplicateOrderError(ConflictError):
    code = "DUPLICATE_ORDER"

    def __init__(self, message: str, *, order_id: str):
        super().__init__(message, context={"order_id": order_id})
        self.order_id = order_id


class NotFoundError(OrderError):
    kind = ErrorKind.NOT_FOUND
    code = "NOT_FOUND"


class TransitionError(OrderError):
    kind = ErrorKind.TRANSITION
    code = "INVALID_TRANSITION"


class StoreError(OrderError):
    kind = ErrorKind.STORE
    code = "PERSISTENCE_ERROR"
