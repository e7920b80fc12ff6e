# order_intake/api/problem.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, TypedDict

from order_intake.domain.errors import OrderError


class ProblemDetail(TypedDict, total=False):
    # 行内定位（请求体字段 / 查询参数）
    path: str
    reason: str


@dataclass(frozen=True)
class Problem:
    code: str
    message: str
    status: int
    context: Optional[Dict[str, Any]] = None
    details: Optional[List[ProblemDetail]] = None
    trace_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "message": self.message,
            "code": self.code,
            "status": int(self.status),
        }
        if self.context:
            out["context"] = self.context
            # DUPLICATE_ORDER 等需要把已有订单号直接暴露在顶层
            if "order_id" in self.context:
                out["order_id"] = self.context["order_id"]
        if self.details:
            out["details"] = self.details
        if self.trace_id:
            out["trace_id"] = self.trace_id
        return out


def make_problem(
    *,
    status_code: int,
    code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[Sequence[ProblemDetail]] = None,
    trace_id: Optional[str] = None,
) -> Dict[str, Any]:
    p = Problem(
        code=str(code),
        message=str(message),
        status=int(status_code),
        context=context,
        details=list(details) if details else None,
        trace_id=trace_id,
    )
    return p.to_dict()


def problem_from_error(
    exc: OrderError,
    *,
    context: Optional[Dict[str, Any]] = None,
    trace_id: Optional[str] = None,
) -> Dict[str, Any]:
    """领域异常 → 失败响应体；状态码只取自 exc.kind。"""
    merged: Dict[str, Any] = dict(context or {})
    merged.update(exc.context)
    return make_problem(
        status_code=exc.http_status,
        code=exc.code,
        message=exc.message,
        context=merged,
        trace_id=trace_id,
    )
