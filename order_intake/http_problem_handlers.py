# order_intake/http_problem_handlers.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from order_intake.api.problem import ProblemDetail, make_problem, problem_from_error
from order_intake.domain.errors import ErrorKind, OrderError, http_status_for

logger = logging.getLogger("orderintake")

# HTTPException 状态码 → 稳定 code
_HTTP_CODES: Dict[int, str] = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


def _new_trace_id() -> str:
    return f"t_{uuid.uuid4().hex[:12]}"


def _req_ctx(req: Request) -> Dict[str, Any]:
    return {"path": getattr(req.url, "path", ""), "method": req.method}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(OrderError)
    async def _order_exc(req: Request, exc: OrderError):
        trace_id = _new_trace_id()
        if exc.kind is ErrorKind.STORE:
            logger.error("STORE_ERROR[%s]: %s %s", trace_id, exc.code, exc.message)
        else:
            logger.info("request rejected[%s]: %s %s", trace_id, exc.code, exc.message)
        content = problem_from_error(exc, context=_req_ctx(req), trace_id=trace_id)
        return JSONResponse(status_code=exc.http_status, content=content)

    @app.exception_handler(Exception)
    async def _unhandled_exc(req: Request, exc: Exception):
        trace_id = _new_trace_id()
        logger.exception("UNHANDLED_EXC[%s]: %s", trace_id, exc)
        content = make_problem(
            status_code=500,
            code="INTERNAL_ERROR",
            message="internal error, please retry later",
            context=_req_ctx(req),
            trace_id=trace_id,
        )
        return JSONResponse(status_code=500, content=content)

    @app.exception_handler(RequestValidationError)
    async def _validation_exc(req: Request, exc: RequestValidationError):
        details: List[ProblemDetail] = []
        for e in exc.errors():
            if not isinstance(e, dict):
                continue
            loc = ".".join(str(p) for p in e.get("loc") or ())
            details.append({"path": loc, "reason": str(e.get("msg") or e.get("type") or "invalid")})

        status_code = http_status_for(ErrorKind.VALIDATION)
        content = make_problem(
            status_code=status_code,
            code="VALIDATION_ERROR",
            message="request is malformed",
            context=_req_ctx(req),
            details=details,
            trace_id=_new_trace_id(),
        )
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exc(req: Request, exc: StarletteHTTPException):
        status_code = int(exc.status_code)
        d = exc.detail
        content = make_problem(
            status_code=status_code,
            code=_HTTP_CODES.get(status_code, "HTTP_ERROR"),
            message=str(d) if d is not None else "request rejected",
            context=_req_ctx(req),
            trace_id=_new_trace_id(),
        )
        return JSONResponse(status_code=status_code, content=content, headers=getattr(exc, "headers", None))
