# order_intake/api/deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request

from order_intake.core.config import AppSettings
from order_intake.domain.types import Actor
from order_intake.services.access_guard import classify
from order_intake.services.order_lifecycle import OrderLifecycleManager
from order_intake.services.order_query import OrderQueryEngine


# ---------------------------
# 应用级单例（create_app 时挂在 app.state 上）
# ---------------------------


def get_app_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_lifecycle(request: Request) -> OrderLifecycleManager:
    return request.app.state.lifecycle


def get_query_engine(request: Request) -> OrderQueryEngine:
    return request.app.state.query


# ---------------------------
# 调用方分类（宽松版）
# ---------------------------


async def get_actor(
    authorization: Optional[str] = Header(default=None),
    settings: AppSettings = Depends(get_app_settings),
) -> Actor:
    """
    宽松版调用方：

    - 不带 Authorization → anonymous（允许下单）
    - token 无效 / 过期 → anonymous，但 credential_supplied=True（受限操作给 403）
    - 是否放行由各业务操作自己的守卫决定，这里只做分类
    """
    return classify(authorization, settings=settings)


__all__ = (
    "get_app_settings",
    "get_lifecycle",
    "get_query_engine",
    "get_actor",
)
