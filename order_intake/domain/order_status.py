# order_intake/domain/order_status.py
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class OrderStatus(str, Enum):
    """
    订单状态（封闭集合）：
    - pending   初始态（唯一）
    - shipped   已发货
    - delivered 已签收（终态）
    - cancelled 已取消（终态，取消是状态而不是删除）
    """

    PENDING = "pending"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# 显式跃迁表：不在表里的 (from, to) 一律非法
ALLOWED: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

INITIAL_STATUS = OrderStatus.PENDING
TERMINAL_STATUSES = frozenset(s for s, nxt in ALLOWED.items() if not nxt)


def parse_status(value: object) -> OrderStatus | None:
    """宽松解析：大小写/空白不敏感；未知值返回 None。"""
    if isinstance(value, OrderStatus):
        return value
    if not isinstance(value, str):
        return None
    try:
        return OrderStatus(value.strip().lower())
    except ValueError:
        return None


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED.get(current, frozenset())
