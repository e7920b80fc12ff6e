# -*- coding: utf-8 -*-
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional, Protocol, Sequence, Tuple

from order_intake.domain.order_status import OrderStatus
from order_intake.domain.types import Order

# (字段名, 是否降序)
SortSpec = Sequence[Tuple[str, bool]]

# 允许被条件写修改的字段；order_id / amount / shipping_cost 等不在其中
MUTABLE_FIELDS = frozenset(
    {
        "status",
        "tracking_number",
        "shipped_at",
        "delivered_at",
        "cancelled_at",
        "cancelled_by",
        "cancel_reason",
        "updated_at",
    }
)


class OrderStore(Protocol):
    """
    记录存储（外部协作方）的窄接口。
    每个方法都是一次独立的原子操作；失败统一抛 StoreError。
    """

    async def insert_if_absent(self, order_id: str, order: Order, *, dedup_key: Optional[str] = None) -> bool:
        """order_id 或 dedup_key 任一已存在 → False，两者都不写入。"""
        ...

    async def find_claim(self, dedup_key: str) -> Optional[str]:
        """防重占位键 → 占位订单的 order_id。"""
        ...

    async def get(self, order_id: str) -> Optional[Order]: ...

    async def conditional_update(
        self,
        order_id: str,
        expected_status: OrderStatus,
        mutation: Mapping[str, Any],
    ) -> Optional[Order]: ...

    async def query_recent(self, match: Mapping[str, Any], since: datetime) -> List[Order]: ...

    async def list(
        self,
        filters: Mapping[str, Any],
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> Tuple[List[Order], int]: ...

    async def next_sequence(self, key: str) -> int: ...


class ProductCatalog(Protocol):
    async def exists(self, product: str) -> bool: ...
