# order_intake/stores/memory_store.py
from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from order_intake.domain.order_status import OrderStatus
from order_intake.domain.types import Order
from order_intake.ports import MUTABLE_FIELDS, SortSpec


def _sort_value(order: Order, field: str) -> Any:
    v = getattr(order, field)
    if isinstance(v, OrderStatus):
        return v.value
    return v


class MemoryOrderStore:
    """
    进程内存储（单节点开发 / 测试）：
    一把 asyncio.Lock 保证每个原语原子，语义与 SqlOrderStore 一致。
    """

    def __init__(self) -> None:
        self._orders: Dict[str, Order] = {}
        self._sequences: Dict[str, int] = {}
        self._claims: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def insert_if_absent(self, order_id: str, order: Order, *, dedup_key: Optional[str] = None) -> bool:
        async with self._lock:
            if order_id in self._orders or (dedup_key is not None and dedup_key in self._claims):
                return False
            self._orders[order_id] = order
            if dedup_key is not None:
                self._claims[dedup_key] = order_id
            return True

    async def find_claim(self, dedup_key: str) -> Optional[str]:
        return self._claims.get(dedup_key)

    async def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    async def conditional_update(
        self,
        order_id: str,
        expected_status: OrderStatus,
        mutation: Mapping[str, Any],
    ) -> Optional[Order]:
        bad = set(mutation) - MUTABLE_FIELDS
        if bad:
            raise ValueError(f"immutable fields in mutation: {sorted(bad)}")

        async with self._lock:
            current = self._orders.get(order_id)
            if current is None or current.status is not expected_status:
                return None
            updated = replace(current, **dict(mutation))
            self._orders[order_id] = updated
            return updated

    async def query_recent(self, match: Mapping[str, Any], since: datetime) -> List[Order]:
        out = []
        for o in list(self._orders.values()):
            if o.created_at < since:
                continue
            if all(getattr(o, k) == v for k, v in match.items()):
                out.append(o)
        return out

    async def list(
        self,
        filters: Mapping[str, Any],
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> Tuple[List[Order], int]:
        rows = [o for o in list(self._orders.values()) if all(getattr(o, k) == v for k, v in filters.items())]

        # 多键稳定排序：从最后一个键往前排
        for field, desc in reversed(list(sort)):
            rows.sort(key=lambda o, f=field: _sort_value(o, f), reverse=desc)

        return rows[offset : offset + limit], len(rows)

    async def next_sequence(self, key: str) -> int:
        async with self._lock:
            seq = self._sequences.get(key, 0) + 1
            self._sequences[key] = seq
            return seq

    # 测试 / 运维用：模拟计数器被错误重置
    async def reset_sequence(self, key: str, value: int = 0) -> None:
        async with self._lock:
            self._sequences[key] = value
