# order_intake/services/order_ids.py
from __future__ import annotations

import logging
import re
from typing import Literal

from order_intake.domain.errors import StoreError
from order_intake.ports import OrderStore

logger = logging.getLogger("orderintake.ids")

ORDER_ID_RE = re.compile(r"^ORD-(\d{4})-(\d{6,})$")

_GLOBAL_KEY = "global"


def format_order_id(year: int, seq: int) -> str:
    return f"ORD-{year}-{seq:06d}"


def is_order_id(value: str) -> bool:
    return bool(ORDER_ID_RE.match(value or ""))


class OrderIdGenerator:
    """
    订单号：ORD-<year>-<6 位补零序号>

    - 序号来自存储侧计数器（按年一行，或全局一行），存储是唯一可信来源
    - 取号后先查存储确认未被占用（计数器被错误重置时跳过已用号）
    - 最终确认由调用方 insert_if_absent 完成（reserve-then-confirm），
      冲突时调用方再取下一个号
    """

    def __init__(
        self,
        store: OrderStore,
        *,
        reset: Literal["yearly", "never"] = "yearly",
        max_attempts: int = 1000,
    ):
        self.store = store
        self.reset = reset
        self.max_attempts = max_attempts

    def counter_key(self, year: int) -> str:
        return str(year) if self.reset == "yearly" else _GLOBAL_KEY

    async def next(self, year: int) -> str:
        key = self.counter_key(year)
        for _ in range(self.max_attempts):
            seq = await self.store.next_sequence(key)
            candidate = format_order_id(year, seq)
            if await self.store.get(candidate) is None:
                return candidate
            logger.warning("order id already in use, skipping: %s (counter=%s)", candidate, key)

        raise StoreError(
            f"could not reserve a free order id after {self.max_attempts} attempts",
            "ORDER_ID_EXHAUSTED",
        )
