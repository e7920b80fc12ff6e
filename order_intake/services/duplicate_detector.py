# order_intake/services/duplicate_detector.py
from __future__ import annotations

import hashlib
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from order_intake.domain.types import Actor, Order, ValidatedOrderInput, utcnow
from order_intake.ports import OrderStore


def _norm(v: str) -> str:
    return " ".join(v.split()).lower()


def _sha1(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def buyer_identity_key(data: ValidatedOrderInput) -> str:
    """
    买家身份键（按优先级）：
      1) email（小写）
      2) 调用方提供的幂等键（取 sha1，长度不受调用方控制）
      3) name + address（规整空白、小写后取 sha1）
    """
    if data.buyer_email:
        return f"email:{data.buyer_email.lower()}"
    if data.idempotency_key:
        return f"idem:{_sha1(data.idempotency_key)}"
    return f"addr:{_sha1(f'{_norm(data.buyer_name)}|{_norm(data.shipping_address)}')}"


class DuplicateDetector:
    """
    防重复提交（网络重试 / 双击）：
    同一买家身份 + 同一 product + 同一 amount（容差可配），
    在 window 内已有订单 → 视为重复。

    先后到达的重试靠 find_duplicate 读出来；
    同时到达的两次提交靠 claim_key：建单时与订单同一次原子写入，后到者写入失败。
    """

    def __init__(
        self,
        store: OrderStore,
        *,
        window: timedelta = timedelta(seconds=60),
        amount_tolerance: Decimal = Decimal("0.00"),
    ):
        self.store = store
        self.window = window
        self.amount_tolerance = amount_tolerance

    def claim_key(self, data: ValidatedOrderInput, at: datetime) -> Optional[str]:
        """
        防重占位键：身份 + product + amount + 时间桶（桶宽 = window）。
        同桶内两单必然相距不足 window，占位冲突不会误伤窗口外的正常复购。
        window <= 0 时不占位。
        """
        width = int(self.window.total_seconds())
        if width <= 0:
            return None
        bucket = int(at.timestamp()) // width
        return _sha1(f"{buyer_identity_key(data)}|{data.product}|{data.amount}|{bucket}")

    async def find_duplicate(
        self,
        data: ValidatedOrderInput,
        actor: Optional[Actor] = None,
        *,
        window: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Order]:
        since = (now or utcnow()) - (window if window is not None else self.window)
        recent = await self.store.query_recent(
            {"buyer_key": buyer_identity_key(data), "product": data.product},
            since,
        )
        hits = [o for o in recent if abs(o.amount - data.amount) <= self.amount_tolerance]
        if not hits:
            return None
        # 命中多条时返回最早的那张，重试始终指向同一个 order_id
        return min(hits, key=lambda o: (o.created_at, o.order_id))

    async def is_duplicate(
        self,
        data: ValidatedOrderInput,
        actor: Optional[Actor] = None,
        *,
        window: Optional[timedelta] = None,
    ) -> bool:
        return await self.find_duplicate(data, actor, window=window) is not None
