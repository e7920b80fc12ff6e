# order_intake/stores/sql_store.py
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_intake.domain.errors import StoreError
from order_intake.domain.order_status import OrderStatus
from order_intake.domain.types import UTC, Location, Order
from order_intake.models.order import OrderRecord
from order_intake.models.order_dedup import OrderDedup
from order_intake.models.order_sequence import OrderSequence
from order_intake.ports import MUTABLE_FIELDS, SortSpec

logger = logging.getLogger("orderintake.store")

orders_t = OrderRecord.__table__
sequences_t = OrderSequence.__table__
dedup_t = OrderDedup.__table__

_SEQ_INIT_RETRIES = 3


def _aware(v: Optional[datetime]) -> Optional[datetime]:
    # SQLite 读回来是 naive（实际存的就是 UTC）
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=UTC)
    return v


def _db_value(v: Any) -> Any:
    if isinstance(v, Enum):
        return v.value
    return v


def order_to_row(order: Order) -> Dict[str, Any]:
    loc = order.location
    return {
        "order_id": order.order_id,
        "product": order.product,
        "amount": order.amount,
        "buyer_name": order.buyer_name,
        "buyer_email": order.buyer_email,
        "shipping_address": order.shipping_address,
        "buyer_key": order.buyer_key,
        "customer_id": order.customer_id,
        "lat": loc.lat if loc else None,
        "lng": loc.lng if loc else None,
        "accuracy": loc.accuracy if loc else None,
        "distance": order.distance,
        "status": order.status.value,
        "shipping_cost": order.shipping_cost,
        "pricing_tier": order.pricing_tier,
        "estimated_delivery": order.estimated_delivery,
        "tracking_number": order.tracking_number,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "shipped_at": order.shipped_at,
        "delivered_at": order.delivered_at,
        "cancelled_at": order.cancelled_at,
        "cancelled_by": order.cancelled_by,
        "cancel_reason": order.cancel_reason,
    }


def row_to_order(row: Mapping[str, Any]) -> Order:
    location = None
    if row["lat"] is not None and row["lng"] is not None:
        location = Location(lat=row["lat"], lng=row["lng"], accuracy=row["accuracy"])
    return Order(
        order_id=row["order_id"],
        product=row["product"],
        amount=row["amount"],
        buyer_name=row["buyer_name"],
        buyer_email=row["buyer_email"],
        shipping_address=row["shipping_address"],
        buyer_key=row["buyer_key"],
        customer_id=row["customer_id"],
        location=location,
        distance=row["distance"],
        status=OrderStatus(row["status"]),
        shipping_cost=row["shipping_cost"],
        pricing_tier=row["pricing_tier"],
        estimated_delivery=row["estimated_delivery"],
        tracking_number=row["tracking_number"],
        created_at=_aware(row["created_at"]),
        updated_at=_aware(row["updated_at"]),
        shipped_at=_aware(row["shipped_at"]),
        delivered_at=_aware(row["delivered_at"]),
        cancelled_at=_aware(row["cancelled_at"]),
        cancelled_by=row["cancelled_by"],
        cancel_reason=row["cancel_reason"],
    )


class SqlOrderStore:
    """
    SQL 存储（SQLAlchemy async + Core 语句）：

    - insert_if_absent：订单与防重占位同一事务插入，任一主键冲突 → 整体回滚、返回 False
    - conditional_update：UPDATE ... WHERE order_id=? AND status=? RETURNING *
    - next_sequence：UPDATE ... SET last_seq = last_seq + 1 RETURNING last_seq
    每个原语一个独立事务；驱动层异常统一翻译为 StoreError。
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._sm = session_maker

    @asynccontextmanager
    async def _tx(self, op: str, *, passthrough_integrity: bool = False) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sm() as session:
                async with session.begin():
                    yield session
        except IntegrityError as e:
            if passthrough_integrity:
                raise
            logger.exception("store %s failed (integrity)", op)
            raise StoreError(f"store operation failed: {op}") from e
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            logger.exception("store %s failed", op)
            raise StoreError(f"store operation failed: {op}") from e

    async def insert_if_absent(self, order_id: str, order: Order, *, dedup_key: Optional[str] = None) -> bool:
        row = order_to_row(order)
        row["order_id"] = order_id
        try:
            async with self._tx("insert", passthrough_integrity=True) as s:
                await s.execute(insert(orders_t).values(**row))
                if dedup_key is not None:
                    await s.execute(
                        insert(dedup_t).values(dedup_key=dedup_key, order_id=order_id, created_at=order.created_at)
                    )
        except IntegrityError:
            return False
        return True

    async def find_claim(self, dedup_key: str) -> Optional[str]:
        async with self._tx("find_claim") as s:
            res = await s.execute(select(dedup_t.c.order_id).where(dedup_t.c.dedup_key == dedup_key))
            return res.scalar_one_or_none()

    async def get(self, order_id: str) -> Optional[Order]:
        async with self._tx("get") as s:
            res = await s.execute(select(orders_t).where(orders_t.c.order_id == order_id))
            row = res.mappings().first()
        return row_to_order(row) if row is not None else None

    async def conditional_update(
        self,
        order_id: str,
        expected_status: OrderStatus,
        mutation: Mapping[str, Any],
    ) -> Optional[Order]:
        bad = set(mutation) - MUTABLE_FIELDS
        if bad:
            raise ValueError(f"immutable fields in mutation: {sorted(bad)}")

        values = {k: _db_value(v) for k, v in mutation.items()}
        stmt = (
            update(orders_t)
            .where(orders_t.c.order_id == order_id)
            .where(orders_t.c.status == expected_status.value)
            .values(**values)
            .returning(*orders_t.c)
        )
        async with self._tx("conditional_update") as s:
            res = await s.execute(stmt)
            row = res.mappings().first()
        return row_to_order(row) if row is not None else None

    def _where(self, stmt, conds: Mapping[str, Any]):
        for k, v in conds.items():
            stmt = stmt.where(orders_t.c[k] == _db_value(v))
        return stmt

    async def query_recent(self, match: Mapping[str, Any], since: datetime) -> List[Order]:
        stmt = self._where(select(orders_t), match).where(orders_t.c.created_at >= since)
        async with self._tx("query_recent") as s:
            res = await s.execute(stmt)
            rows = res.mappings().all()
        return [row_to_order(r) for r in rows]

    async def list(
        self,
        filters: Mapping[str, Any],
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> Tuple[List[Order], int]:
        stmt = self._where(select(orders_t), filters)
        count_stmt = self._where(select(func.count()).select_from(orders_t), filters)

        for field, desc in sort:
            col = orders_t.c[field]
            stmt = stmt.order_by(col.desc() if desc else col.asc())
        stmt = stmt.limit(limit).offset(offset)

        async with self._tx("list") as s:
            total = (await s.execute(count_stmt)).scalar_one()
            rows = (await s.execute(stmt)).mappings().all()
        return [row_to_order(r) for r in rows], int(total)

    async def next_sequence(self, key: str) -> int:
        bump = (
            update(sequences_t)
            .where(sequences_t.c.key == key)
            .values(last_seq=sequences_t.c.last_seq + 1)
            .returning(sequences_t.c.last_seq)
        )
        for _ in range(_SEQ_INIT_RETRIES):
            async with self._tx("next_sequence") as s:
                seq = (await s.execute(bump)).scalar_one_or_none()
            if seq is not None:
                return int(seq)

            # 计数器行不存在：首个取号者建行；并发建行失败 → 回到 UPDATE
            try:
                async with self._tx("next_sequence_init", passthrough_integrity=True) as s:
                    await s.execute(insert(sequences_t).values(key=key, last_seq=1))
                return 1
            except IntegrityError:
                continue

        raise StoreError(f"could not initialise order sequence {key!r}")
