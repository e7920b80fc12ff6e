# tests/services/test_sql_store.py
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from order_intake.db.session import make_session_maker, normalize_async_dsn
from order_intake.domain.errors import StoreError
from order_intake.domain.order_status import OrderStatus
from order_intake.stores.sql_store import SqlOrderStore
from tests.helpers.orders import BASE_TS, make_order


async def test_insert_if_absent_is_exclusive(sql_store):
    o = make_order("ORD-2025-000001")
    assert await sql_store.insert_if_absent(o.order_id, o) is True
    assert await sql_store.insert_if_absent(o.order_id, make_order("ORD-2025-000001", amount="99.00")) is False
    assert (await sql_store.get(o.order_id)).amount == o.amount


async def test_dedup_claim_is_written_with_the_order(store):
    first = make_order("ORD-2025-000001")
    second = make_order("ORD-2025-000002")

    assert await store.insert_if_absent(first.order_id, first, dedup_key="k" * 40) is True
    assert await store.find_claim("k" * 40) == first.order_id

    # 占位键冲突：整笔回滚，第二张单不落库
    assert await store.insert_if_absent(second.order_id, second, dedup_key="k" * 40) is False
    assert await store.get(second.order_id) is None
    assert await store.find_claim("z" * 40) is None

    # 订单号冲突：占位键也不写入
    assert await store.insert_if_absent(first.order_id, second, dedup_key="q" * 40) is False
    assert await store.find_claim("q" * 40) is None


async def test_round_trip_keeps_types(sql_store):
    o = make_order("ORD-2025-000001", customer_id="c-9")
    await sql_store.insert_if_absent(o.order_id, o)
    back = await sql_store.get(o.order_id)

    assert back == o
    assert back.created_at.tzinfo is not None
    assert back.status is OrderStatus.PENDING


async def test_get_missing_returns_none(sql_store):
    assert await sql_store.get("ORD-2025-000404") is None


async def test_conditional_update_checks_expected_status(sql_store):
    o = make_order("ORD-2025-000001")
    await sql_store.insert_if_absent(o.order_id, o)
    ts = BASE_TS + timedelta(minutes=5)

    updated = await sql_store.conditional_update(
        o.order_id,
        OrderStatus.PENDING,
        {"status": OrderStatus.SHIPPED, "tracking_number": "T1", "shipped_at": ts, "updated_at": ts},
    )
    assert updated.status is OrderStatus.SHIPPED
    assert updated.tracking_number == "T1"
    assert updated.shipped_at == ts

    stale = await sql_store.conditional_update(
        o.order_id,
        OrderStatus.PENDING,
        {"status": OrderStatus.CANCELLED, "updated_at": ts},
    )
    assert stale is None
    assert (await sql_store.get(o.order_id)).status is OrderStatus.SHIPPED


async def test_conditional_update_rejects_immutable_fields(sql_store):
    with pytest.raises(ValueError):
        await sql_store.conditional_update("ORD-2025-000001", OrderStatus.PENDING, {"amount": 1})


async def test_sequences_are_per_key(sql_store):
    assert [await sql_store.next_sequence("2025") for _ in range(3)] == [1, 2, 3]
    assert await sql_store.next_sequence("2026") == 1
    assert await sql_store.next_sequence("2025") == 4


async def test_query_recent_respects_since(sql_store):
    old = make_order("ORD-2025-000001", created_at=BASE_TS - timedelta(minutes=10), buyer_key="email:a@x.io")
    new = make_order("ORD-2025-000002", created_at=BASE_TS, buyer_key="email:a@x.io")
    for o in (old, new):
        await sql_store.insert_if_absent(o.order_id, o)

    hits = await sql_store.query_recent({"buyer_key": "email:a@x.io", "product": "bag"}, BASE_TS - timedelta(minutes=1))
    assert [o.order_id for o in hits] == ["ORD-2025-000002"]


async def test_driver_errors_become_store_error(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'missing-dir' / 'orders.db'}",
        poolclass=NullPool,
    )
    store = SqlOrderStore(make_session_maker(engine))
    try:
        with pytest.raises(StoreError) as ei:
            await store.get("ORD-2025-000001")
        assert ei.value.code == "PERSISTENCE_ERROR"
    finally:
        await engine.dispose()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("sqlite:///./orders.db", "sqlite+aiosqlite:///./orders.db"),
        ("postgres://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ("postgresql://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ("postgresql+asyncpg://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ('"sqlite+aiosqlite:///x.db"', "sqlite+aiosqlite:///x.db"),
    ],
)
def test_normalize_async_dsn(raw, expected):
    assert normalize_async_dsn(raw) == expected
