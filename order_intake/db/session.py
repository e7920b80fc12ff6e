# order_intake/db/session.py
# 异步会话工厂 + 建表入口（服务启动 / 测试共用）
from __future__ import annotations

import logging
import re

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from order_intake.core.config import AppSettings
from order_intake.db.base import Base

logger = logging.getLogger("orderintake.db")


# ---- DSN 归一：统一到 psycopg3 与 aiosqlite ----
def normalize_async_dsn(url: str) -> str:
    url = (url or "").strip()
    # 有些环境会把值写成 '"sqlite:///..."'，剥掉两侧引号
    if (url.startswith('"') and url.endswith('"')) or (url.startswith("'") and url.endswith("'")):
        url = url[1:-1].strip()
    if not url:
        return "sqlite+aiosqlite:///./orders.db"
    # sqlite:/// → sqlite+aiosqlite:///
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite://" + url[len("sqlite:///") - 1 :]
    # postgres/postgresql(+*) → postgresql+psycopg
    if url.startswith("postgresql+asyncpg://") or url.startswith("postgres+asyncpg://"):
        return re.sub(r"^postgres(?:ql)?\+asyncpg://", "postgresql+psycopg://", url)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def make_engine(settings: AppSettings) -> AsyncEngine:
    dsn = normalize_async_dsn(settings.DATABASE_URL)
    logger.info("[DB] Using DSN (async): %s", dsn)
    return create_async_engine(
        dsn,
        future=True,
        pool_pre_ping=True,
        echo=settings.SQL_ECHO,
    )


def make_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_schema(engine: AsyncEngine) -> None:
    """按 ORM 元数据建表（幂等）。"""
    # 注册 orders / order_sequences / order_dedup 三张表
    from order_intake.models import order, order_dedup, order_sequence  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ---- 关闭引擎（测试/生命周期） ----
async def close_engine(engine: AsyncEngine) -> None:
    await engine.dispose()
