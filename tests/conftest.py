# tests/conftest.py
from __future__ import annotations

from typing import AsyncGenerator, Callable, Dict

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from order_intake.core.config import AppSettings
from order_intake.core.security import create_access_token
from order_intake.db.session import init_schema, make_session_maker
from order_intake.main import create_app
from order_intake.stores.memory_store import MemoryOrderStore
from order_intake.stores.sql_store import SqlOrderStore

TEST_SECRET = "order-intake-test-secret"


# =========================================
# 配置（显式构造，不读全局单例）
# =========================================
@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        ENV="test",
        JWT_SECRET=TEST_SECRET,
        STORE_BACKEND="memory",
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
    )


# =========================================
# 存储：内存版 + SQLite 临时文件版
# =========================================
@pytest.fixture
def memory_store() -> MemoryOrderStore:
    return MemoryOrderStore()


@pytest_asyncio.fixture(scope="function")
async def sql_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    # 每用例独立库文件 + NullPool，避免跨 loop 复用连接
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        poolclass=NullPool,
        future=True,
    )
    await init_schema(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def sql_store(sql_engine: AsyncEngine) -> SqlOrderStore:
    return SqlOrderStore(make_session_maker(sql_engine))


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """同一组语义用例分别跑在内存版和 SQL 版存储上。"""
    return request.getfixturevalue(f"{request.param}_store")


# =========================================
# 凭证
# =========================================
@pytest.fixture
def make_token(settings: AppSettings) -> Callable[..., str]:
    def _make(sub: str, role: str = "customer") -> str:
        return create_access_token({"sub": sub, "role": role}, settings=settings)

    return _make


@pytest.fixture
def admin_headers(make_token) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token('ops-admin', 'admin')}"}


# =========================================
# FastAPI / httpx AsyncClient
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(settings: AppSettings, memory_store: MemoryOrderStore) -> AsyncGenerator[httpx.AsyncClient, None]:
    app = create_app(settings, store=memory_store)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://testserver",
        timeout=httpx.Timeout(10.0, connect=5.0, read=10.0, write=5.0, pool=5.0),
    ) as c:
        yield c
