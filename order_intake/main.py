# order_intake/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from order_intake.api.routers.orders import router as orders_router
from order_intake.core.config import AppSettings, get_settings
from order_intake.core.logging import APP_LOGGER, setup_logging
from order_intake.core.security import assert_secure_settings
from order_intake.db.session import close_engine, init_schema, make_engine, make_session_maker
from order_intake.http_problem_handlers import register_exception_handlers
from order_intake.ports import OrderStore, ProductCatalog
from order_intake.services.catalog import StaticCatalog
from order_intake.services.order_lifecycle import OrderLifecycleManager
from order_intake.services.order_query import OrderQueryEngine
from order_intake.stores.memory_store import MemoryOrderStore
from order_intake.stores.sql_store import SqlOrderStore

logger = logging.getLogger(APP_LOGGER)


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    store: Optional[OrderStore] = None,
    catalog: Optional[ProductCatalog] = None,
) -> FastAPI:
    """
    应用工厂：
    - 传入 store 时直接使用（测试），否则按 STORE_BACKEND 构造
    - sql 后端的建表放在 lifespan 里执行
    """
    settings = settings or get_settings()
    assert_secure_settings(settings)

    engine = None
    if store is None:
        if settings.STORE_BACKEND == "memory":
            store = MemoryOrderStore()
        else:
            engine = make_engine(settings)
            store = SqlOrderStore(make_session_maker(engine))

    if catalog is None:
        catalog = StaticCatalog(settings.PRODUCT_CATALOG)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        setup_logging(settings.LOG_LEVEL, sql_echo=settings.SQL_ECHO)
        if engine is not None:
            await init_schema(engine)
        logger.info("order intake started (env=%s backend=%s)", settings.ENV, settings.STORE_BACKEND)
        try:
            yield
        finally:
            if engine is not None:
                await close_engine(engine)

    app = FastAPI(
        title="Order Intake",
        version="1.0.0",
        debug=settings.DEBUG,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://127.0.0.1:5173",
            "http://localhost:5173",
            "http://127.0.0.1:8000",
            "http://localhost:8000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.state.settings = settings
    app.state.lifecycle = OrderLifecycleManager.from_settings(store, settings, catalog=catalog)
    app.state.query = OrderQueryEngine(
        store,
        default_limit=settings.LIST_DEFAULT_LIMIT,
        max_limit=settings.LIST_MAX_LIMIT,
    )

    app.include_router(orders_router)

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    return app
