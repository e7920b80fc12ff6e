# order_intake/core/logging.py
from __future__ import annotations

import logging
import sys
from typing import Optional

# 本服务所有模块 logger 都挂在这个前缀下（orderintake.lifecycle / .store / .ids ...）
APP_LOGGER = "orderintake"

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# 每条语句 / 每次连接都会打日志的第三方
_NOISY = ("aiosqlite", "sqlalchemy.pool", "httpx")


def setup_logging(level: str = "INFO", *, sql_echo: bool = False, app_level: Optional[str] = None) -> logging.Logger:
    """
    进程级日志初始化（lifespan 里调用，可重复调用）：

    - 根 logger 只保留一个 stdout handler
    - orderintake.* 可单独调级别（app_level），默认跟随 level
    - SQL 语句日志只在 sql_echo 打开时输出
    """
    lvl = level.upper()
    root = logging.getLogger()
    root.setLevel(lvl)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)

    app = logging.getLogger(APP_LOGGER)
    app.setLevel((app_level or lvl).upper())

    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if sql_echo else logging.WARNING)
    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)

    return app
