# order_intake/core/config.py
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 地球半径只在这里定义一次，按部署单位取值
EARTH_RADIUS: Dict[str, float] = {
    "mi": 3959.0,
    "km": 6371.0,
}


class PricingTier(BaseModel):
    """
    距离档位：左开右闭 (上一档 max, max_distance]
    - max_distance=None 视为 infinity（必须是最后一档）
    """

    tier: str
    max_distance: Optional[float] = None
    cost: Decimal


def _default_tiers() -> List[PricingTier]:
    return [
        PricingTier(tier="local", max_distance=5.0, cost=Decimal("5.00")),
        PricingTier(tier="regional", max_distance=15.0, cost=Decimal("9.99")),
        PricingTier(tier="extended", max_distance=None, cost=Decimal("14.99")),
    ]


def _default_eta() -> Dict[str, str]:
    return {
        "local": "1-2 business days",
        "regional": "2-3 business days",
        "extended": "3-5 business days",
        "default": "5-7 business days",
    }


class AppSettings(BaseSettings):
    """
    全局应用配置（环境变量 / .env）
    """

    # 运行环境
    ENV: str = Field(default="dev")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")

    # 存储
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./orders.db")
    SQL_ECHO: bool = Field(default=False)
    STORE_BACKEND: Literal["sql", "memory"] = Field(default="sql")

    # 凭证
    JWT_SECRET: str = Field(default="dev-temp-secret")
    JWT_ALG: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60)

    # 地理计价
    WAREHOUSE_LAT: float = Field(default=40.7128)
    WAREHOUSE_LNG: float = Field(default=-74.0060)
    DISTANCE_UNIT: Literal["mi", "km"] = Field(default="mi")
    PRICING_TIERS: List[PricingTier] = Field(default_factory=_default_tiers)
    DEFAULT_SHIPPING_COST: Decimal = Field(default=Decimal("12.99"))
    ESTIMATED_DELIVERY: Dict[str, str] = Field(default_factory=_default_eta)

    # 防重
    DUPLICATE_WINDOW_SECONDS: int = Field(default=60)
    DUPLICATE_AMOUNT_TOLERANCE: Decimal = Field(default=Decimal("0.00"))

    # 订单号
    ORDER_SEQ_RESET: Literal["yearly", "never"] = Field(default="yearly")
    ORDER_ID_MAX_ATTEMPTS: int = Field(default=1000)

    # 列表
    LIST_DEFAULT_LIMIT: int = Field(default=50)
    LIST_MAX_LIMIT: int = Field(default=200)

    # 商品目录（外部目录服务的默认实现）
    PRODUCT_CATALOG: List[str] = Field(default_factory=lambda: ["bag", "shoes", "watch", "wallet", "belt"])

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def earth_radius(self) -> float:
        return EARTH_RADIUS[self.DISTANCE_UNIT]


@lru_cache
def get_settings() -> AppSettings:
    """全局单例设置入口。"""
    return AppSettings()
