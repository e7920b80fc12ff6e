# order_intake/services/geo_pricer.py
from __future__ import annotations

import math
from decimal import Decimal
from typing import Dict, Optional, Sequence

from order_intake.core.config import AppSettings, PricingTier
from order_intake.domain.types import Location, ShippingQuote

DEFAULT_TIER = "default"


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float, radius: float) -> float:
    """
    大圆距离（haversine），单位与 radius 一致。

    数值稳定性：中间量 a 先夹到 [0, 1] 再开方 / 反三角，
    避免同点时出现负数开方、对跖点时 asin 越界。
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    a = min(1.0, max(0.0, a))

    return 2.0 * radius * math.asin(math.sqrt(a))


def match_tier(distance: float, tiers: Sequence[PricingTier]) -> PricingTier:
    """
    档位命中：左开右闭 (prev_max, max]，max=None 视为 infinity。
    tiers 必须按 max_distance 升序，且最后一档开放。
    """
    for t in tiers:
        if t.max_distance is None or distance <= t.max_distance:
            return t
    raise ValueError("pricing tiers must end with an open-ended tier (max_distance=None)")


def cost_for_distance(distance: float, tiers: Sequence[PricingTier]) -> Decimal:
    return match_tier(distance, tiers).cost


class GeoPricer:
    """
    地理围栏运费：仓库坐标 + 客户坐标 → 距离 → 档位运费。
    无 GPS 时走配置的默认运费（与最近档位区分开，不把“无定位”当成“很近”）。
    """

    def __init__(
        self,
        *,
        warehouse_lat: float,
        warehouse_lng: float,
        radius: float,
        tiers: Sequence[PricingTier],
        default_cost: Decimal,
        estimated_delivery: Optional[Dict[str, str]] = None,
    ):
        if not tiers or tiers[-1].max_distance is not None:
            raise ValueError("pricing tiers must end with an open-ended tier (max_distance=None)")
        self.warehouse_lat = warehouse_lat
        self.warehouse_lng = warehouse_lng
        self.radius = radius
        self.tiers = list(tiers)
        self.default_cost = default_cost
        self.eta = dict(estimated_delivery or {})

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "GeoPricer":
        return cls(
            warehouse_lat=settings.WAREHOUSE_LAT,
            warehouse_lng=settings.WAREHOUSE_LNG,
            radius=settings.earth_radius,
            tiers=settings.PRICING_TIERS,
            default_cost=settings.DEFAULT_SHIPPING_COST,
            estimated_delivery=settings.ESTIMATED_DELIVERY,
        )

    def distance_to(self, location: Location) -> float:
        return haversine_distance(
            self.warehouse_lat,
            self.warehouse_lng,
            location.lat,
            location.lng,
            self.radius,
        )

    def _eta_for(self, tier: str) -> str:
        return self.eta.get(tier) or self.eta.get(DEFAULT_TIER) or ""

    def price(self, location: Optional[Location]) -> ShippingQuote:
        if location is None:
            return ShippingQuote(
                cost=self.default_cost,
                tier=DEFAULT_TIER,
                estimated_delivery=self._eta_for(DEFAULT_TIER),
                distance=None,
            )

        distance = self.distance_to(location)
        tier = match_tier(distance, self.tiers)
        return ShippingQuote(
            cost=tier.cost,
            tier=tier.tier,
            estimated_delivery=self._eta_for(tier.tier),
            distance=distance,
        )
