# order_intake/domain/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from order_intake.domain.order_status import OrderStatus

UTC = timezone.utc


def utcnow() -> datetime:
    return datetime.now(UTC)


def _iso(v: Optional[datetime]) -> Optional[str]:
    return v.isoformat() if v is not None else None


def _money(v: Optional[Decimal]) -> Optional[str]:
    return f"{v:.2f}" if v is not None else None


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float
    accuracy: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.lat, "lng": self.lng, "accuracy": self.accuracy}


@dataclass(frozen=True)
class ValidatedOrderInput:
    """
    只由 Validator 产出；下游组件不接受原始请求体。
    字符串已 trim，金额已转 Decimal（两位小数）。
    """

    product: str
    amount: Decimal
    buyer_name: str
    shipping_address: str
    buyer_email: Optional[str] = None
    location: Optional[Location] = None
    idempotency_key: Optional[str] = None
    client_timestamp: Optional[str] = None


class ActorKind(str, Enum):
    ANONYMOUS = "anonymous"
    CUSTOMER = "customer"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """
    调用方上下文（由凭证层推导，不落库）：
    - identity: 凭证里的 sub（匿名为 None）
    - credential_supplied: 是否带了凭证（无效凭证也算带了，用于区分 401 / 403）
    """

    kind: ActorKind
    identity: Optional[str] = None
    credential_supplied: bool = False

    @property
    def is_admin(self) -> bool:
        return self.kind is ActorKind.ADMIN


ANONYMOUS = Actor(kind=ActorKind.ANONYMOUS)


@dataclass(frozen=True)
class ShippingQuote:
    cost: Decimal
    tier: str
    estimated_delivery: str
    distance: Optional[float] = None


@dataclass(frozen=True)
class Order:
    order_id: str
    product: str
    amount: Decimal
    buyer_name: str
    shipping_address: str
    buyer_key: str
    status: OrderStatus
    shipping_cost: Decimal
    pricing_tier: str
    estimated_delivery: str
    created_at: datetime
    updated_at: datetime
    buyer_email: Optional[str] = None
    customer_id: Optional[str] = None
    location: Optional[Location] = None
    distance: Optional[float] = None
    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancel_reason: Optional[str] = None

    def to_public(self) -> Dict[str, Any]:
        """对外 JSON 形状（camelCase）。"""
        return {
            "orderId": self.order_id,
            "product": self.product,
            "amount": _money(self.amount),
            "buyerName": self.buyer_name,
            "buyerEmail": self.buyer_email,
            "shippingAddress": self.shipping_address,
            "location": self.location.to_dict() if self.location else None,
            "status": self.status.value,
            "shippingCost": _money(self.shipping_cost),
            "pricingTier": self.pricing_tier,
            "distance": self.distance,
            "estimatedDelivery": self.estimated_delivery,
            "trackingNumber": self.tracking_number,
            "customerId": self.customer_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "shippedAt": _iso(self.shipped_at),
            "deliveredAt": _iso(self.delivered_at),
            "cancelledAt": _iso(self.cancelled_at),
            "cancelledBy": self.cancelled_by,
            "cancelReason": self.cancel_reason,
        }


@dataclass(frozen=True)
class CreateOutcome:
    order: Order
    duplicate: bool = False


@dataclass(frozen=True)
class OrderPage:
    items: List[Order] = field(default_factory=list)
    total: int = 0

    @property
    def count(self) -> int:
        return len(self.items)
