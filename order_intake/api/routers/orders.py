# order_intake/api/routers/orders.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, Query, status
from pydantic import BaseModel, ConfigDict, Field

from order_intake.api.deps import get_actor, get_lifecycle, get_query_engine
from order_intake.domain.errors import DuplicateOrderError
from order_intake.domain.types import Actor
from order_intake.services.order_lifecycle import OrderLifecycleManager
from order_intake.services.order_query import OrderQueryEngine
from order_intake.services.order_validator import validate_order

router = APIRouter(tags=["orders"])


class ShipIn(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    tracking_number: Optional[str] = Field(default=None, alias="trackingNumber")


class CancelIn(BaseModel):
    model_config = ConfigDict(extra="ignore")
    reason: Optional[str] = None


@router.post("/orders", status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: Dict[str, Any] = Body(...),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    actor: Actor = Depends(get_actor),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
):
    # 请求体原样交给 validator：检查顺序与错误码由它决定
    data = validate_order(payload, idempotency_key=idempotency_key)
    outcome = await lifecycle.create(data, actor)

    if outcome.duplicate:
        raise DuplicateOrderError(
            f"duplicate submission; order {outcome.order.order_id} already exists",
            order_id=outcome.order.order_id,
        )

    order = outcome.order
    return {
        "success": True,
        "order_id": order.order_id,
        "message": "order received",
        "status": order.status.value,
        "estimatedDelivery": order.estimated_delivery,
        "shippingCost": f"{order.shipping_cost:.2f}",
        "pricingTier": order.pricing_tier,
    }


@router.get("/orders")
async def list_orders(
    limit: Optional[str] = Query(default=None),
    offset: Optional[str] = Query(default=None),
    sort: Optional[str] = Query(default=None),
    status_: Optional[str] = Query(default=None, alias="status"),
    product: Optional[str] = Query(default=None),
    actor: Actor = Depends(get_actor),
    query: OrderQueryEngine = Depends(get_query_engine),
):
    # limit / offset 按字符串收下，非法值由查询层回落到默认值而不是 400
    page = await query.list(
        actor,
        status=status_,
        product=product,
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return {
        "success": True,
        "count": page.count,
        "total": page.total,
        "orders": [o.to_public() for o in page.items],
    }


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
):
    order = await lifecycle.get(order_id, actor)
    return {"success": True, "order": order.to_public()}


@router.post("/orders/{order_id}/ship")
async def ship_order(
    order_id: str,
    payload: Optional[ShipIn] = Body(default=None),
    actor: Actor = Depends(get_actor),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
):
    tracking = payload.tracking_number if payload else None
    order = await lifecycle.mark_shipped(order_id, tracking, actor)
    return {"success": True, "order": order.to_public()}


@router.post("/orders/{order_id}/deliver")
async def deliver_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
):
    order = await lifecycle.mark_delivered(order_id, actor)
    return {"success": True, "order": order.to_public()}


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    payload: Optional[CancelIn] = Body(default=None),
    actor: Actor = Depends(get_actor),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
):
    order = await lifecycle.cancel(order_id, actor, reason=payload.reason if payload else None)
    return {"success": True, "order": order.to_public()}
