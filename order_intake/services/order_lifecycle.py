# order_intake/services/order_lifecycle.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from order_intake.core.config import AppSettings
from order_intake.domain.errors import NotFoundError, StoreError, TransitionError, ValidationError
from order_intake.domain.limits import MAX_CANCEL_REASON_LEN, MAX_TRACKING_LEN
from order_intake.domain.order_status import INITIAL_STATUS, TERMINAL_STATUSES, OrderStatus, can_transition
from order_intake.domain.types import (
    Actor,
    ActorKind,
    CreateOutcome,
    Order,
    ValidatedOrderInput,
    utcnow,
)
from order_intake.ports import OrderStore, ProductCatalog
from order_intake.services.access_guard import (
    require_admin,
    require_authenticated,
    require_buyer_or_admin,
)
from order_intake.services.duplicate_detector import DuplicateDetector, buyer_identity_key
from order_intake.services.geo_pricer import GeoPricer
from order_intake.services.order_ids import OrderIdGenerator, is_order_id

logger = logging.getLogger("orderintake.lifecycle")


class OrderLifecycleManager:
    """
    订单生命周期（唯一写入口）：

      create        → pending
      mark_shipped  pending → shipped     （admin）
      mark_delivered shipped → delivered  （admin）
      cancel        pending|shipped → cancelled（admin 或原买家）

    所有跃迁都是条件写：以“读到的当前状态”为期望值提交，
    并发下被别人抢先改掉 → INVALID_TRANSITION，绝不静默成功。
    """

    def __init__(
        self,
        store: OrderStore,
        *,
        pricer: GeoPricer,
        ids: OrderIdGenerator,
        duplicates: DuplicateDetector,
        catalog: Optional[ProductCatalog] = None,
        max_id_attempts: int = 1000,
    ):
        self.store = store
        self.pricer = pricer
        self.ids = ids
        self.duplicates = duplicates
        self.catalog = catalog
        self.max_id_attempts = max_id_attempts

    @classmethod
    def from_settings(
        cls,
        store: OrderStore,
        settings: AppSettings,
        *,
        catalog: Optional[ProductCatalog] = None,
    ) -> "OrderLifecycleManager":
        return cls(
            store,
            pricer=GeoPricer.from_settings(settings),
            ids=OrderIdGenerator(
                store,
                reset=settings.ORDER_SEQ_RESET,
                max_attempts=settings.ORDER_ID_MAX_ATTEMPTS,
            ),
            duplicates=DuplicateDetector(
                store,
                window=timedelta(seconds=settings.DUPLICATE_WINDOW_SECONDS),
                amount_tolerance=settings.DUPLICATE_AMOUNT_TOLERANCE,
            ),
            catalog=catalog,
            max_id_attempts=settings.ORDER_ID_MAX_ATTEMPTS,
        )

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------
    async def create(
        self,
        data: ValidatedOrderInput,
        actor: Actor,
        *,
        now: Optional[datetime] = None,
    ) -> CreateOutcome:
        if self.catalog is not None and not await self.catalog.exists(data.product):
            raise ValidationError(f"unknown product: {data.product}", "UNKNOWN_PRODUCT")

        existing = await self.duplicates.find_duplicate(data, actor, now=now)
        if existing is not None:
            logger.info("duplicate order submission, returning %s", existing.order_id)
            return CreateOutcome(order=existing, duplicate=True)

        quote = self.pricer.price(data.location)
        ts = now or utcnow()
        dedup_key = self.duplicates.claim_key(data, ts)
        customer_id = actor.identity if actor.kind is ActorKind.CUSTOMER else None

        for _ in range(self.max_id_attempts):
            order_id = await self.ids.next(ts.year)
            order = Order(
                order_id=order_id,
                product=data.product,
                amount=data.amount,
                buyer_name=data.buyer_name,
                buyer_email=data.buyer_email,
                shipping_address=data.shipping_address,
                buyer_key=buyer_identity_key(data),
                customer_id=customer_id,
                location=data.location,
                status=INITIAL_STATUS,
                shipping_cost=quote.cost,
                pricing_tier=quote.tier,
                distance=quote.distance,
                estimated_delivery=quote.estimated_delivery,
                created_at=ts,
                updated_at=ts,
            )
            if await self.store.insert_if_absent(order_id, order, dedup_key=dedup_key):
                logger.info(
                    "order created: %s product=%s amount=%s tier=%s cost=%s",
                    order_id,
                    data.product,
                    data.amount,
                    quote.tier,
                    quote.cost,
                )
                return CreateOutcome(order=order, duplicate=False)

            # 同时到达的相同提交：先写入的那张单已占住防重键
            if dedup_key is not None:
                winner_id = await self.store.find_claim(dedup_key)
                winner = await self.store.get(winner_id) if winner_id else None
                if winner is not None:
                    logger.info("concurrent duplicate submission, returning %s", winner.order_id)
                    return CreateOutcome(order=winner, duplicate=True)

            # 计数器与存储不一致（或并发实例抢先确认），换下一个号
            logger.warning("order id taken at confirm time, re-reserving: %s", order_id)

        raise StoreError(
            f"could not confirm a free order id after {self.max_id_attempts} attempts",
            "ORDER_ID_EXHAUSTED",
        )

    # ------------------------------------------------------------------
    # read
    # ------------------------------------------------------------------
    async def _load(self, order_id: str) -> Order:
        # 格式都不对的号不可能存在，不必打到存储
        order = await self.store.get(order_id) if is_order_id(order_id) else None
        if order is None:
            raise NotFoundError(f"order not found: {order_id}", context={"order_id": order_id})
        return order

    async def get(self, order_id: str, actor: Actor) -> Order:
        require_authenticated(actor)
        order = await self._load(order_id)
        require_buyer_or_admin(actor, order)
        return order

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    async def _transition(
        self,
        order: Order,
        target: OrderStatus,
        mutation: Dict[str, Any],
    ) -> Order:
        current = order.status
        if not can_transition(current, target):
            final = " (final state)" if current in TERMINAL_STATUSES else ""
            raise TransitionError(
                f"cannot move order {order.order_id} from {current.value}{final} to {target.value}",
                context={"order_id": order.order_id, "from": current.value, "to": target.value},
            )

        updated = await self.store.conditional_update(order.order_id, current, mutation)
        if updated is None:
            # 条件写落空：读到状态之后被并发请求改掉了（正常竞争，不是故障）
            logger.info(
                "conditional write lost race: %s expected=%s target=%s",
                order.order_id,
                current.value,
                target.value,
            )
            raise TransitionError(
                f"order {order.order_id} changed concurrently; {target.value} not applied",
                context={"order_id": order.order_id, "from": current.value, "to": target.value},
            )

        logger.info("order %s: %s -> %s", order.order_id, current.value, target.value)
        return updated

    async def mark_shipped(
        self,
        order_id: str,
        tracking_number: Optional[str],
        actor: Actor,
        *,
        now: Optional[datetime] = None,
    ) -> Order:
        require_admin(actor)
        order = await self._load(order_id)

        # 终态 / 非 pending 优先报 INVALID_TRANSITION，其次才校验运单号
        if order.status is not OrderStatus.PENDING:
            return await self._transition(order, OrderStatus.SHIPPED, {})

        tracking = (tracking_number or "").strip()
        if not tracking:
            raise ValidationError("trackingNumber is required", "MISSING_TRACKING_NUMBER")
        if len(tracking) > MAX_TRACKING_LEN:
            raise ValidationError(
                f"trackingNumber must be at most {MAX_TRACKING_LEN} characters",
                "INVALID_TRACKING_NUMBER",
            )

        ts = now or utcnow()
        return await self._transition(
            order,
            OrderStatus.SHIPPED,
            {"status": OrderStatus.SHIPPED, "shipped_at": ts, "tracking_number": tracking, "updated_at": ts},
        )

    async def mark_delivered(
        self,
        order_id: str,
        actor: Actor,
        *,
        now: Optional[datetime] = None,
    ) -> Order:
        require_admin(actor)
        order = await self._load(order_id)
        ts = now or utcnow()
        return await self._transition(
            order,
            OrderStatus.DELIVERED,
            {"status": OrderStatus.DELIVERED, "delivered_at": ts, "updated_at": ts},
        )

    async def cancel(
        self,
        order_id: str,
        actor: Actor,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        require_authenticated(actor)
        order = await self._load(order_id)
        require_buyer_or_admin(actor, order)

        note = (reason or "").strip() or None
        if note is not None and len(note) > MAX_CANCEL_REASON_LEN:
            raise ValidationError(
                f"reason must be at most {MAX_CANCEL_REASON_LEN} characters",
                "INVALID_CANCEL_REASON",
            )

        ts = now or utcnow()
        return await self._transition(
            order,
            OrderStatus.CANCELLED,
            {
                "status": OrderStatus.CANCELLED,
                "cancelled_at": ts,
                "cancelled_by": ActorKind.ADMIN.value if actor.is_admin else ActorKind.CUSTOMER.value,
                "cancel_reason": note,
                "updated_at": ts,
            },
        )
