# order_intake/services/order_query.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from order_intake.domain.errors import ValidationError
from order_intake.domain.order_status import parse_status
from order_intake.domain.types import Actor, OrderPage
from order_intake.ports import OrderStore
from order_intake.services.access_guard import require_admin

# 对外字段名（camelCase + snake_case 别名）→ 存储字段
SORTABLE_FIELDS: Dict[str, str] = {
    "createdAt": "created_at",
    "created_at": "created_at",
    "updatedAt": "updated_at",
    "updated_at": "updated_at",
    "amount": "amount",
    "shippingCost": "shipping_cost",
    "shipping_cost": "shipping_cost",
    "status": "status",
    "orderId": "order_id",
    "order_id": "order_id",
    "buyerName": "buyer_name",
    "buyer_name": "buyer_name",
}

DEFAULT_SORT = "-createdAt"


def _as_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(str(v).strip())
    except (TypeError, ValueError):
        return None


def normalize_limit(raw: Any, *, default: int, maximum: int) -> int:
    """非数值 / 非正数 → 默认值；超过上限 → 夹到上限。"""
    v = _as_int(raw)
    if v is None or v <= 0:
        v = default
    return min(v, maximum)


def normalize_offset(raw: Any) -> int:
    v = _as_int(raw)
    if v is None or v < 0:
        return 0
    return v


def parse_sort(raw: Optional[str]) -> List[Tuple[str, bool]]:
    """
    "-createdAt" → [("created_at", True), ("order_id", False)]
    未知字段直接 INVALID_SORT，不静默忽略。
    order_id 升序兜底，保证分页稳定。
    """
    text = (raw or "").strip() or DEFAULT_SORT
    desc = text.startswith("-")
    name = text[1:].strip() if desc else text
    column = SORTABLE_FIELDS.get(name)
    if column is None:
        raise ValidationError(
            f"unsupported sort field: {name!r}",
            "INVALID_SORT",
            context={"allowed": sorted(k for k in SORTABLE_FIELDS if "_" not in k)},
        )

    order_by = [(column, desc)]
    if column != "order_id":
        order_by.append(("order_id", False))
    return order_by


class OrderQueryEngine:
    """admin 列表查询：分页 / 排序 / 过滤 → 存储查询，total 只受过滤影响。"""

    def __init__(self, store: OrderStore, *, default_limit: int = 50, max_limit: int = 200):
        self.store = store
        self.default_limit = default_limit
        self.max_limit = max_limit

    def build_filters(self, status: Any = None, product: Any = None) -> Dict[str, Any]:
        filters: Dict[str, Any] = {}
        if status is not None and str(status).strip() != "":
            st = parse_status(status)
            if st is None:
                raise ValidationError(f"unknown status filter: {status!r}", "INVALID_FILTER")
            filters["status"] = st
        if isinstance(product, str) and product.strip():
            filters["product"] = product.strip()
        return filters

    async def list(
        self,
        actor: Actor,
        *,
        status: Any = None,
        product: Any = None,
        sort: Optional[str] = None,
        limit: Any = None,
        offset: Any = None,
    ) -> OrderPage:
        require_admin(actor)

        filters = self.build_filters(status=status, product=product)
        sort_spec = parse_sort(sort)
        lim = normalize_limit(limit, default=self.default_limit, maximum=self.max_limit)
        off = normalize_offset(offset)

        items, total = await self.store.list(filters, sort_spec, lim, off)
        return OrderPage(items=list(items), total=int(total))
