# order_intake/models/order.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Float, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from order_intake.db.base import Base
from order_intake.domain.limits import (
    MAX_BUYER_KEY_LEN,
    MAX_EMAIL_LEN,
    MAX_NAME_LEN,
    MAX_PRODUCT_LEN,
    MAX_TRACKING_LEN,
)


class OrderRecord(Base):
    """
    订单主档
    - order_id 为业务主键（ORD-YYYY-NNNNNN），唯一约束兜底 insert-if-absent
    - 时间列具时区，统一存 UTC
    - status 存小写字符串（pending / shipped / delivered / cancelled）
    """

    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_buyer_product_created", "buyer_key", "product", "created_at"),
        Index("ix_orders_status_created", "status", "created_at"),
    )

    order_id: Mapped[str] = mapped_column(String(32), primary_key=True)

    product: Mapped[str] = mapped_column(String(MAX_PRODUCT_LEN), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    buyer_name: Mapped[str] = mapped_column(String(MAX_NAME_LEN), nullable=False)
    buyer_email: Mapped[str | None] = mapped_column(String(MAX_EMAIL_LEN), nullable=True)
    shipping_address: Mapped[str] = mapped_column(Text, nullable=False)
    buyer_key: Mapped[str] = mapped_column(String(MAX_BUYER_KEY_LEN), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # 位置（可选）
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    distance: Mapped[float | None] = mapped_column(Float, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False)

    # 运费（创建时定价，之后不再变）
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    pricing_tier: Mapped[str] = mapped_column(String(32), nullable=False)
    estimated_delivery: Mapped[str] = mapped_column(String(64), nullable=False)

    tracking_number: Mapped[str | None] = mapped_column(String(MAX_TRACKING_LEN), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(16), nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<OrderRecord {self.order_id} status={self.status}>"
