# order_intake/models/order_dedup.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from order_intake.db.base import Base


class OrderDedup(Base):
    """
    防重占位：与订单在同一事务里插入。
    dedup_key 主键冲突 = 同一窗口桶内已有相同提交，order_id 指向先到的那张单。
    """

    __tablename__ = "order_dedup"

    dedup_key: Mapped[str] = mapped_column(String(40), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<OrderDedup {self.dedup_key[:8]} -> {self.order_id}>"
