# order_intake/models/order_sequence.py
from __future__ import annotations

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from order_intake.db.base import Base


class OrderSequence(Base):
    """订单号计数器：key 为年份（"2025"）或 "global"，last_seq 只增不减。"""

    __tablename__ = "order_sequences"

    key: Mapped[str] = mapped_column(String(16), primary_key=True)
    last_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<OrderSequence {self.key}={self.last_seq}>"
