"""SQLAlchemy model for purchase orders between requesters and vendors."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime, Numeric, String

from core.database import Base
from core.records import Order
from core.statuses import OrderStatus


class OrderRecord(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    requester_id = Column(String(36), nullable=False, index=True)
    vendor_id = Column(String(36), nullable=False, index=True)
    status = Column(String(64), nullable=False, default="pending", index=True)
    total_amount = Column(Numeric(16, 4), nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_entity(self) -> Order:
        amount = self.total_amount
        return Order(
            id=self.id,
            requester_id=self.requester_id,
            vendor_id=self.vendor_id,
            status=OrderStatus(self.status),
            total_amount=Decimal(str(amount)) if amount is not None else Decimal("0"),
            created_at=self.created_at,
        )
