"""SQLAlchemy models for vendor bids and their priced line items."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import Column, Date, DateTime, Numeric, String

from core.database import Base
from core.records import Account, BidLineItem, VendorBid


class VendorBidRecord(Base):
    """One vendor's submission against a sourcing request."""

    __tablename__ = "vendor_bids"

    id = Column(String(36), primary_key=True)
    request_id = Column(String(36), nullable=False, index=True)
    vendor_id = Column(String(36), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_entity(
        self,
        items: Iterable[BidLineItem] = (),
        vendor: Optional[Account] = None,
    ) -> VendorBid:
        return VendorBid(
            id=self.id,
            request_id=self.request_id,
            vendor_id=self.vendor_id,
            vendor=vendor,
            items=tuple(items),
            created_at=self.created_at,
        )


class BidLineItemRecord(Base):
    """Priced quote for one requested line item."""

    __tablename__ = "bid_line_items"

    id = Column(String(36), primary_key=True)
    bid_id = Column(String(36), nullable=False, index=True)
    requested_item_id = Column(String(36), nullable=False)
    price = Column(Numeric(14, 4), nullable=True)
    free_units_percentage = Column(Numeric(7, 3), nullable=True)
    delivery_date = Column(DateTime, nullable=True)
    expiry_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_entity(self) -> BidLineItem:
        return BidLineItem(
            id=self.id,
            requested_item_id=self.requested_item_id,
            price=_as_decimal(self.price),
            delivery_date=self.delivery_date,
            free_units_percentage=_as_decimal(self.free_units_percentage),
            expiry_date=self.expiry_date,
        )


def _as_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
