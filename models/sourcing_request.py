"""SQLAlchemy models for sourcing requests and their requested line items."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Integer, String, Text

from core.database import Base
from core.records import Account, RequestedLineItem, SourcingRequest
from core.statuses import RequestStatus


class SourcingRequestRecord(Base):
    """Persisted sourcing request ("tender")."""

    __tablename__ = "sourcing_requests"

    id = Column(String(36), primary_key=True)
    requester_id = Column(String(36), nullable=True, index=True)
    title = Column(Text, nullable=False)
    region = Column(String(128), nullable=False, default="")
    deadline = Column(DateTime, nullable=True)
    status = Column(String(32), nullable=False, default="open", index=True)
    public_link = Column(String(128), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_entity(self, requester: Optional[Account] = None) -> SourcingRequest:
        return SourcingRequest(
            id=self.id,
            title=self.title or "",
            region=self.region or "",
            deadline=self.deadline,
            status=RequestStatus(self.status),
            created_at=self.created_at,
            requester_id=self.requester_id,
            requester=requester,
            public_link=self.public_link or "",
        )


class RequestedLineItemRecord(Base):
    """One catalog item and quantity asked for by a sourcing request."""

    __tablename__ = "requested_line_items"

    id = Column(String(36), primary_key=True)
    request_id = Column(String(36), nullable=False, index=True)
    catalog_id = Column(String(36), nullable=False)
    quantity = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_entity(self) -> RequestedLineItem:
        return RequestedLineItem(
            id=self.id,
            request_id=self.request_id,
            catalog_id=self.catalog_id,
            quantity=int(self.quantity),
        )
