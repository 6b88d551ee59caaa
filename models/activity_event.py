"""SQLAlchemy model for account activity logs."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, String

from core.database import Base
from core.records import ActivityEvent


class ActivityEventRecord(Base):
    __tablename__ = "activity_events"

    id = Column(String(36), primary_key=True)
    account_id = Column(String(36), nullable=False, index=True)
    action = Column(String(128), nullable=False)
    page = Column(String(256), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_entity(self) -> ActivityEvent:
        return ActivityEvent(
            id=self.id,
            account_id=self.account_id,
            action=self.action,
            created_at=self.created_at,
            page=self.page,
        )
