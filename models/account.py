"""SQLAlchemy models for marketplace accounts and their subscriptions."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String

from core.database import Base
from core.records import Account, Subscription
from core.statuses import AccountRole, PaymentStatus, SubscriptionStatus


class AccountRecord(Base):
    """Requester or vendor account."""

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True)
    role = Column(String(32), nullable=False, index=True)
    company_name = Column(String(256), nullable=False, default="")
    email = Column(String(256), nullable=True)
    phone = Column(String(64), nullable=True)
    region = Column(String(128), nullable=True)
    is_verified = Column(Boolean, default=False)
    is_admin = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_entity(self) -> Account:
        return Account(
            id=self.id,
            role=AccountRole(self.role),
            is_verified=bool(self.is_verified),
            is_admin=bool(self.is_admin),
            region=self.region or "",
            created_at=self.created_at,
            company_name=self.company_name or "",
            email=self.email or "",
            phone=self.phone or "",
        )


class SubscriptionRecord(Base):
    """Account subscription state."""

    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True)
    account_id = Column(String(36), nullable=False, index=True)
    status = Column(String(32), nullable=False, index=True)
    trial_end_date = Column(DateTime, nullable=True)
    subscription_end = Column(DateTime, nullable=True)
    payment_status = Column(String(32), nullable=True)

    def to_entity(self) -> Subscription:
        return Subscription(
            id=self.id,
            account_id=self.account_id,
            status=SubscriptionStatus(self.status),
            trial_end_date=self.trial_end_date,
            subscription_end=self.subscription_end,
            payment_status=PaymentStatus(self.payment_status) if self.payment_status else None,
        )
