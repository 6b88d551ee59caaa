"""Typed, immutable snapshots of the marketplace records the engine reads."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from core.statuses import (
    AccountRole,
    OrderStatus,
    PaymentStatus,
    RequestStatus,
    SubscriptionStatus,
)


def to_plain(value: Any) -> Any:
    """Convert records, enums, decimals and dates into JSON-ready values."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_plain(item) for item in value]
    return value


@dataclass(frozen=True)
class Account:
    id: str
    role: AccountRole
    is_verified: bool = False
    is_admin: bool = False
    region: str = ""
    created_at: Optional[datetime] = None
    company_name: str = ""
    email: str = ""
    phone: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return to_plain(self)


@dataclass(frozen=True)
class Descriptor:
    """Display decoration for a catalog entry."""

    name: str
    form: str = ""
    strength: str = ""

    @property
    def label(self) -> str:
        detail = " ".join(part for part in (self.form, self.strength) if part)
        return f"{self.name} – {detail}" if detail else self.name


@dataclass(frozen=True)
class SourcingRequest:
    id: str
    title: str
    region: str
    deadline: Optional[datetime]
    status: RequestStatus
    created_at: Optional[datetime] = None
    requester_id: Optional[str] = None
    requester: Optional[Account] = None
    public_link: str = ""

    @property
    def created_by_operator(self) -> bool:
        return self.requester_id is None

    def to_dict(self) -> Dict[str, Any]:
        return to_plain(self)


@dataclass(frozen=True)
class RequestedLineItem:
    id: str
    request_id: str
    catalog_id: str
    quantity: int


@dataclass(frozen=True)
class BidLineItem:
    id: str
    requested_item_id: str
    price: Optional[Decimal]
    delivery_date: Optional[datetime]
    free_units_percentage: Optional[Decimal] = None
    expiry_date: Optional[date] = None


@dataclass(frozen=True)
class VendorBid:
    id: str
    request_id: str
    vendor_id: str
    vendor: Optional[Account] = None
    items: Tuple[BidLineItem, ...] = field(default_factory=tuple)
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Subscription:
    id: str
    account_id: str
    status: SubscriptionStatus
    trial_end_date: Optional[datetime] = None
    subscription_end: Optional[datetime] = None
    payment_status: Optional[PaymentStatus] = None


@dataclass(frozen=True)
class ActivityEvent:
    id: str
    account_id: str
    action: str
    created_at: datetime
    page: Optional[str] = None


@dataclass(frozen=True)
class Order:
    """A requester's purchase order placed with one vendor."""

    id: str
    requester_id: str
    vendor_id: str
    status: OrderStatus
    total_amount: Decimal = Decimal("0")
    created_at: Optional[datetime] = None
