"""Closed status enumerations and the grouping tables built on top of them."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


class RequestStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    CANCELED = "canceled"


class DisplayStatus(str, Enum):
    """Status shown to operators; ``expired`` is derived, never stored."""

    OPEN = "open"
    EXPIRED = "expired"
    CLOSED = "closed"
    CANCELED = "canceled"


class AccountRole(str, Enum):
    REQUESTER = "requester"
    VENDOR = "vendor"


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    PENDING_PAYMENT = "pending_payment"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PENDING_DELIVERY_CONFIRMATION = "pending_delivery_confirmation"
    ACCEPTED = "accepted"
    CANCELED = "canceled"


# Summary-card buckets. Two raw statuses share the "pending" card.
ORDER_STATUS_BUCKETS: Dict[OrderStatus, str] = {
    OrderStatus.PENDING: "pending",
    OrderStatus.PENDING_DELIVERY_CONFIRMATION: "pending",
    OrderStatus.ACCEPTED: "accepted",
    OrderStatus.CANCELED: "canceled",
}

_DISPLAY_BY_STATUS: Dict[RequestStatus, DisplayStatus] = {
    RequestStatus.OPEN: DisplayStatus.OPEN,
    RequestStatus.CLOSED: DisplayStatus.CLOSED,
    RequestStatus.CANCELED: DisplayStatus.CANCELED,
}


def order_bucket(status: OrderStatus) -> str:
    return ORDER_STATUS_BUCKETS[OrderStatus(status)]


def display_status(
    status: RequestStatus, deadline: Optional[datetime], now: datetime
) -> DisplayStatus:
    """Return the status an operator should see for a sourcing request.

    Only open requests can appear expired; closed and canceled requests keep
    their stored status whatever their deadline.
    """
    resolved = RequestStatus(status)
    if resolved is RequestStatus.OPEN and deadline is not None:
        if as_utc(deadline) < as_utc(now):
            return DisplayStatus.EXPIRED
    return _DISPLAY_BY_STATUS[resolved]


def as_utc(value: datetime) -> datetime:
    """Normalise a timestamp to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
