"""Pair vendor bid lines with the requested line items they quote."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from core.records import (
    Account,
    BidLineItem,
    RequestedLineItem,
    SourcingRequest,
    VendorBid,
)
from utils.logger import setup_logger

LineItems = Union[Mapping[str, RequestedLineItem], Iterable[RequestedLineItem]]


@dataclass(frozen=True)
class MatchedLine:
    vendor_id: str
    vendor: Optional[Account]
    requested_item: RequestedLineItem
    bid_item: BidLineItem


@dataclass(frozen=True)
class OrphanLine:
    """Bid line whose requested item cannot be found in the request."""

    vendor_id: str
    vendor: Optional[Account]
    bid_item: BidLineItem

    @property
    def dangling_id(self) -> str:
        return self.bid_item.requested_item_id


@dataclass(frozen=True)
class RejectedLine:
    """Bid line refused for totals because one of its fields is invalid."""

    vendor_id: str
    vendor: Optional[Account]
    bid_item: BidLineItem
    reason: str


@dataclass(frozen=True)
class MatchedBidSet:
    request: SourcingRequest
    items: Tuple[RequestedLineItem, ...]
    matched: Tuple[MatchedLine, ...] = ()
    orphans: Tuple[OrphanLine, ...] = ()
    rejected: Tuple[RejectedLine, ...] = ()
    # Vendors with at least one bid line, in first-submission order.
    vendor_ids: Tuple[str, ...] = ()
    vendors: Dict[str, Optional[Account]] = field(default_factory=dict)


class BidMatcher:
    """Classify every bid line of one sourcing request as matched, orphan or rejected."""

    def __init__(self, logger=None) -> None:
        self.logger = logger or setup_logger(self.__class__.__name__)

    def match(
        self,
        request: SourcingRequest,
        items: LineItems,
        bids: Iterable[VendorBid],
    ) -> MatchedBidSet:
        ordered_items = self._collect_items(request, items)
        items_by_id = {item.id: item for item in ordered_items}

        matched: List[MatchedLine] = []
        orphans: List[OrphanLine] = []
        rejected: List[RejectedLine] = []
        vendors: Dict[str, Optional[Account]] = {}

        for bid in bids:
            if bid.request_id != request.id:
                self.logger.warning(
                    "Ignoring bid %s: it belongs to request %s, not %s.",
                    bid.id,
                    bid.request_id,
                    request.id,
                )
                continue
            if bid.items and vendors.get(bid.vendor_id) is None:
                vendors[bid.vendor_id] = bid.vendor

            for line in bid.items:
                requested = items_by_id.get(line.requested_item_id)
                if requested is None:
                    self.logger.warning(
                        "Orphan bid line %s from vendor %s references unknown item %s.",
                        line.id,
                        bid.vendor_id,
                        line.requested_item_id,
                    )
                    orphans.append(OrphanLine(bid.vendor_id, bid.vendor, line))
                    continue

                reason = validate_line(line, requested)
                if reason:
                    self.logger.warning(
                        "Rejected bid line %s from vendor %s: %s.", line.id, bid.vendor_id, reason
                    )
                    rejected.append(RejectedLine(bid.vendor_id, bid.vendor, line, reason))
                    continue

                matched.append(MatchedLine(bid.vendor_id, bid.vendor, requested, line))

        return MatchedBidSet(
            request=request,
            items=tuple(ordered_items),
            matched=tuple(matched),
            orphans=tuple(orphans),
            rejected=tuple(rejected),
            vendor_ids=tuple(vendors),
            vendors=vendors,
        )

    def _collect_items(
        self, request: SourcingRequest, items: LineItems
    ) -> List[RequestedLineItem]:
        values = items.values() if isinstance(items, Mapping) else items
        collected: List[RequestedLineItem] = []
        seen = set()
        for item in values:
            if item.request_id != request.id:
                self.logger.warning(
                    "Ignoring requested item %s: it belongs to request %s, not %s.",
                    item.id,
                    item.request_id,
                    request.id,
                )
                continue
            if item.id in seen:
                self.logger.warning("Duplicate requested item %s ignored.", item.id)
                continue
            seen.add(item.id)
            collected.append(item)
        return collected


def validate_line(line: BidLineItem, requested: RequestedLineItem) -> Optional[str]:
    """Return the reason a matched line cannot be totalled, or ``None`` when valid."""
    if not isinstance(requested.quantity, int) or requested.quantity <= 0:
        return "invalid_quantity"
    if line.price is None:
        return "missing_price"
    price = as_decimal(line.price)
    if price is None:
        return "invalid_price"
    if price < 0:
        return "negative_price"
    if line.delivery_date is None:
        return "missing_delivery_date"
    if line.free_units_percentage is not None:
        free_units = as_decimal(line.free_units_percentage)
        if free_units is None or free_units < 0:
            return "invalid_free_units"
    return None


def as_decimal(value) -> Optional[Decimal]:
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def match(
    request: SourcingRequest,
    items: LineItems,
    bids: Iterable[VendorBid],
    *,
    logger=None,
) -> MatchedBidSet:
    """Match ``bids`` against ``items`` for one sourcing request."""
    return BidMatcher(logger=logger).match(request, items, bids)
