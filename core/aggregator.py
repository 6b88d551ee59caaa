"""Fold matched bids into request summaries and records into operator analytics.

Two responsibilities live here because they read overlapping inputs:

* ``summarize`` turns one sourcing request and its vendor bids into
  per-vendor totals. Totals keep full ``Decimal`` precision; rounding is left
  to the renderer.
* ``rollup`` counts a whole population of accounts, orders, subscriptions and
  activity events for the analytics dashboard. Every record is handled on its
  own, so one malformed record is skipped and reported instead of blanking
  the whole snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from core.bid_matcher import (
    BidMatcher,
    LineItems,
    MatchedBidSet,
    OrphanLine,
    RejectedLine,
    as_decimal,
)
from core.records import (
    Account,
    ActivityEvent,
    BidLineItem,
    Order,
    RequestedLineItem,
    SourcingRequest,
    Subscription,
    VendorBid,
    to_plain,
)
from core.statuses import (
    AccountRole,
    ORDER_STATUS_BUCKETS,
    OrderStatus,
    SubscriptionStatus,
    as_utc,
    order_bucket,
)
from utils.logger import setup_logger

T = TypeVar("T")

WEEK_WINDOW_DAYS = 7
MONTH_WINDOW_DAYS = 30
DEFAULT_RECENT_LIMIT = 10


@dataclass(frozen=True)
class PricedLine:
    requested_item: RequestedLineItem
    bid_item: BidLineItem
    unit_price: Decimal
    line_total: Decimal

    @property
    def quantity(self) -> int:
        return self.requested_item.quantity

    @property
    def free_units_percentage(self) -> Optional[Decimal]:
        # Informational only, never applied to the totals.
        return self.bid_item.free_units_percentage


@dataclass(frozen=True)
class VendorTotal:
    vendor_id: str
    vendor: Optional[Account]
    lines: Tuple[PricedLine, ...]
    total: Decimal
    orphan_count: int = 0
    rejected_count: int = 0


@dataclass(frozen=True)
class RequestSummary:
    request_id: str
    item_count: int
    response_count: int
    items: Tuple[RequestedLineItem, ...]
    vendors: Tuple[VendorTotal, ...]
    orphans: Tuple[OrphanLine, ...] = ()
    rejected: Tuple[RejectedLine, ...] = ()

    def vendor(self, vendor_id: str) -> Optional[VendorTotal]:
        for vendor_total in self.vendors:
            if vendor_total.vendor_id == vendor_id:
                return vendor_total
        return None

    def to_dict(self) -> Dict[str, Any]:
        return to_plain(self)


class RequestAggregator:
    """Compute per-vendor totals for one sourcing request."""

    def __init__(self, *, matcher: Optional[BidMatcher] = None, logger=None) -> None:
        self.logger = logger or setup_logger(self.__class__.__name__)
        self.matcher = matcher or BidMatcher(logger=self.logger)

    def summarize(
        self,
        request: SourcingRequest,
        items: LineItems,
        bids: Iterable[VendorBid],
    ) -> RequestSummary:
        return self.summarize_matches(self.matcher.match(request, items, bids))

    def summarize_matches(self, matched_set: MatchedBidSet) -> RequestSummary:
        lines_by_vendor: Dict[str, List[PricedLine]] = {
            vendor_id: [] for vendor_id in matched_set.vendor_ids
        }
        for line in matched_set.matched:
            price = as_decimal(line.bid_item.price)
            priced = PricedLine(
                requested_item=line.requested_item,
                bid_item=line.bid_item,
                unit_price=price,
                line_total=price * line.requested_item.quantity,
            )
            lines_by_vendor.setdefault(line.vendor_id, []).append(priced)

        orphan_counts = _count_by_vendor(matched_set.orphans)
        rejected_counts = _count_by_vendor(matched_set.rejected)

        vendors = []
        for vendor_id, lines in lines_by_vendor.items():
            total = sum((line.line_total for line in lines), Decimal("0"))
            vendors.append(
                VendorTotal(
                    vendor_id=vendor_id,
                    vendor=matched_set.vendors.get(vendor_id),
                    lines=tuple(lines),
                    total=total,
                    orphan_count=orphan_counts.get(vendor_id, 0),
                    rejected_count=rejected_counts.get(vendor_id, 0),
                )
            )

        summary = RequestSummary(
            request_id=matched_set.request.id,
            item_count=len(matched_set.items),
            response_count=len(matched_set.vendor_ids),
            items=matched_set.items,
            vendors=tuple(vendors),
            orphans=matched_set.orphans,
            rejected=matched_set.rejected,
        )
        self.logger.info(
            "Summarized request %s: %d item(s), %d response(s), %d orphan(s), %d rejected.",
            summary.request_id,
            summary.item_count,
            summary.response_count,
            len(summary.orphans),
            len(summary.rejected),
        )
        return summary


def _count_by_vendor(lines: Iterable[Any]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for line in lines:
        counts[line.vendor_id] = counts.get(line.vendor_id, 0) + 1
    return counts


@dataclass(frozen=True)
class AccountCounts:
    total: int
    by_role: Dict[str, int]
    verified: int
    unverified: int
    details: Dict[str, Tuple[Account, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class OrderCounts:
    total: int
    by_status: Dict[str, int]
    by_bucket: Dict[str, int]
    total_amount: Decimal
    details: Dict[str, Tuple[Order, ...]] = field(default_factory=dict)
    recent: Tuple[Order, ...] = ()

    @property
    def pending(self) -> int:
        return self.by_bucket.get("pending", 0)


@dataclass(frozen=True)
class SubscriptionCounts:
    total: int
    by_status: Dict[str, int]
    details: Dict[str, Tuple[Subscription, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class ActivityDay:
    date: str
    count: int
    events: Tuple[ActivityEvent, ...]


@dataclass(frozen=True)
class ActivityCounts:
    """Distinct active accounts per trailing window."""

    today: int
    week: int
    month: int
    by_date: Tuple[ActivityDay, ...] = ()
    recent: Tuple[ActivityEvent, ...] = ()


@dataclass(frozen=True)
class SkippedRecord:
    kind: str
    record_id: str
    reason: str


@dataclass(frozen=True)
class AnalyticsSnapshot:
    generated_at: datetime
    accounts: AccountCounts
    orders: OrderCounts
    subscriptions: SubscriptionCounts
    activity: ActivityCounts
    skipped: Tuple[SkippedRecord, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return to_plain(self)


class AnalyticsAggregator:
    """Build the operator analytics snapshot from fully loaded record populations."""

    def __init__(
        self,
        *,
        excluded_account_ids: Iterable[str] = (),
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        logger=None,
    ) -> None:
        self.excluded_account_ids = frozenset(str(account_id) for account_id in excluded_account_ids)
        self.recent_limit = max(0, int(recent_limit))
        self.logger = logger or setup_logger(self.__class__.__name__)

    def rollup(
        self,
        accounts: Iterable[Account],
        requests: Iterable[Order],
        subscriptions: Iterable[Subscription],
        events: Iterable[ActivityEvent],
        now: datetime,
    ) -> AnalyticsSnapshot:
        skipped: List[SkippedRecord] = []
        account_counts = self._account_counts(accounts, skipped)
        order_counts = self._order_counts(requests, skipped)
        subscription_counts = self._subscription_counts(subscriptions, skipped)
        activity_counts = self._activity_counts(events, now, skipped)
        if skipped:
            self.logger.warning("Analytics rollup skipped %d malformed record(s).", len(skipped))
        return AnalyticsSnapshot(
            generated_at=now,
            accounts=account_counts,
            orders=order_counts,
            subscriptions=subscription_counts,
            activity=activity_counts,
            skipped=tuple(skipped),
        )

    def _account_counts(
        self, accounts: Iterable[Account], skipped: List[SkippedRecord]
    ) -> AccountCounts:
        details: Dict[str, List[Account]] = {role.value: [] for role in AccountRole}
        verified = 0
        total = 0
        for account in self._included(accounts, "id"):
            role = self._guard("account", account, skipped, lambda: AccountRole(account.role))
            if role is None:
                continue
            total += 1
            details[role.value].append(account)
            if account.is_verified:
                verified += 1
        return AccountCounts(
            total=total,
            by_role={role: len(items) for role, items in details.items()},
            verified=verified,
            unverified=total - verified,
            details={role: tuple(items) for role, items in details.items()},
        )

    def _order_counts(self, orders: Iterable[Order], skipped: List[SkippedRecord]) -> OrderCounts:
        details: Dict[str, List[Order]] = {status.value: [] for status in OrderStatus}
        by_bucket: Dict[str, int] = {bucket: 0 for bucket in ORDER_STATUS_BUCKETS.values()}
        total_amount = Decimal("0")
        counted: List[Order] = []

        for order in orders:
            parsed = self._guard(
                "order",
                order,
                skipped,
                lambda: (OrderStatus(order.status), _require_amount(order.total_amount)),
            )
            if parsed is None:
                continue
            status, amount = parsed
            details[status.value].append(order)
            by_bucket[order_bucket(status)] += 1
            total_amount += amount
            counted.append(order)

        return OrderCounts(
            total=len(counted),
            by_status={status: len(items) for status, items in details.items()},
            by_bucket=by_bucket,
            total_amount=total_amount,
            details={status: tuple(items) for status, items in details.items()},
            recent=tuple(_most_recent(counted, lambda o: o.created_at, self.recent_limit)),
        )

    def _subscription_counts(
        self, subscriptions: Iterable[Subscription], skipped: List[SkippedRecord]
    ) -> SubscriptionCounts:
        details: Dict[str, List[Subscription]] = {status.value: [] for status in SubscriptionStatus}
        total = 0
        for subscription in self._included(subscriptions, "account_id"):
            status = self._guard(
                "subscription", subscription, skipped, lambda: SubscriptionStatus(subscription.status)
            )
            if status is None:
                continue
            total += 1
            details[status.value].append(subscription)
        return SubscriptionCounts(
            total=total,
            by_status={status: len(items) for status, items in details.items()},
            details={status: tuple(items) for status, items in details.items()},
        )

    def _activity_counts(
        self,
        events: Iterable[ActivityEvent],
        now: datetime,
        skipped: List[SkippedRecord],
    ) -> ActivityCounts:
        local_now = now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)
        start_of_today = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        upper = as_utc(local_now)
        windows = {
            "today": as_utc(start_of_today),
            "week": as_utc(start_of_today - timedelta(days=WEEK_WINDOW_DAYS)),
            "month": as_utc(start_of_today - timedelta(days=MONTH_WINDOW_DAYS)),
        }
        active: Dict[str, set] = {name: set() for name in windows}
        by_date: Dict[str, List[Tuple[datetime, ActivityEvent]]] = {}
        timed: List[Tuple[datetime, ActivityEvent]] = []

        for event in self._included(events, "account_id"):
            timestamp = self._guard("activity_event", event, skipped, lambda: as_utc(event.created_at))
            if timestamp is None:
                continue
            timed.append((timestamp, event))
            by_date.setdefault(timestamp.date().isoformat(), []).append((timestamp, event))
            if timestamp > upper:
                continue
            for name, lower in windows.items():
                if timestamp >= lower:
                    active[name].add(event.account_id)

        days = tuple(
            ActivityDay(
                date=day,
                count=len(entries),
                events=tuple(event for _, event in _newest_first(entries)),
            )
            for day, entries in sorted(by_date.items(), reverse=True)
        )
        recent = tuple(event for _, event in _newest_first(timed)[: self.recent_limit])
        return ActivityCounts(
            today=len(active["today"]),
            week=len(active["week"]),
            month=len(active["month"]),
            by_date=days,
            recent=recent,
        )

    def _included(self, records: Iterable[T], account_field: str) -> Iterable[T]:
        for record in records:
            account_id = getattr(record, account_field, None)
            if account_id is not None and str(account_id) in self.excluded_account_ids:
                continue
            yield record

    def _guard(self, kind: str, record: Any, skipped: List[SkippedRecord], parse: Callable[[], T]) -> Optional[T]:
        try:
            return parse()
        except Exception as exc:
            record_id = str(getattr(record, "id", "") or "")
            self.logger.warning("Skipping %s %s in rollup: %s", kind, record_id or "<unknown>", exc)
            skipped.append(SkippedRecord(kind=kind, record_id=record_id, reason=str(exc)))
            return None


def _require_amount(value: Any) -> Decimal:
    amount = as_decimal(value if value is not None else 0)
    if amount is None:
        raise ValueError(f"invalid total amount {value!r}")
    return amount


def _newest_first(entries: Sequence[Tuple[datetime, T]]) -> List[Tuple[datetime, T]]:
    return sorted(entries, key=lambda entry: entry[0], reverse=True)


def _most_recent(records: Sequence[T], timestamp_of: Callable[[T], Optional[datetime]], limit: int) -> List[T]:
    floor = datetime.min.replace(tzinfo=timezone.utc)

    def sort_key(record: T) -> datetime:
        value = timestamp_of(record)
        return as_utc(value) if value is not None else floor

    return sorted(records, key=sort_key, reverse=True)[:limit]


def summarize(
    request: SourcingRequest,
    items: LineItems,
    bids: Iterable[VendorBid],
    *,
    logger=None,
) -> RequestSummary:
    """Summarize vendor totals for one sourcing request."""
    return RequestAggregator(logger=logger).summarize(request, items, bids)


def summarize_matches(matched_set: MatchedBidSet, *, logger=None) -> RequestSummary:
    return RequestAggregator(logger=logger).summarize_matches(matched_set)


def rollup(
    accounts: Iterable[Account],
    requests: Iterable[Order],
    subscriptions: Iterable[Subscription],
    events: Iterable[ActivityEvent],
    now: datetime,
    *,
    excluded_account_ids: Iterable[str] = (),
    recent_limit: int = DEFAULT_RECENT_LIMIT,
    logger=None,
) -> AnalyticsSnapshot:
    """Build the population-level analytics snapshot at ``now``."""
    aggregator = AnalyticsAggregator(
        excluded_account_ids=excluded_account_ids,
        recent_limit=recent_limit,
        logger=logger,
    )
    return aggregator.rollup(accounts, requests, subscriptions, events, now)
