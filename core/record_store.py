"""Read marketplace records from the database and hand them out as typed records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from core.records import (
    Account,
    ActivityEvent,
    BidLineItem,
    Order,
    RequestedLineItem,
    SourcingRequest,
    Subscription,
    VendorBid,
)
from core.statuses import RequestStatus
from models.account import AccountRecord, SubscriptionRecord
from models.activity_event import ActivityEventRecord
from models.order import OrderRecord
from models.sourcing_request import RequestedLineItemRecord, SourcingRequestRecord
from models.vendor_bid import BidLineItemRecord, VendorBidRecord
from utils.logger import setup_logger

T = TypeVar("T")


@dataclass(frozen=True)
class RequestBundle:
    """Everything needed to summarize one sourcing request."""

    request: SourcingRequest
    items: Tuple[RequestedLineItem, ...]
    bids: Tuple[VendorBid, ...]


@dataclass(frozen=True)
class Population:
    """Record populations consumed by the analytics rollup."""

    accounts: Tuple[Account, ...]
    orders: Tuple[Order, ...]
    subscriptions: Tuple[Subscription, ...]
    events: Tuple[ActivityEvent, ...]


class RecordStore:
    """Query helpers over the record tables.

    Rows that cannot be converted into typed records (unknown status values,
    broken numbers) are logged and skipped one by one.
    """

    def __init__(self, db_session_factory: Callable[[], Any], *, logger=None) -> None:
        self.db_session_factory = db_session_factory
        self.logger = logger or setup_logger(self.__class__.__name__)

    def list_requests(self, status: Optional[str] = None) -> List[SourcingRequest]:
        """Return sourcing requests, newest first, optionally filtered by stored status."""
        session = self._session()
        try:
            query = session.query(SourcingRequestRecord)
            if status:
                query = query.filter(SourcingRequestRecord.status == RequestStatus(status).value)
            records = query.order_by(SourcingRequestRecord.created_at.desc()).all()
            accounts = self._accounts_by_id(
                session, {r.requester_id for r in records if r.requester_id}
            )
            return self._convert(
                records, lambda r: r.to_entity(accounts.get(r.requester_id)), "sourcing request"
            )
        finally:
            session.close()

    def get_request(self, request_id: str) -> Optional[SourcingRequest]:
        session = self._session()
        try:
            record = session.get(SourcingRequestRecord, request_id)
            if not record:
                return None
            accounts = self._accounts_by_id(session, {record.requester_id} - {None})
            converted = self._convert(
                [record], lambda r: r.to_entity(accounts.get(r.requester_id)), "sourcing request"
            )
            return converted[0] if converted else None
        finally:
            session.close()

    def load_request_bundle(self, request_id: str) -> Optional[RequestBundle]:
        """Load a request with its items and bids, or ``None`` when it does not exist."""
        request = self.get_request(request_id)
        if request is None:
            return None
        return self.load_bundles([request])[request.id]

    def load_bundles(self, requests: Iterable[SourcingRequest]) -> Dict[str, RequestBundle]:
        """Load items and bids for already-loaded requests in one batch of queries."""
        requests = list(requests)
        request_ids = [request.id for request in requests]
        if not request_ids:
            return {}

        session = self._session()
        try:
            item_records = (
                session.query(RequestedLineItemRecord)
                .filter(RequestedLineItemRecord.request_id.in_(request_ids))
                .order_by(RequestedLineItemRecord.created_at, RequestedLineItemRecord.id)
                .all()
            )
            bid_records = (
                session.query(VendorBidRecord)
                .filter(VendorBidRecord.request_id.in_(request_ids))
                .order_by(VendorBidRecord.created_at, VendorBidRecord.id)
                .all()
            )
            line_records = []
            if bid_records:
                line_records = (
                    session.query(BidLineItemRecord)
                    .filter(BidLineItemRecord.bid_id.in_([bid.id for bid in bid_records]))
                    .order_by(BidLineItemRecord.created_at, BidLineItemRecord.id)
                    .all()
                )
            vendors = self._accounts_by_id(session, {bid.vendor_id for bid in bid_records})

            lines_by_bid: Dict[str, List[BidLineItem]] = {}
            for line_record in line_records:
                converted = self._convert([line_record], lambda r: r.to_entity(), "bid line")
                if converted:
                    lines_by_bid.setdefault(line_record.bid_id, []).extend(converted)

            items = self._convert(item_records, lambda r: r.to_entity(), "requested item")
            bids = self._convert(
                bid_records,
                lambda r: r.to_entity(lines_by_bid.get(r.id, ()), vendors.get(r.vendor_id)),
                "vendor bid",
            )
        finally:
            session.close()

        items_by_request: Dict[str, List[RequestedLineItem]] = {}
        for item in items:
            items_by_request.setdefault(item.request_id, []).append(item)
        bids_by_request: Dict[str, List[VendorBid]] = {}
        for bid in bids:
            bids_by_request.setdefault(bid.request_id, []).append(bid)

        return {
            request.id: RequestBundle(
                request=request,
                items=tuple(items_by_request.get(request.id, ())),
                bids=tuple(bids_by_request.get(request.id, ())),
            )
            for request in requests
        }

    def load_population(self) -> Population:
        """Load every account, order, subscription and activity event."""
        session = self._session()
        try:
            accounts = self._convert(
                session.query(AccountRecord).order_by(AccountRecord.created_at.desc()).all(),
                lambda r: r.to_entity(),
                "account",
            )
            orders = self._convert(
                session.query(OrderRecord).order_by(OrderRecord.created_at.desc()).all(),
                lambda r: r.to_entity(),
                "order",
            )
            subscriptions = self._convert(
                session.query(SubscriptionRecord).all(), lambda r: r.to_entity(), "subscription"
            )
            events = self._convert(
                session.query(ActivityEventRecord)
                .order_by(ActivityEventRecord.created_at.desc())
                .all(),
                lambda r: r.to_entity(),
                "activity event",
            )
        finally:
            session.close()
        return Population(
            accounts=tuple(accounts),
            orders=tuple(orders),
            subscriptions=tuple(subscriptions),
            events=tuple(events),
        )

    def _accounts_by_id(self, session, account_ids: Iterable[str]) -> Dict[str, Account]:
        ids = [account_id for account_id in account_ids if account_id]
        if not ids:
            return {}
        records = session.query(AccountRecord).filter(AccountRecord.id.in_(ids)).all()
        accounts = self._convert(records, lambda r: r.to_entity(), "account")
        return {account.id: account for account in accounts}

    def _convert(self, records: Iterable[Any], convert: Callable[[Any], T], kind: str) -> List[T]:
        converted: List[T] = []
        for record in records:
            try:
                converted.append(convert(record))
            except Exception as exc:
                self.logger.warning(
                    "Skipping %s %s: %s", kind, getattr(record, "id", "<unknown>"), exc
                )
        return converted

    def _session(self):
        if not self.db_session_factory:
            raise RuntimeError("Database session factory is not configured.")
        return self.db_session_factory()
