import unittest
from datetime import datetime
from decimal import Decimal
from unittest import mock

from core.aggregator import RequestAggregator, summarize, summarize_matches
from core.bid_matcher import BidMatcher
from core.records import (
    Account,
    BidLineItem,
    RequestedLineItem,
    SourcingRequest,
    VendorBid,
)
from core.statuses import AccountRole, RequestStatus

DELIVERY = datetime(2025, 3, 10, 8, 30)


def _vendor(vendor_id, name):
    return Account(id=vendor_id, role=AccountRole.VENDOR, company_name=name)


class TestRequestAggregator(unittest.TestCase):
    def setUp(self) -> None:
        self.logger = mock.MagicMock()
        self.aggregator = RequestAggregator(logger=self.logger)
        self.request = SourcingRequest(
            id="req-1",
            title="Q1 restock",
            region="Oran",
            deadline=datetime(2025, 3, 1),
            status=RequestStatus.OPEN,
        )
        self.items = [
            RequestedLineItem(id="A", request_id="req-1", catalog_id="cat-a", quantity=10),
            RequestedLineItem(id="B", request_id="req-1", catalog_id="cat-b", quantity=5),
        ]
        self.bids = [
            VendorBid(
                id="bid-x",
                request_id="req-1",
                vendor_id="X",
                vendor=_vendor("X", "Pharma X"),
                items=(
                    BidLineItem(
                        id="x-a",
                        requested_item_id="A",
                        price=Decimal("100"),
                        delivery_date=DELIVERY,
                        free_units_percentage=Decimal("5"),
                    ),
                    BidLineItem(id="x-b", requested_item_id="B", price=Decimal("50"), delivery_date=DELIVERY),
                ),
            ),
            VendorBid(
                id="bid-y",
                request_id="req-1",
                vendor_id="Y",
                vendor=_vendor("Y", "Pharma Y"),
                items=(
                    BidLineItem(id="y-a", requested_item_id="A", price=Decimal("90"), delivery_date=DELIVERY),
                    BidLineItem(id="y-c", requested_item_id="C", price=Decimal("10"), delivery_date=DELIVERY),
                ),
            ),
        ]

    def test_vendor_totals_for_two_item_request(self) -> None:
        summary = self.aggregator.summarize(self.request, self.items, self.bids)

        self.assertEqual(2, summary.item_count)
        self.assertEqual(2, summary.response_count)
        self.assertEqual(Decimal("1250"), summary.vendor("X").total)
        self.assertEqual(Decimal("900"), summary.vendor("Y").total)
        self.assertEqual(["X", "Y"], [v.vendor_id for v in summary.vendors])

    def test_free_units_do_not_change_totals(self) -> None:
        summary = self.aggregator.summarize(self.request, self.items, self.bids)
        line = summary.vendor("X").lines[0]
        self.assertEqual(Decimal("5"), line.free_units_percentage)
        self.assertEqual(Decimal("1000"), line.line_total)
        self.assertEqual(10, line.quantity)

    def test_orphan_lines_are_reported_but_not_totalled(self) -> None:
        summary = self.aggregator.summarize(self.request, self.items, self.bids)
        vendor_y = summary.vendor("Y")
        self.assertEqual(1, len(vendor_y.lines))
        self.assertEqual(1, vendor_y.orphan_count)
        self.assertEqual(["y-c"], [o.bid_item.id for o in summary.orphans])

    def test_summary_is_idempotent(self) -> None:
        first = self.aggregator.summarize(self.request, self.items, self.bids)
        second = self.aggregator.summarize(self.request, self.items, self.bids)
        self.assertEqual(first, second)
        self.assertEqual(first.to_dict(), second.to_dict())

    def test_summarize_matches_accepts_a_prepared_match(self) -> None:
        matched = BidMatcher(logger=self.logger).match(self.request, self.items, self.bids)
        summary = summarize_matches(matched, logger=self.logger)
        self.assertEqual(Decimal("1250"), summary.vendor("X").total)

    def test_vendor_with_only_orphans_counts_as_response(self) -> None:
        bids = [
            VendorBid(
                id="bid-z",
                request_id="req-1",
                vendor_id="Z",
                vendor=_vendor("Z", "Pharma Z"),
                items=(BidLineItem(id="z-1", requested_item_id="gone", price=Decimal("1"), delivery_date=DELIVERY),),
            )
        ]
        summary = summarize(self.request, self.items, bids, logger=self.logger)
        self.assertEqual(1, summary.response_count)
        self.assertEqual(Decimal("0"), summary.vendor("Z").total)

    def test_duplicate_lines_for_same_item_are_both_summed(self) -> None:
        bids = [
            VendorBid(
                id="bid-x",
                request_id="req-1",
                vendor_id="X",
                items=(
                    BidLineItem(id="x-1", requested_item_id="B", price=Decimal("2.5"), delivery_date=DELIVERY),
                    BidLineItem(id="x-2", requested_item_id="B", price=Decimal("3"), delivery_date=DELIVERY),
                ),
            )
        ]
        summary = self.aggregator.summarize(self.request, self.items, bids)
        self.assertEqual(Decimal("27.5"), summary.vendor("X").total)

    def test_totals_keep_full_precision(self) -> None:
        bids = [
            VendorBid(
                id="bid-x",
                request_id="req-1",
                vendor_id="X",
                items=(
                    BidLineItem(id="x-1", requested_item_id="A", price=Decimal("0.125"), delivery_date=DELIVERY),
                ),
            )
        ]
        summary = self.aggregator.summarize(self.request, self.items, bids)
        self.assertEqual(Decimal("1.250"), summary.vendor("X").total)

    def test_rejected_lines_are_counted_per_vendor(self) -> None:
        bids = [
            VendorBid(
                id="bid-x",
                request_id="req-1",
                vendor_id="X",
                items=(
                    BidLineItem(id="x-1", requested_item_id="A", price=Decimal("-3"), delivery_date=DELIVERY),
                    BidLineItem(id="x-2", requested_item_id="B", price=Decimal("4"), delivery_date=DELIVERY),
                ),
            )
        ]
        summary = self.aggregator.summarize(self.request, self.items, bids)
        vendor_x = summary.vendor("X")
        self.assertEqual(1, vendor_x.rejected_count)
        self.assertEqual(Decimal("20"), vendor_x.total)
        self.assertEqual("negative_price", summary.rejected[0].reason)

    def test_request_without_bids(self) -> None:
        summary = self.aggregator.summarize(self.request, self.items, [])
        self.assertEqual(0, summary.response_count)
        self.assertEqual((), summary.vendors)
        self.assertEqual(2, summary.item_count)

    def test_to_dict_is_json_ready(self) -> None:
        payload = self.aggregator.summarize(self.request, self.items, self.bids).to_dict()
        totals = {vendor["vendor_id"]: vendor["total"] for vendor in payload["vendors"]}
        self.assertEqual({"X": "1250", "Y": "900"}, totals)
        self.assertEqual(2, payload["response_count"])


if __name__ == "__main__":
    unittest.main()
