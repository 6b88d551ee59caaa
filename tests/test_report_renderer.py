import tempfile
import unittest
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from unittest import mock

from openpyxl import load_workbook

from core.aggregator import RequestAggregator
from core.catalog import StaticCatalogResolver
from core.records import (
    Account,
    BidLineItem,
    Descriptor,
    RequestedLineItem,
    SourcingRequest,
    VendorBid,
)
from core.report_renderer import (
    ITEMS_SHEET,
    REQUEST_SHEET,
    RESPONSE_HEADERS,
    RESPONSES_SHEET,
    ReportRenderer,
)
from core.statuses import AccountRole, RequestStatus


class ExplodingCatalog:
    def resolve(self, item_id):
        raise RuntimeError("catalog offline")


class TestReportRenderer(unittest.TestCase):
    def setUp(self) -> None:
        self.logger = mock.MagicMock()
        self.catalog = StaticCatalogResolver(
            {
                "cat-a": Descriptor(name="Amoxicillin", form="capsule", strength="500mg"),
                "cat-b": Descriptor(name="Paracetamol", form="tablet", strength="1g"),
            }
        )
        self.renderer = ReportRenderer(self.catalog, logger=self.logger)
        self.requester = Account(
            id="r1",
            role=AccountRole.REQUESTER,
            company_name="Clinique El Amel",
            email="achats@elamel.dz",
            phone="021 00 00 00",
        )
        self.request = SourcingRequest(
            id="req-42",
            title="Winter stock",
            region="Blida",
            deadline=datetime(2025, 1, 20, 18, 0),
            status=RequestStatus.OPEN,
            created_at=datetime(2025, 1, 2, 9, 15),
            requester_id="r1",
            requester=self.requester,
            public_link="abc123",
        )
        self.items = [
            RequestedLineItem(id="A", request_id="req-42", catalog_id="cat-a", quantity=3),
            RequestedLineItem(id="B", request_id="req-42", catalog_id="cat-b", quantity=7),
        ]
        vendor = Account(
            id="v1",
            role=AccountRole.VENDOR,
            company_name="Pharma <Nord>",
            email="sales@nord.dz",
            phone="023 11 22 33",
        )
        self.bids = [
            VendorBid(
                id="bid-1",
                request_id="req-42",
                vendor_id="v1",
                vendor=vendor,
                items=(
                    BidLineItem(
                        id="l1",
                        requested_item_id="A",
                        price=Decimal("12.345"),
                        delivery_date=datetime(2025, 2, 1, 10, 0),
                        free_units_percentage=Decimal("10"),
                        expiry_date=date(2027, 6, 30),
                    ),
                    BidLineItem(
                        id="l2",
                        requested_item_id="B",
                        price=Decimal("4"),
                        delivery_date=datetime(2025, 2, 3, 10, 0),
                    ),
                    BidLineItem(
                        id="orphan",
                        requested_item_id="Z",
                        price=Decimal("99"),
                        delivery_date=datetime(2025, 2, 3, 10, 0),
                    ),
                ),
            )
        ]
        self.summary = RequestAggregator(logger=self.logger).summarize(self.request, self.items, self.bids)

    def _rows(self, sheet):
        return [list(row) for row in sheet.iter_rows(values_only=True)]

    def test_workbook_has_three_sheets(self) -> None:
        workbook = self.renderer.render_workbook(self.request, self.summary)
        self.assertEqual([REQUEST_SHEET, ITEMS_SHEET, RESPONSES_SHEET], workbook.sheetnames)

    def test_request_sheet_fields(self) -> None:
        workbook = self.renderer.render_workbook(self.request, self.summary)
        fields = dict(self._rows(workbook[REQUEST_SHEET]))
        self.assertEqual("Winter stock", fields["Title"])
        self.assertEqual("Clinique El Amel", fields["Requester"])
        self.assertEqual("achats@elamel.dz", fields["Email"])
        self.assertEqual("20/01/2025 18:00", fields["Deadline"])
        self.assertEqual("open", fields["Status"])
        self.assertEqual("https://www.pharmaconnect-dz.com/tenders/public/abc123", fields["Public link"])

    def test_items_sheet_lists_descriptors(self) -> None:
        workbook = self.renderer.render_workbook(self.request, self.summary)
        rows = self._rows(workbook[ITEMS_SHEET])
        self.assertEqual(["Product", "Form", "Strength", "Quantity"], rows[0])
        self.assertEqual(["Amoxicillin", "capsule", "500mg", 3], rows[1])
        self.assertEqual(["Paracetamol", "tablet", "1g", 7], rows[2])

    def test_responses_sheet_rounds_money_and_omits_orphans(self) -> None:
        workbook = self.renderer.render_workbook(self.request, self.summary)
        sheet = workbook[RESPONSES_SHEET]
        rows = self._rows(sheet)

        self.assertEqual(RESPONSE_HEADERS, rows[0])
        self.assertEqual(3, len(rows))
        first = rows[1]
        self.assertEqual("Pharma <Nord>", first[0])
        self.assertEqual(Decimal("12.35"), first[5])
        self.assertEqual(Decimal("10"), first[6])
        self.assertEqual(Decimal("37.04"), first[7])
        self.assertEqual("01/02/2025 10:00", first[8])
        self.assertEqual("30/06/2027", first[9])
        self.assertEqual("", rows[2][6])
        self.assertEqual("", rows[2][9])
        self.assertEqual("0.00", sheet.cell(row=2, column=8).number_format)

    def test_responses_sheet_present_without_bids(self) -> None:
        summary = RequestAggregator(logger=self.logger).summarize(self.request, self.items, [])
        workbook = self.renderer.render_workbook(self.request, summary)
        rows = self._rows(workbook[RESPONSES_SHEET])
        self.assertEqual([RESPONSE_HEADERS], rows)

    def test_missing_fields_render_placeholder(self) -> None:
        request = SourcingRequest(
            id="req-43",
            title="",
            region="Oran",
            deadline=None,
            status=RequestStatus.CLOSED,
            requester_id="ghost",
        )
        renderer = ReportRenderer(ExplodingCatalog(), logger=self.logger)
        summary = RequestAggregator(logger=self.logger).summarize(request, [], [])
        workbook = renderer.render_workbook(request, summary)
        fields = dict(self._rows(workbook[REQUEST_SHEET]))
        self.assertEqual("N/A", fields["Title"])
        self.assertEqual("N/A", fields["Requester"])
        self.assertEqual("N/A", fields["Deadline"])
        self.assertEqual("N/A", fields["Public link"])

    def test_operator_created_request_shows_operator_label(self) -> None:
        request = SourcingRequest(
            id="req-44",
            title="Operator request",
            region="Alger",
            deadline=None,
            status=RequestStatus.OPEN,
        )
        summary = RequestAggregator(logger=self.logger).summarize(request, [], [])
        fields = dict(self._rows(self.renderer.render_workbook(request, summary)[REQUEST_SHEET]))
        self.assertEqual("Admin", fields["Requester"])

    def test_catalog_failure_does_not_abort_rendering(self) -> None:
        renderer = ReportRenderer(ExplodingCatalog(), logger=self.logger)
        workbook = renderer.render_workbook(self.request, self.summary)
        rows = self._rows(workbook[ITEMS_SHEET])
        self.assertEqual(["N/A", "N/A", "N/A", 3], rows[1])
        self.logger.warning.assert_called()

    def test_workbook_survives_save_and_load(self) -> None:
        workbook = self.renderer.render_workbook(self.request, self.summary)
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / self.renderer.workbook_filename(self.request)
            path.write_bytes(self.renderer.workbook_bytes(workbook))
            loaded = load_workbook(path)
            self.assertEqual("sourcing_request_req-42.xlsx", path.name)
            self.assertEqual([REQUEST_SHEET, ITEMS_SHEET, RESPONSES_SHEET], loaded.sheetnames)
            self.assertAlmostEqual(37.04, float(loaded[RESPONSES_SHEET].cell(row=2, column=8).value))

    def test_email_body_lists_items_and_vendor_totals(self) -> None:
        body = self.renderer.render_email_body(self.request, self.summary)
        self.assertIn("Winter stock", body)
        self.assertIn("Amoxicillin – capsule 500mg : 3", body)
        self.assertIn("Pharma &lt;Nord&gt;", body)
        self.assertIn("Unit price: 12.35 DZD", body)
        self.assertIn("Free units: 10%", body)
        self.assertIn("Free units: -%", body)
        self.assertIn("65.04 DZD", body)
        self.assertIn("https://www.pharmaconnect-dz.com/tenders/public/abc123", body)
        self.assertNotIn("sales@nord.dz", body)

    def test_email_body_contact_details_toggle(self) -> None:
        body = self.renderer.render_email_body(self.request, self.summary, include_contact_details=True)
        self.assertIn("sales@nord.dz", body)
        self.assertIn("023 11 22 33", body)

    def test_email_body_without_responses(self) -> None:
        summary = RequestAggregator(logger=self.logger).summarize(self.request, self.items, [])
        body = self.renderer.render_email_body(self.request, summary)
        self.assertIn("No responses received.", body)

    def test_email_subject_uses_configured_template(self) -> None:
        renderer = ReportRenderer(
            self.catalog,
            config={"report": {"email_subject": "Results for {title}"}},
            logger=self.logger,
        )
        self.assertEqual("Results for Winter stock", renderer.email_subject(self.request))

    def test_email_subject_with_unknown_field_falls_back_to_default(self) -> None:
        renderer = ReportRenderer(
            self.catalog,
            config={"report": {"email_subject": "Results {name}"}},
            logger=self.logger,
        )
        self.assertEqual("Sourcing request results: Winter stock", renderer.email_subject(self.request))
        self.logger.warning.assert_called()

    def test_control_characters_are_stripped_from_cells(self) -> None:
        request = replace(self.request, title="Stock\x01 hiver", region="\x0b")
        vendor = Account(id="v9", role=AccountRole.VENDOR, company_name="Pharma\x0bGros", phone="\x1f")
        bids = [
            VendorBid(
                id="bid-9",
                request_id="req-42",
                vendor_id="v9",
                vendor=vendor,
                items=(
                    BidLineItem(
                        id="l9",
                        requested_item_id="A",
                        price=Decimal("2"),
                        delivery_date=datetime(2025, 2, 1, 10, 0),
                    ),
                ),
            )
        ]
        catalog = StaticCatalogResolver({"cat-a": Descriptor(name="Amoxi\x02cillin")})
        renderer = ReportRenderer(catalog, logger=self.logger)
        summary = RequestAggregator(logger=self.logger).summarize(request, self.items, bids)

        workbook = load_workbook(BytesIO(renderer.workbook_bytes(renderer.render_workbook(request, summary))))

        fields = dict(self._rows(workbook[REQUEST_SHEET]))
        self.assertEqual("Stock hiver", fields["Title"])
        self.assertEqual("N/A", fields["Region"])
        response = self._rows(workbook[RESPONSES_SHEET])[1]
        self.assertEqual("PharmaGros", response[0])
        self.assertEqual("N/A", response[2])
        self.assertEqual("Amoxicillin", response[3])
        self.assertEqual("Amoxicillin", workbook[ITEMS_SHEET].cell(row=2, column=1).value)


if __name__ == "__main__":
    unittest.main()
