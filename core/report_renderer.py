"""Render request summaries as an Excel workbook and an HTML email body."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from html import escape
from io import BytesIO
from typing import Any, Callable, List, Mapping, Optional

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font

from core.aggregator import PricedLine, RequestSummary, VendorTotal
from core.catalog import CatalogResolver, StaticCatalogResolver
from core.default_config import DEFAULT_CONFIG
from core.records import Account, Descriptor, RequestedLineItem, SourcingRequest
from utils.logger import setup_logger

CENTS = Decimal("0.01")
MONEY_FORMAT = "0.00"

REQUEST_SHEET = "Request"
ITEMS_SHEET = "Items"
RESPONSES_SHEET = "Responses"

ITEM_HEADERS = ["Product", "Form", "Strength", "Quantity"]
RESPONSE_HEADERS = [
    "Vendor",
    "Email",
    "Phone",
    "Product",
    "Quantity",
    "Unit price",
    "Free units %",
    "Line total",
    "Delivery date",
    "Expiry date",
]


class ReportRenderer:
    """Project a ``RequestSummary`` into the workbook and email forms.

    Any field that cannot be produced (unknown catalog entry, missing account,
    a resolver that raises) renders as the configured placeholder so the rest
    of the document is still produced.
    """

    def __init__(
        self,
        catalog: Optional[CatalogResolver] = None,
        *,
        config: Optional[Mapping[str, Any]] = None,
        logger=None,
    ) -> None:
        report_cfg = dict(DEFAULT_CONFIG["report"])
        report_cfg.update((config or {}).get("report", {}))
        self.catalog = catalog or StaticCatalogResolver()
        self.placeholder = str(report_cfg["placeholder"])
        self.operator_label = str(report_cfg["operator_label"])
        self.currency = str(report_cfg["currency"])
        self.public_base_url = str(report_cfg["public_base_url"]).rstrip("/")
        self.date_format = str(report_cfg["date_format"])
        self.datetime_format = str(report_cfg["datetime_format"])
        self.subject_template = str(report_cfg["email_subject"])
        self.logger = logger or setup_logger(self.__class__.__name__)

    # -- workbook -----------------------------------------------------------------

    def render_workbook(self, request: SourcingRequest, summary: RequestSummary) -> Workbook:
        workbook = Workbook()
        info = workbook.active
        info.title = REQUEST_SHEET
        for label, value in self._request_rows(request):
            info.append([label, self._cell(value)])
        for row in info.iter_rows(min_col=1, max_col=1):
            row[0].font = Font(bold=True)

        items_sheet = workbook.create_sheet(ITEMS_SHEET)
        self._append_header(items_sheet, ITEM_HEADERS)
        for item in summary.items:
            descriptor = self._descriptor(item)
            row = [
                descriptor.name if descriptor else self.placeholder,
                descriptor.form if descriptor else self.placeholder,
                descriptor.strength if descriptor else self.placeholder,
                item.quantity,
            ]
            items_sheet.append([self._cell(value) for value in row])

        responses = workbook.create_sheet(RESPONSES_SHEET)
        self._append_header(responses, RESPONSE_HEADERS)
        for vendor_total in summary.vendors:
            for line in vendor_total.lines:
                responses.append([self._cell(value) for value in self._response_row(vendor_total, line)])
                row = responses.max_row
                responses.cell(row=row, column=6).number_format = MONEY_FORMAT
                responses.cell(row=row, column=8).number_format = MONEY_FORMAT
        return workbook

    def workbook_bytes(self, workbook: Workbook) -> bytes:
        buffer = BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    @staticmethod
    def workbook_filename(request: SourcingRequest) -> str:
        return f"sourcing_request_{request.id}.xlsx"

    def _request_rows(self, request: SourcingRequest) -> List[List[Any]]:
        requester = request.requester
        return [
            ["Title", self._safe(lambda: request.title)],
            ["Requester", self._requester_label(request)],
            ["Email", self._contact(requester, "email")],
            ["Phone", self._contact(requester, "phone")],
            ["Region", self._safe(lambda: request.region)],
            ["Deadline", self._format_datetime(request.deadline)],
            ["Status", self._safe(lambda: request.status.value)],
            ["Public link", self._safe(lambda: self.public_url(request))],
            ["Created at", self._format_datetime(request.created_at)],
        ]

    def _response_row(self, vendor_total: VendorTotal, line: PricedLine) -> List[Any]:
        descriptor = self._descriptor(line.requested_item)
        free_units = line.free_units_percentage
        return [
            self._vendor_name(vendor_total),
            self._contact(vendor_total.vendor, "email"),
            self._contact(vendor_total.vendor, "phone"),
            descriptor.name if descriptor else self.placeholder,
            line.quantity,
            self._money(line.unit_price),
            free_units if free_units is not None else "",
            self._money(line.line_total),
            self._format_datetime(line.bid_item.delivery_date),
            self._format_date(line.bid_item.expiry_date) if line.bid_item.expiry_date else "",
        ]

    def _cell(self, value: Any) -> Any:
        """Strip characters worksheets cannot store from free-text cell values."""
        if not isinstance(value, str):
            return value
        cleaned = ILLEGAL_CHARACTERS_RE.sub("", value)
        if cleaned != value:
            self.logger.warning("Removed control characters from cell value %r.", value)
        return cleaned if cleaned or not value else self.placeholder

    @staticmethod
    def _append_header(sheet, headers: List[str]) -> None:
        sheet.append(headers)
        for cell in sheet[1]:
            cell.font = Font(bold=True)

    # -- email --------------------------------------------------------------------

    def email_subject(self, request: SourcingRequest) -> str:
        title = self._safe(lambda: request.title)
        try:
            return self.subject_template.format(title=title)
        except (KeyError, IndexError, ValueError) as exc:
            self.logger.warning(
                "Invalid email subject template %r (%s), using the default.", self.subject_template, exc
            )
        return DEFAULT_CONFIG["report"]["email_subject"].format(title=title)

    def render_email_body(
        self,
        request: SourcingRequest,
        summary: RequestSummary,
        include_contact_details: bool = False,
    ) -> str:
        """Return the HTML summary of a sourcing request and the bids it received."""
        body_parts: List[str] = [
            "<!DOCTYPE html>",
            "<html>",
            "<head>",
            '<meta charset="UTF-8" />',
            "<style>",
            "body { font-family: Arial, sans-serif; color: #333; margin: 0; padding: 0; }",
            ".wrapper { max-width: 600px; margin: 0 auto; }",
            ".header { background: #4F46E5; padding: 16px; text-align: center; border-radius: 4px 4px 0 0; }",
            ".header h1 { margin: 0; color: #fff; font-size: 20px; }",
            ".content { padding: 16px; background: #f9fafb; }",
            ".content h2 { font-size: 16px; color: #4F46E5; margin: 16px 0 8px; }",
            ".field { margin: 4px 0; }",
            ".vendor { margin-bottom: 12px; padding: 12px; background: #fff; border: 1px solid #e5e7eb; border-radius: 4px; }",
            ".link-button { display: inline-block; padding: 10px 20px; background: #4F46E5; color: #fff; text-decoration: none; border-radius: 4px; font-weight: bold; }",
            ".footer { font-size: 12px; color: #777; margin-top: 24px; text-align: center; }",
            "</style>",
            "</head>",
            "<body>",
            '<div class="wrapper">',
            '<div class="header"><h1>Sourcing request results</h1></div>',
            '<div class="content">',
            self._field("Title", self._safe(lambda: request.title)),
            self._field("Region", self._safe(lambda: request.region)),
            self._field("Deadline", self._format_date(request.deadline)),
            "<h2>Requested items</h2>",
            "<ul>",
        ]
        for item in summary.items:
            body_parts.append(
                f"<li>{escape(self._item_label(item))} : {escape(str(item.quantity))}</li>"
            )
        body_parts.extend(["</ul>", "<h2>Responses received</h2>"])

        if summary.vendors:
            for vendor_total in summary.vendors:
                body_parts.extend(self._vendor_block(vendor_total, include_contact_details))
        else:
            body_parts.append('<p class="field">No responses received.</p>')

        public_url = escape(self._safe(lambda: self.public_url(request)))
        body_parts.extend(
            [
                f'<p style="text-align:center;margin:20px 0;"><a class="link-button" href="{public_url}">View the sourcing request</a></p>',
                '<p class="footer">This email was generated automatically.</p>',
                "</div>",
                "</div>",
                "</body>",
                "</html>",
            ]
        )
        return "\n".join(body_parts)

    def _vendor_block(self, vendor_total: VendorTotal, include_contact_details: bool) -> List[str]:
        name = escape(self._vendor_name(vendor_total))
        parts = ['<div class="vendor">', f'<p class="field"><strong>{name}</strong></p>']
        if include_contact_details:
            parts.append(self._field("Email", self._contact(vendor_total.vendor, "email")))
            parts.append(self._field("Phone", self._contact(vendor_total.vendor, "phone")))
        parts.append("<ul>")
        for line in vendor_total.lines:
            free_units = line.free_units_percentage
            details = ", ".join(
                [
                    self._item_label(line.requested_item),
                    f"Qty: {line.quantity}",
                    f"Unit price: {self._format_money(line.unit_price)}",
                    f"Free units: {free_units if free_units is not None else '-'}%",
                    f"Total: {self._format_money(line.line_total)}",
                    f"Delivery: {self._format_date(line.bid_item.delivery_date)}",
                ]
            )
            parts.append(f"<li>{escape(details)}</li>")
        parts.append("</ul>")
        parts.append(
            f'<p class="field"><strong>Total {name} :</strong> {escape(self._format_money(vendor_total.total))}</p>'
        )
        parts.append("</div>")
        return parts

    @staticmethod
    def _field(label: str, value: str) -> str:
        return f'<p class="field"><strong>{escape(label)} :</strong> {escape(value)}</p>'

    # -- shared field helpers -------------------------------------------------------

    def public_url(self, request: SourcingRequest) -> str:
        if not request.public_link:
            return self.placeholder
        return f"{self.public_base_url}/tenders/public/{request.public_link}"

    def _safe(self, getter: Callable[[], Any]) -> str:
        try:
            value = getter()
        except Exception as exc:
            self.logger.warning("Rendering placeholder for unreadable field: %s", exc)
            return self.placeholder
        if value is None or value == "":
            return self.placeholder
        return str(value)

    def _descriptor(self, item: RequestedLineItem) -> Optional[Descriptor]:
        try:
            descriptor = self.catalog.resolve(item.catalog_id)
        except Exception as exc:
            self.logger.warning("Catalog lookup failed for %s: %s", item.catalog_id, exc)
            return None
        if descriptor is None:
            self.logger.warning("No catalog entry for %s.", item.catalog_id)
        return descriptor

    def _item_label(self, item: RequestedLineItem) -> str:
        descriptor = self._descriptor(item)
        return descriptor.label if descriptor else self.placeholder

    def _requester_label(self, request: SourcingRequest) -> str:
        if request.requester_id is None:
            return self.operator_label
        if request.requester is None:
            return self.placeholder
        return request.requester.company_name or self.placeholder

    def _vendor_name(self, vendor_total: VendorTotal) -> str:
        if vendor_total.vendor is None:
            return self.placeholder
        return vendor_total.vendor.company_name or self.placeholder

    def _contact(self, account: Optional[Account], attribute: str) -> str:
        if account is None:
            return self.placeholder
        return self._safe(lambda: getattr(account, attribute))

    @staticmethod
    def _money(value: Decimal) -> Decimal:
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)

    def _format_money(self, value: Decimal) -> str:
        return f"{self._money(value)} {self.currency}"

    def _format_date(self, value: Optional[date]) -> str:
        return self._safe(lambda: value.strftime(self.date_format))

    def _format_datetime(self, value: Optional[datetime]) -> str:
        if value is not None and not isinstance(value, datetime):
            return self._format_date(value)
        return self._safe(lambda: value.strftime(self.datetime_format))
