"""
Invoice converter - reads a manufacturer's shipping invoice file, maps courier
names to upload codes and writes courier / tracking number back onto the
matching orders.

The invoice layout comes from an InvoiceTemplate: columns are either letters
(use_column_index) or header texts looked up in the header row.
"""

import datetime
import io
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import column_index_from_string

from ordersheet.errors import StructuralError
from ordersheet.ingest.workbook_reader import SheetGrid, WorkbookSource, read_sheet
from ordersheet.models import CanonicalOrderRecord
from ordersheet.settings import CourierMapping, InvoiceTemplate
from ordersheet.utils.snitch import snitch

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_ORDER_NOT_FOUND = "order_not_found"
STATUS_COURIER_ERROR = "courier_error"

UPLOAD_HEADERS = ["주문번호", "택배사", "송장번호"]


@dataclass
class InvoiceRow:
    row: int
    order_number: str
    courier_name: str
    tracking_number: str


@dataclass
class InvoiceParseResult:
    invoices: List[InvoiceRow] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class InvoiceResultItem:
    order_number: str
    tracking_number: str
    status: str
    courier_code: str = ""
    original_courier: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "orderNumber": self.order_number,
            "courierCode": self.courier_code,
            "trackingNumber": self.tracking_number,
            "status": self.status,
            "originalCourier": self.original_courier,
            "errorMessage": self.error_message,
        }


@dataclass
class InvoiceConversion:
    results: List[InvoiceResultItem] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    file_name: str = ""
    content: Optional[bytes] = None

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.status == STATUS_SUCCESS)

    def summary(self) -> Dict[str, int]:
        counts = {STATUS_SUCCESS: 0, STATUS_ORDER_NOT_FOUND: 0, STATUS_COURIER_ERROR: 0}
        for item in self.results:
            counts[item.status] += 1
        return counts


def build_courier_lookup(couriers: Iterable[CourierMapping]) -> Dict[str, str]:
    """Lower-cased courier name and aliases -> upload code. Disabled mappings are skipped."""
    lookup: Dict[str, str] = {}
    for mapping in couriers:
        if not mapping.enabled:
            continue
        lookup[mapping.name.strip().lower()] = mapping.code
        for alias in mapping.aliases:
            if alias.strip():
                lookup[alias.strip().lower()] = mapping.code
    return lookup


def invoice_filename(manufacturer_name: str, on: Optional[datetime.date] = None) -> str:
    on = on or datetime.date.today()
    return f"[송장]_{manufacturer_name}_{on.strftime('%Y%m%d')}.xlsx"


def _column_positions(grid: SheetGrid, template: InvoiceTemplate) -> Dict[str, int]:
    wanted = {
        "order_number": template.order_number_column,
        "courier": template.courier_column,
        "tracking_number": template.tracking_number_column,
    }
    if template.use_column_index:
        return {name: column_index_from_string(letter) for name, letter in wanted.items()}

    headers = grid.row_texts(template.header_row)
    positions = {}
    missing = []
    for name, header in wanted.items():
        if header in headers:
            positions[name] = headers.index(header) + 1
        else:
            missing.append(header)
    if missing:
        raise StructuralError(
            f"Invoice file header row {template.header_row} is missing column(s): {', '.join(missing)}"
        )
    return positions


def parse_invoice_grid(grid: SheetGrid, template: InvoiceTemplate) -> InvoiceParseResult:
    positions = _column_positions(grid, template)
    result = InvoiceParseResult()

    for row in range(template.data_start_row, grid.max_row + 1):
        order_number = grid.text(row, positions["order_number"])
        courier_name = grid.text(row, positions["courier"])
        tracking_number = grid.text(row, positions["tracking_number"])

        if not order_number and not courier_name and not tracking_number:
            continue
        if not order_number:
            result.errors.append(f"Row {row}: order number is empty")
            continue
        if not tracking_number:
            result.errors.append(f"Row {row}: tracking number is empty")
            continue

        result.invoices.append(InvoiceRow(row=row, order_number=order_number,
                                          courier_name=courier_name, tracking_number=tracking_number))

    return result


def parse_invoice_file(source: WorkbookSource, template: InvoiceTemplate) -> InvoiceParseResult:
    return parse_invoice_grid(read_sheet(source), template)


def convert_single(invoice: InvoiceRow, courier_lookup: Dict[str, str],
                   known_orders: Dict[str, CanonicalOrderRecord]) -> InvoiceResultItem:
    if invoice.order_number not in known_orders:
        return InvoiceResultItem(order_number=invoice.order_number, tracking_number=invoice.tracking_number,
                                 status=STATUS_ORDER_NOT_FOUND, error_message="Order number not found")

    code = courier_lookup.get(invoice.courier_name.strip().lower())
    if not code:
        return InvoiceResultItem(order_number=invoice.order_number, tracking_number=invoice.tracking_number,
                                 status=STATUS_COURIER_ERROR, original_courier=invoice.courier_name)

    return InvoiceResultItem(order_number=invoice.order_number, tracking_number=invoice.tracking_number,
                             status=STATUS_SUCCESS, courier_code=code)


def write_upload_file(results: Iterable[InvoiceResultItem]) -> bytes:
    """Successful rows as an upload sheet: order number, courier code, tracking number."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "송장"
    ws.append(UPLOAD_HEADERS)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for item in results:
        if item.status == STATUS_SUCCESS:
            ws.append([item.order_number, item.courier_code, item.tracking_number])

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class InvoiceConverter:

    def __init__(self, couriers: Iterable[CourierMapping], template: InvoiceTemplate):
        self.courier_lookup = build_courier_lookup(couriers)
        self.template = template

    @snitch
    def convert(self, source: WorkbookSource, orders: Iterable[CanonicalOrderRecord],
                manufacturer_name: str, on: Optional[datetime.date] = None) -> InvoiceConversion:
        """
        Match invoice rows to orders and set courier / tracking number on them.

        Orders are updated in place, only for rows with status `success`.
        Raises StructuralError when the file or its header row is unusable.
        """
        parsed = parse_invoice_file(source, self.template)
        conversion = InvoiceConversion(errors=list(parsed.errors))

        if not parsed.invoices:
            conversion.errors.append("No invoice rows could be read from the file")
            logger.warning(f"Invoice file for {manufacturer_name} produced no rows")
            return conversion

        known = {o.order_number: o for o in orders}
        for invoice in parsed.invoices:
            item = convert_single(invoice, self.courier_lookup, known)
            conversion.results.append(item)
            if item.status == STATUS_SUCCESS:
                order = known[item.order_number]
                order.courier = item.courier_code
                order.tracking_number = item.tracking_number

        conversion.file_name = invoice_filename(manufacturer_name, on)
        if conversion.success_count:
            conversion.content = write_upload_file(conversion.results)

        logger.info(f"Invoice conversion for {manufacturer_name}: {conversion.summary()}")
        return conversion
