"""
Order parser - turns uploaded source sheets into CanonicalOrderRecords.

Two source families:
- the primary aggregation export (header on row 1, columns resolved by the
  synonym dictionary)
- channel uploads, read through a `shopping_mall` MappingRuleSet whose
  header bindings name the channel's own header texts
"""

import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ordersheet.blueprint.fields import CanonicalFields, KIND_CURRENCY, KIND_DATE, KIND_INT
from ordersheet.blueprint.synonyms import SynonymDictionary
from ordersheet.errors import StructuralError
from ordersheet.ingest.workbook_reader import SheetGrid, WorkbookSource, read_sheet
from ordersheet.mapping.ruleset import MappingRuleSet
from ordersheet.models import CanonicalOrderRecord
from ordersheet.render.export_pipeline import SheetSnapshot
from ordersheet.utils.snitch import snitch
from ordersheet.utils.text import (
    normalize_manufacturer_name,
    parse_date_value,
    to_decimal,
)

logger = logging.getLogger(__name__)

PRIMARY_HEADER_ROW = 1
PRIMARY_DATA_START_ROW = 2


@dataclass
class ParseError:
    row: int
    message: str


@dataclass
class ParseResult:
    orders: List[CanonicalOrderRecord] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)
    total_rows: int = 0
    skipped_rows: int = 0
    snapshot: Optional[SheetSnapshot] = None


def _quantity(text: str) -> int:
    if not text:
        return 1
    number = to_decimal(text)
    if number is None or number <= 0 or number != number.to_integral_value():
        raise ValueError(f"Invalid quantity '{text}'")
    return int(number)


def build_record(values: Dict[str, str], created_at: Optional[datetime.datetime] = None) -> CanonicalOrderRecord:
    """Convert trimmed field texts into a typed record. `orderNumber` must be present."""
    kwargs: Dict[str, Any] = {}
    for key, text in values.items():
        definition = CanonicalFields.get(key)
        if definition is None:
            continue
        if definition.kind == KIND_INT:
            kwargs[definition.attr] = _quantity(text)
        elif definition.kind == KIND_CURRENCY:
            kwargs[definition.attr] = to_decimal(text) or Decimal("0")
        elif definition.kind == KIND_DATE:
            parsed = parse_date_value(text)
            if key == "cjDate":
                kwargs[definition.attr] = parsed.date() if parsed else None
            else:
                kwargs[definition.attr] = parsed
        elif key == "manufacturerName":
            kwargs[definition.attr] = normalize_manufacturer_name(text)
        else:
            kwargs[definition.attr] = text

    kwargs["created_at"] = created_at or datetime.datetime.now()
    return CanonicalOrderRecord(**kwargs)


class OrderParser:
    """Parses source sheets. Row-level problems become ParseErrors, not exceptions."""

    def __init__(self, synonyms: SynonymDictionary):
        self.synonyms = synonyms

    def _resolve_columns(self, grid: SheetGrid, header_row: int) -> Dict[str, List[int]]:
        columns: Dict[str, List[int]] = {}
        for col, header in enumerate(grid.row_texts(header_row), start=1):
            field_key = self.synonyms.resolve(header)
            if field_key:
                columns.setdefault(field_key, []).append(col)
        return columns

    @snitch
    def parse_primary(self, source: WorkbookSource) -> ParseResult:
        """
        Parse the primary aggregation export.

        Rows without an order number are skipped. When several columns resolve
        to one field, the leftmost non-empty value wins.

        Raises:
            StructuralError: empty sheet, or no column resolves to orderNumber
        """
        grid = read_sheet(source)
        if grid.is_empty():
            raise StructuralError("Primary export sheet is empty")

        columns = self._resolve_columns(grid, PRIMARY_HEADER_ROW)
        if "orderNumber" not in columns:
            raise StructuralError(
                f"No order number column in header row {PRIMARY_HEADER_ROW}: {grid.row_texts(PRIMARY_HEADER_ROW)}"
            )
        logger.info(f"Primary export: resolved {len(columns)} field(s) from headers")

        result = ParseResult(total_rows=max(grid.max_row - PRIMARY_HEADER_ROW, 0))
        seen = set()
        for row in range(PRIMARY_DATA_START_ROW, grid.max_row + 1):
            if grid.non_empty_count(row) == 0:
                continue
            values = {}
            for field_key, cols in columns.items():
                values[field_key] = next((grid.text(row, c) for c in cols if grid.text(row, c)), "")

            if not values["orderNumber"]:
                result.skipped_rows += 1
                continue
            if values["orderNumber"] in seen:
                result.errors.append(ParseError(row, f"Duplicate order number {values['orderNumber']}"))
                continue
            seen.add(values["orderNumber"])

            try:
                result.orders.append(build_record(values))
            except (ValueError, TypeError) as e:
                result.errors.append(ParseError(row, str(e)))

        logger.info(
            f"Primary export parsed: {len(result.orders)} order(s), "
            f"{result.skipped_rows} skipped, {len(result.errors)} error(s)"
        )
        return result

    @snitch
    def parse_channel(self, source: WorkbookSource, ruleset: MappingRuleSet) -> ParseResult:
        """
        Parse a channel upload through its header bindings.

        Fixed values (field templates) fill fields whose column is absent or empty.
        The product code becomes '{channel}::{mall product number}'.

        Raises:
            StructuralError: a bound header is missing from the file, or the
                rule set has no display name
        """
        site = ruleset.display_name.strip()
        if not site:
            raise StructuralError(f"Channel rule set '{ruleset.destination_key}' has no display name")

        grid = read_sheet(source, ruleset.sheet_name)
        if grid.is_empty():
            raise StructuralError(f"Upload for '{site}' is empty")

        # First occurrence wins when a channel repeats a header text
        header_columns: Dict[str, int] = {}
        for col, header in enumerate(grid.row_texts(ruleset.header_row), start=1):
            if header and header not in header_columns:
                header_columns[header] = col

        missing = [h for h in ruleset.header_bindings if h not in header_columns]
        if missing:
            raise StructuralError(f"File layout does not match '{site}'. Missing columns: {', '.join(missing)}")

        field_columns: Dict[str, int] = {}
        for header, field_key in ruleset.header_bindings.items():
            field_columns.setdefault(field_key, header_columns[header])

        result = ParseResult(total_rows=max(grid.max_row - ruleset.data_start_row + 1, 0))
        parsed_rows = set()
        for row in range(ruleset.data_start_row, grid.max_row + 1):
            if grid.non_empty_count(row) == 0:
                continue

            values = {key: grid.text(row, col) for key, col in field_columns.items()}
            for field_key in ruleset.field_fallbacks:
                if not values.get(field_key):
                    fallback = ruleset.fallback_for(field_key)
                    if fallback is not None:
                        values[field_key] = fallback.render(lambda name: values.get(name, ""))

            if not values.get("orderNumber"):
                result.skipped_rows += 1
                continue
            if not values.get("mallProductNumber"):
                result.errors.append(ParseError(row, "Missing mall product number"))
                continue

            values["shoppingMall"] = site
            values["productCode"] = f"{site}::{values['mallProductNumber']}"
            try:
                result.orders.append(build_record(values))
                parsed_rows.add(row)
            except (ValueError, TypeError) as e:
                result.errors.append(ParseError(row, str(e)))

        if ruleset.export_pipeline is not None:
            result.snapshot = SheetSnapshot.from_grid(
                grid, ruleset.header_row, ruleset.data_start_row, keep_rows=parsed_rows
            )

        logger.info(
            f"Channel '{site}' parsed: {len(result.orders)} order(s), "
            f"{result.skipped_rows} skipped, {len(result.errors)} error(s)"
        )
        return result

