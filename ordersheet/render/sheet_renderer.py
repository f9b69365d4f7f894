"""
Order sheet renderer - writes resolved rows into a destination's template workbook.

The destination template is copied as-is (header, titles, column widths); rows
are written from `data_start_row` down, each cloning the style of the first
data row so partner formatting carries through.
"""

import datetime
import io
import logging
from copy import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import column_index_from_string
from openpyxl.worksheet.worksheet import Worksheet

from ordersheet.blueprint.fields import CanonicalFields
from ordersheet.errors import StructuralError
from ordersheet.mapping.ruleset import FieldColumnRule, MappingRuleSet
from ordersheet.models import CanonicalOrderRecord
from ordersheet.render.cell_resolver import CellValueResolver, RenderContext
from ordersheet.utils.snitch import snitch

logger = logging.getLogger(__name__)

FILE_NAME_PREFIX = "[다온에프앤씨 발주서]"


def order_sheet_filename(name: str, on: Optional[datetime.date] = None) -> str:
    on = on or datetime.date.today()
    safe_name = "".join(ch for ch in (name or "").strip() if ch not in '\\/:*?"<>|') or "발주서"
    return f"{FILE_NAME_PREFIX}_{safe_name}_{on.strftime('%Y%m%d')}.xlsx"


@dataclass
class RenderedSheet:
    destination_key: str
    file_name: str
    content: bytes
    rows: List[List[Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


class OrderSheetRenderer:
    """Renders canonical records through one MappingRuleSet."""

    def __init__(self, ruleset: MappingRuleSet):
        self.ruleset = ruleset
        self.resolver = CellValueResolver(ruleset)

    def render_rows(self, records: Sequence[CanonicalOrderRecord], context: RenderContext,
                    width: int = 0) -> List[List[Any]]:
        """Resolved values, one list per record, indexed by column position (A=0)."""
        width = max(width, self.ruleset.max_column_index)
        rules = self.ruleset.column_rules(width)
        rows = []
        for row_index, record in enumerate(records, start=1):
            resolved = self.resolver.resolve_row(record, context, row_index, rules)
            row = [""] * width
            for letter, value in resolved.items():
                row[column_index_from_string(letter) - 1] = value
            rows.append(row)
        return rows

    def _open_template(self, template: Union[bytes, str, Path, None]):
        if template is None:
            return self._blank_template()
        try:
            if isinstance(template, (bytes, bytearray)):
                workbook = openpyxl.load_workbook(io.BytesIO(template))
            else:
                path = Path(template)
                if not path.exists():
                    raise StructuralError(f"Order template file not found: {path}")
                workbook = openpyxl.load_workbook(path)
        except StructuralError:
            raise
        except Exception as e:
            raise StructuralError(f"Could not open order template: {e}") from e

        if self.ruleset.sheet_name:
            if self.ruleset.sheet_name not in workbook.sheetnames:
                raise StructuralError(f"Template sheet '{self.ruleset.sheet_name}' not found")
            return workbook, workbook[self.ruleset.sheet_name]
        return workbook, workbook.worksheets[0]

    def _blank_template(self):
        """Header-only sheet built from the bound field labels."""
        workbook = openpyxl.Workbook()
        worksheet = workbook.active
        worksheet.title = self.ruleset.sheet_name or "발주서"
        for col_idx, header in enumerate(header_labels(self.ruleset), start=1):
            cell = worksheet.cell(row=self.ruleset.header_row, column=col_idx, value=header or None)
            cell.font = Font(bold=True)
        return workbook, worksheet

    def _write_rows(self, worksheet: Worksheet, rows: List[List[Any]]) -> None:
        start = self.ruleset.data_start_row
        width = max((len(r) for r in rows), default=0)
        style_source = [worksheet.cell(row=start, column=c) for c in range(1, width + 1)]
        source_height = worksheet.row_dimensions[start].height

        for offset, values in enumerate(rows):
            row_num = start + offset
            for col_idx, value in enumerate(values, start=1):
                cell = worksheet.cell(row=row_num, column=col_idx, value=value if value != "" else None)
                template_cell = style_source[col_idx - 1]
                if offset and template_cell.has_style:
                    cell.font = copy(template_cell.font)
                    cell.border = copy(template_cell.border)
                    cell.fill = copy(template_cell.fill)
                    cell.number_format = copy(template_cell.number_format)
                    cell.alignment = copy(template_cell.alignment)
            if offset and source_height is not None:
                worksheet.row_dimensions[row_num].height = source_height

    @snitch
    def render(self, records: Sequence[CanonicalOrderRecord], context: RenderContext,
               template: Union[bytes, str, Path, None] = None,
               file_label: Optional[str] = None) -> RenderedSheet:
        """
        Render records into the destination template and return the workbook bytes.

        Args:
            records: Canonical records, already filtered for this destination
            context: Batch-level computed variables
            template: Destination template workbook (bytes or path); None builds a header-only sheet
            file_label: Name used in the output file name (defaults to the context manufacturer)
        """
        workbook, worksheet = self._open_template(template)
        rows = self.render_rows(records, context, width=worksheet.max_column if template is not None else 0)
        self._write_rows(worksheet, rows)

        buffer = io.BytesIO()
        workbook.save(buffer)
        label = file_label or context.manufacturer_name or self.ruleset.destination_key
        file_name = order_sheet_filename(label, context.order_date)

        logger.info(f"Rendered {len(rows)} row(s) for '{self.ruleset.destination_key}' -> {file_name}")
        return RenderedSheet(
            destination_key=self.ruleset.destination_key,
            file_name=file_name,
            content=buffer.getvalue(),
            rows=rows,
        )


def header_labels(ruleset: MappingRuleSet) -> List[str]:
    """Header texts implied by a rule set, for sheets without a template file."""
    width = ruleset.max_column_index
    labels = [""] * width
    for letter, rule in ruleset.column_rules().items():
        if isinstance(rule, FieldColumnRule):
            labels[column_index_from_string(letter) - 1] = CanonicalFields.label_for(rule.field)
    return labels
