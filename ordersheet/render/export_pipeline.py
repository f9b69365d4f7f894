"""
Export Column Pipeline - reshapes an uploaded channel sheet into the channel's
re-export layout (reorder, drop, insert constant columns).

Output column order is exactly the configured column order; input columns that
are not listed never reach the output.
"""

import datetime
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import openpyxl
from openpyxl.styles import Font

from ordersheet.ingest.workbook_reader import SheetGrid
from ordersheet.mapping.ruleset import ConstSource, ExportColumn, ExportPipelineConfig, InputSource
from ordersheet.utils.snitch import snitch

logger = logging.getLogger(__name__)


@dataclass
class SheetSnapshot:
    """Uploaded sheet kept for re-export: rows above the header, header, data rows."""
    sheet_name: str = ""
    prefix_rows: List[List[Any]] = field(default_factory=list)
    header_cells: List[Any] = field(default_factory=list)
    data_rows: List[List[Any]] = field(default_factory=list)

    @classmethod
    def from_grid(cls, grid: SheetGrid, header_row: int, data_start_row: Optional[int] = None,
                  keep_rows=None) -> "SheetSnapshot":
        """
        Capture a grid. `keep_rows` (1-based row numbers) limits the data rows,
        e.g. to rows that parsed into orders; blank rows are always dropped.
        """
        data_start_row = data_start_row or header_row + 1
        width = grid.max_column
        data_rows = []
        for r in range(data_start_row, grid.max_row + 1):
            if grid.non_empty_count(r) == 0:
                continue
            if keep_rows is None or r in keep_rows:
                data_rows.append(grid.row_texts(r, width))
        return cls(
            sheet_name=grid.sheet_name,
            prefix_rows=[grid.row_texts(r, width) for r in range(1, header_row)],
            header_cells=grid.row_texts(header_row, width),
            data_rows=data_rows,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sheetName": self.sheet_name,
            "prefixRows": self.prefix_rows,
            "headerCells": self.header_cells,
            "dataRows": [{"cells": cells} for cells in self.data_rows],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SheetSnapshot":
        return cls(
            sheet_name=data.get("sheetName", ""),
            prefix_rows=data.get("prefixRows", []),
            header_cells=data.get("headerCells", []),
            data_rows=[row["cells"] if isinstance(row, dict) else row for row in data.get("dataRows", [])],
        )


@dataclass
class ExportResult:
    rows: List[List[Any]]
    header_row: int  # 1-based position of the header within `rows`

    @property
    def data_rows(self) -> List[List[Any]]:
        return self.rows[self.header_row:]


def _source_value(column: ExportColumn, cells: Sequence[Any]) -> Any:
    source = column.source
    if isinstance(source, ConstSource):
        return source.value
    if isinstance(source, InputSource):
        idx = source.column_index - 1
        if idx < len(cells) and cells[idx] is not None:
            return cells[idx]
        return ""
    raise TypeError(f"Unknown export source: {source!r}")


def _header_value(column: ExportColumn, header_cells: Sequence[Any]) -> Any:
    if column.header is not None:
        return column.header
    if isinstance(column.source, InputSource):
        idx = column.source.column_index - 1
        if idx < len(header_cells) and header_cells[idx] is not None:
            return header_cells[idx]
    return ""


def transform_row(config: ExportPipelineConfig, cells: Sequence[Any]) -> List[Any]:
    return [_source_value(column, cells) for column in config.columns]


@snitch
def apply(snapshot: SheetSnapshot, config: ExportPipelineConfig) -> ExportResult:
    """Run the column pipeline over a snapshot. Short rows read as empty cells."""
    rows: List[List[Any]] = []
    if config.copy_prefix_rows:
        rows.extend(transform_row(config, prefix) for prefix in snapshot.prefix_rows)

    rows.append([_header_value(column, snapshot.header_cells) for column in config.columns])
    header_row = len(rows)

    rows.extend(transform_row(config, cells) for cells in snapshot.data_rows)

    logger.info(
        f"Export pipeline: {len(config.columns)} column(s), {len(snapshot.data_rows)} data row(s), "
        f"{header_row - 1} prefix row(s)"
    )
    return ExportResult(rows=rows, header_row=header_row)


def export_filename(display_name: str, on: Optional[datetime.date] = None) -> str:
    on = on or datetime.date.today()
    return f"{display_name}_{on.strftime('%Y%m%d')}.xlsx"


def write_workbook(result: ExportResult, sheet_name: str = "") -> bytes:
    """Write pipeline output to an .xlsx; the header row is bold."""
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    worksheet.title = (sheet_name or "변환결과")[:31]

    for values in result.rows:
        worksheet.append([v if v != "" else None for v in values])
    for cell in worksheet[result.header_row]:
        cell.font = Font(bold=True)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
