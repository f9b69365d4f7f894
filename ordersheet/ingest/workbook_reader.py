"""
Workbook reader - loads a spreadsheet into an in-memory grid of raw cell values.

All row/column numbers exposed here are 1-based, matching the spreadsheet.
"""

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Union

import openpyxl

from ordersheet.errors import StructuralError
from ordersheet.utils.text import cell_text

logger = logging.getLogger(__name__)

WorkbookSource = Union[bytes, str, Path]


@dataclass
class SheetGrid:
    """Raw values of one worksheet, trailing empty rows removed."""
    sheet_name: str
    rows: List[List[Any]] = field(default_factory=list)

    @property
    def max_row(self) -> int:
        return len(self.rows)

    @property
    def max_column(self) -> int:
        return max((len(r) for r in self.rows), default=0)

    def value(self, row: int, col: int) -> Any:
        if row < 1 or row > len(self.rows):
            return None
        cells = self.rows[row - 1]
        if col < 1 or col > len(cells):
            return None
        return cells[col - 1]

    def text(self, row: int, col: int) -> str:
        return cell_text(self.value(row, col))

    def row_texts(self, row: int, width: Optional[int] = None) -> List[str]:
        width = self.max_column if width is None else width
        return [self.text(row, col) for col in range(1, width + 1)]

    def non_empty_count(self, row: int) -> int:
        if row < 1 or row > len(self.rows):
            return 0
        return sum(1 for v in self.rows[row - 1] if cell_text(v))

    def is_empty(self) -> bool:
        return all(self.non_empty_count(r) == 0 for r in range(1, self.max_row + 1))


def _open_workbook(source: WorkbookSource):
    if isinstance(source, (bytes, bytearray)):
        if not source:
            raise StructuralError("Spreadsheet is empty (0 bytes)")
        return openpyxl.load_workbook(io.BytesIO(source), data_only=True)

    path = Path(source)
    if not path.exists():
        raise StructuralError(f"Spreadsheet not found: {path}")
    return openpyxl.load_workbook(path, data_only=True)


def read_sheet(source: WorkbookSource, sheet_name: Optional[str] = None) -> SheetGrid:
    """
    Load one worksheet (the first one unless `sheet_name` is given).

    Formula cells yield their cached results. Raises StructuralError when the
    file cannot be opened as a workbook or the sheet does not exist.
    """
    try:
        workbook = _open_workbook(source)
    except StructuralError:
        raise
    except Exception as e:
        raise StructuralError(f"Could not open spreadsheet: {e}") from e

    try:
        if sheet_name:
            if sheet_name not in workbook.sheetnames:
                raise StructuralError(f"Sheet '{sheet_name}' not found (available: {workbook.sheetnames})")
            worksheet = workbook[sheet_name]
        else:
            worksheet = workbook.worksheets[0]

        rows = [list(r) for r in worksheet.iter_rows(values_only=True)]
    finally:
        workbook.close()

    # Drop trailing empty rows; openpyxl reports formatted-but-empty rows too
    while rows and not any(cell_text(v) for v in rows[-1]):
        rows.pop()

    logger.debug(f"Read sheet '{worksheet.title}': {len(rows)} rows")
    return SheetGrid(sheet_name=worksheet.title, rows=rows)
