"""
Template Structure Analyzer - extracts layout from a destination's sample spreadsheet.

This module analyzes a partner's "golden file" to extract:
- Header row position (or honours a forced one)
- Data start row
- Column letters and header texts
- Preview rows below the header
- Suggested field bindings, resolved through the synonym dictionary
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from openpyxl.utils import get_column_letter

from ordersheet.blueprint.synonyms import SynonymDictionary
from ordersheet.errors import StructuralError
from ordersheet.ingest.workbook_reader import SheetGrid, WorkbookSource, read_sheet
from ordersheet.utils.snitch import snitch

logger = logging.getLogger(__name__)

MAX_SCAN_ROWS = 50
MIN_HEADER_CELLS = 3


@dataclass
class ColumnInfo:
    """Information about a single column."""
    letter: str
    col_index: int  # 1-based
    header: str
    suggested_field: Optional[str] = None


@dataclass
class TemplateAnalysis:
    """Complete analysis of a destination template sheet."""
    sheet_name: str
    header_row: int
    data_start_row: int
    headers: List[str]
    columns: List[ColumnInfo]
    preview_rows: List[List[str]]
    suggested_mappings: Dict[str, str]  # field key -> column letter
    prefix_rows: List[List[str]] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return len(self.headers)

    def to_dict(self) -> Dict:
        return {
            "sheetName": self.sheet_name,
            "headerRow": self.header_row,
            "dataStartRow": self.data_start_row,
            "headers": self.headers,
            "columns": [
                {"letter": c.letter, "index": c.col_index, "header": c.header, "suggestedField": c.suggested_field}
                for c in self.columns
            ],
            "previewRows": self.preview_rows,
            "suggestedMappings": self.suggested_mappings,
            "columnCount": self.column_count,
        }


class TemplateStructureAnalyzer:
    """Analyzes destination templates to bootstrap a mapping rule set."""

    def __init__(self, synonyms: SynonymDictionary):
        self.synonyms = synonyms

    def find_header_row(self, grid: SheetGrid, max_rows: int = MAX_SCAN_ROWS) -> Optional[int]:
        """First row, top-down, with at least three non-empty cells."""
        for row in range(1, min(grid.max_row, max_rows) + 1):
            if grid.non_empty_count(row) >= MIN_HEADER_CELLS:
                return row
        return None

    @snitch
    def analyze(self, source: WorkbookSource, forced_header_row: Optional[int] = None,
                preview_limit: int = 5) -> TemplateAnalysis:
        """
        Analyze the first sheet of a template workbook.

        Args:
            source: Workbook bytes or a path to it
            forced_header_row: Use this 1-based row as header instead of detecting one
            preview_limit: Maximum number of data rows returned for preview

        Returns:
            TemplateAnalysis with the detected layout

        Raises:
            StructuralError: empty sheet, no detectable header row, or a
                forced header row outside the sheet
        """
        grid = read_sheet(source)
        return self.analyze_grid(grid, forced_header_row, preview_limit)

    def analyze_grid(self, grid: SheetGrid, forced_header_row: Optional[int] = None,
                     preview_limit: int = 5) -> TemplateAnalysis:
        if grid.is_empty():
            raise StructuralError(f"Sheet '{grid.sheet_name}' is empty")

        if forced_header_row is not None:
            if forced_header_row < 1 or forced_header_row > grid.max_row:
                raise StructuralError(
                    f"Header row {forced_header_row} is outside the sheet (1..{grid.max_row})"
                )
            header_row = forced_header_row
            logger.info(f"Header row forced to {header_row}")
        else:
            header_row = self.find_header_row(grid)
            if header_row is None:
                raise StructuralError(
                    f"No header row found in the first {MAX_SCAN_ROWS} rows of '{grid.sheet_name}' "
                    f"(needs at least {MIN_HEADER_CELLS} non-empty cells)"
                )
            logger.info(f"Header detection: found header at row {header_row}")

        width = grid.max_column
        headers = grid.row_texts(header_row, width)

        columns = []
        suggested: Dict[str, str] = {}
        for idx, header in enumerate(headers, start=1):
            letter = get_column_letter(idx)
            field_key = self.synonyms.resolve(header)
            columns.append(ColumnInfo(letter=letter, col_index=idx, header=header, suggested_field=field_key))
            # Leftmost column wins when several headers resolve to one field
            if field_key and field_key not in suggested:
                suggested[field_key] = letter

        data_start_row = header_row + 1
        preview_end = min(grid.max_row, data_start_row + max(preview_limit, 0) - 1)
        preview_rows = [grid.row_texts(r, width) for r in range(data_start_row, preview_end + 1)]
        prefix_rows = [grid.row_texts(r, width) for r in range(1, header_row)]

        logger.info(
            f"Analyzed '{grid.sheet_name}': {width} columns, "
            f"{len(suggested)} suggested bindings, {grid.max_row - header_row} data rows"
        )

        return TemplateAnalysis(
            sheet_name=grid.sheet_name,
            header_row=header_row,
            data_start_row=data_start_row,
            headers=headers,
            columns=columns,
            preview_rows=preview_rows,
            suggested_mappings=suggested,
            prefix_rows=prefix_rows,
        )
