"""
Serialises a planned Workbook to .xlsx bytes with pandas + openpyxl.
"""
from io import BytesIO
from typing import List, Set

import pandas as pd
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from huvr_export.services.export_planner import Sheet, Workbook

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MAX_SHEET_NAME = 31
MAX_COLUMN_WIDTH = 60
_INVALID_SHEET_CHARS = set('[]:*?/\\')

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(start_color="D3D3D3", end_color="D3D3D3", fill_type="solid")


def sheet_title(name: str, used: Set[str]) -> str:
    """Excel-safe, unique (case-insensitive) sheet title of at most 31 characters."""
    cleaned = "".join("_" if c in _INVALID_SHEET_CHARS else c for c in (name or "").strip()) or "Sheet"
    title = cleaned[:MAX_SHEET_NAME]
    counter = 2
    while title.lower() in used:
        suffix = f" ({counter})"
        title = cleaned[:MAX_SHEET_NAME - len(suffix)] + suffix
        counter += 1
    used.add(title.lower())
    return title


def sheet_frame(sheet: Sheet) -> pd.DataFrame:
    # Duplicate headers are legal in a sheet; build positionally
    frame = pd.DataFrame(sheet.rows, columns=range(len(sheet.headers)), dtype=object)
    frame.columns = sheet.headers
    return frame


def _keep_as_text(worksheet, sheet: Sheet) -> None:
    """Cells starting with "=" are exported values, not formulas."""
    last_row = sheet.start_row + len(sheet.rows)
    for row in worksheet.iter_rows(min_row=sheet.start_row, max_row=last_row, max_col=len(sheet.headers)):
        for cell in row:
            if isinstance(cell.value, str) and cell.value.startswith("="):
                cell.data_type = "s"


def _style_sheet(worksheet, sheet: Sheet) -> None:
    header_row = sheet.start_row
    for col, header in enumerate(sheet.headers, start=1):
        cell = worksheet.cell(row=header_row, column=col)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        values: List[str] = [header] + [row[col - 1] for row in sheet.rows]
        width = max(len(v) for v in values) + 2
        worksheet.column_dimensions[get_column_letter(col)].width = min(width, MAX_COLUMN_WIDTH)


def write_workbook(workbook: Workbook) -> bytes:
    """One worksheet per sheet; header at the sheet's start row, data directly beneath."""
    buffer = BytesIO()
    used: Set[str] = set()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for sheet in workbook.sheets:
            title = sheet_title(sheet.name, used)
            sheet_frame(sheet).to_excel(
                writer,
                sheet_name=title,
                startrow=sheet.start_row - 1,
                index=False,
            )
            _keep_as_text(writer.sheets[title], sheet)
            _style_sheet(writer.sheets[title], sheet)
    return buffer.getvalue()
