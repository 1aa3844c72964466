"""
Export Formatters

Serialises flat records (one mapping per row) into CSV text and spreadsheet
tables. The formatters are pure; only the ``write_*`` helpers touch disk.

Header rule shared by both formats: the column list is the key order of the
first record, and every record is projected onto exactly those columns.
Missing keys and ``None`` values render as empty cells.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo

import pandas as pd
from loguru import logger
from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.writer.excel import ExcelWriter as WorkbookArchiveWriter

from config.config import DATA_OUTPUTS_DIR, get_export_settings
from circularity.analysis.aggregation import landfill_diversion_rate
from circularity.models.records import Client, WasteRecord
from circularity.utils.errors import EmptyInputError

# Column width policy for spreadsheet exports (characters)
MIN_COLUMN_WIDTH = 10
MAX_COLUMN_WIDTH = 50
COLUMN_PADDING = 2

HEADER_FILL_COLOR = "EEEEEE"

DEFAULT_SHEET_NAME = "Datos de Residuos"

# Pinned document and zip entry timestamps so equal tables give equal bytes
WORKBOOK_TIMESTAMP = datetime(2000, 1, 1)
ARCHIVE_DATE_TIME = (2000, 1, 1, 0, 0, 0)

DEFAULT_EXPORT_DIR = DATA_OUTPUTS_DIR / "exports"


@dataclass(frozen=True)
class SpreadsheetTable:
    """Format-neutral table shape, before any workbook decoration."""

    sheet_name: str
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[Any, ...], ...]
    column_widths: Tuple[int, ...]


def _headers(records: Sequence[Mapping[str, Any]]) -> List[str]:
    if not records:
        raise EmptyInputError()
    return list(records[0].keys())


def _cell_text(value: Any) -> str:
    return "" if value is None else str(value)


def _project(record: Mapping[str, Any], headers: Sequence[str]) -> Tuple[Any, ...]:
    return tuple(record.get(header) for header in headers)


def column_width(header: str, cells: Iterable[Any]) -> int:
    """Display width for one column: longest text plus padding, clamped to 10..50."""
    longest = max([len(header)] + [len(_cell_text(cell)) for cell in cells])
    return min(max(longest + COLUMN_PADDING, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH)


def to_csv(records: Sequence[Mapping[str, Any]]) -> str:
    """
    Serialise records to CSV text.

    Fields containing a comma, double quote or newline are quoted with
    internal quotes doubled. Rows are separated by ``\\n`` with no trailing
    separator.

    Raises:
        EmptyInputError: If ``records`` is empty
    """
    records = list(records)
    headers = _headers(records)
    rows = [[_cell_text(value) for value in _project(record, headers)] for record in records]

    df = pd.DataFrame(rows, columns=headers, dtype=object)
    text = df.to_csv(index=False, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    return text[:-1] if text.endswith("\n") else text


def to_spreadsheet_table(
    records: Sequence[Mapping[str, Any]],
    sheet_name: Optional[str] = None,
) -> SpreadsheetTable:
    """
    Shape records into a spreadsheet table with per-column display widths.

    Raises:
        EmptyInputError: If ``records`` is empty
    """
    records = list(records)
    headers = _headers(records)
    rows = tuple(_project(record, headers) for record in records)
    widths = tuple(
        column_width(header, (row[index] for row in rows))
        for index, header in enumerate(headers)
    )

    return SpreadsheetTable(
        sheet_name=sheet_name or DEFAULT_SHEET_NAME,
        headers=tuple(headers),
        rows=rows,
        column_widths=widths,
    )


def style_header_row(worksheet) -> None:
    """Decorate the first row: bold text, light grey fill and thin borders."""
    thin = Side(style="thin")
    border = Border(top=thin, bottom=thin, left=thin, right=thin)
    fill = PatternFill(start_color=HEADER_FILL_COLOR, end_color=HEADER_FILL_COLOR, fill_type="solid")

    for cell in worksheet[1]:
        if cell.value is None:
            continue
        cell.font = Font(bold=True)
        cell.fill = fill
        cell.border = border


def _apply_layout(worksheet, table: SpreadsheetTable, decorate: bool) -> None:
    for index, width in enumerate(table.column_widths, start=1):
        worksheet.column_dimensions[get_column_letter(index)].width = width
    if decorate:
        style_header_row(worksheet)


def _excel_sheet_name(name: str) -> str:
    # Excel rejects sheet titles longer than 31 characters
    return name[:31]


def spreadsheet_to_workbook(table: SpreadsheetTable, decorate: bool = True) -> Workbook:
    """Render a table into an in-memory openpyxl workbook."""
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = _excel_sheet_name(table.sheet_name)

    worksheet.append(list(table.headers))
    for row in table.rows:
        worksheet.append(list(row))

    _apply_layout(worksheet, table, decorate)
    return workbook


def workbook_to_bytes(workbook: Workbook) -> bytes:
    """
    Serialise a workbook with pinned timestamps.

    ``Workbook.save`` stamps the modification time and the zip entries carry
    the wall clock, so the archive is written with openpyxl's writer and then
    repacked with fixed entry dates.
    """
    workbook.properties.created = WORKBOOK_TIMESTAMP
    workbook.properties.modified = WORKBOOK_TIMESTAMP

    draft = BytesIO()
    WorkbookArchiveWriter(workbook, ZipFile(draft, 'w', ZIP_DEFLATED)).save()

    payload = BytesIO()
    with ZipFile(draft) as source, ZipFile(payload, 'w', ZIP_DEFLATED) as target:
        for entry in source.infolist():
            target.writestr(
                ZipInfo(entry.filename, date_time=ARCHIVE_DATE_TIME),
                source.read(entry.filename),
                compress_type=ZIP_DEFLATED,
            )
    return payload.getvalue()


def spreadsheet_to_bytes(table: SpreadsheetTable, decorate: bool = True) -> bytes:
    """Return the ``.xlsx`` payload for a table; equal tables give equal bytes."""
    return workbook_to_bytes(spreadsheet_to_workbook(table, decorate))


def write_csv(
    records: Sequence[Mapping[str, Any]],
    base_filename: str,
    output_dir: Optional[Path] = None,
) -> Path:
    """
    Write records to ``{base_filename}.csv``.

    The file carries a UTF-8 byte-order mark (configurable) so spreadsheet
    applications detect the encoding of accented headers.
    """
    content = to_csv(records)
    output_dir = Path(output_dir) if output_dir else DEFAULT_EXPORT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    output_path = output_dir / f"{base_filename}.csv"
    encoding = get_export_settings()['csv_encoding']
    with open(output_path, 'w', encoding=encoding, newline='') as f:
        f.write(content)

    logger.info(f"CSV export saved to: {output_path}")
    return output_path


def write_excel(
    records: Sequence[Mapping[str, Any]],
    base_filename: str,
    output_dir: Optional[Path] = None,
    sheet_name: Optional[str] = None,
) -> Path:
    """
    Write records to ``{base_filename}.xlsx`` with sized columns and a styled header.

    Without ``sheet_name`` the sheet takes the configured export default.
    """
    table = to_spreadsheet_table(records, sheet_name or get_export_settings()['default_sheet_name'])
    output_dir = Path(output_dir) if output_dir else DEFAULT_EXPORT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    output_path = output_dir / f"{base_filename}.xlsx"
    output_path.write_bytes(spreadsheet_to_bytes(table))

    logger.info(f"Excel workbook saved to: {output_path}")
    return output_path


def format_waste_records_for_export(
    records: Iterable[WasteRecord],
    clients: Iterable[Client],
    organic: bool = True,
    inorganic: bool = True,
    recyclable: bool = True,
    date_format: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Build the Spanish-labelled rows used by the waste data export.

    The waste-type flags select which category columns are included; total,
    diversion, location and observations are always present.
    """
    names = {client.id: client.name for client in clients}
    date_format = date_format or get_export_settings()['date_format']

    rows = []
    for record in records:
        row: Dict[str, Any] = {
            'Fecha': record.date.strftime(date_format) if isinstance(record.date, date) else record.date,
            'Cliente': names.get(record.client_id, 'N/A'),
        }
        if organic:
            row['Residuos Orgánicos (kg)'] = record.organic_waste
        if inorganic:
            row['Residuos Inorgánicos (kg)'] = record.inorganic_waste
        if recyclable:
            row['Residuos Reciclables (kg)'] = record.recyclable_waste

        row['Total Residuos (kg)'] = round(record.total_waste, 2)
        row['Desviación de Relleno Sanitario (%)'] = round(
            landfill_diversion_rate(record.organic_waste, record.inorganic_waste, record.recyclable_waste), 2
        )
        row['Ubicación'] = record.location or 'N/A'
        row['Observaciones'] = record.observations or ''
        rows.append(row)

    return rows
