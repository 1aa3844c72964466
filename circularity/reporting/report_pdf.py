"""
PDF rendering for composed sustainability reports.

Lays a ReportDocument out on A4 pages with the reportlab canvas: a title
block, then each section's KPIs, narrative lines and tables, with the
company/standard/period footer repeated on every page.
"""

from io import BytesIO
from pathlib import Path
from typing import List, Sequence, Union

from loguru import logger
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from circularity.reporting.report_composers import ReportDocument, ReportTable

PAGE_MARGIN = 40
FOOTER_HEIGHT = 40
LINE_HEIGHT = 14
TABLE_CELL_PADDING = 8

BODY_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"

# Glyphs outside the base-14 font encoding
PDF_SUBSTITUTIONS = {
    "₂": "2",
    "✓": "OK",
    "◐": "~",
    "•": "-",
    "→": "->",
    "—": "-",
    "≥": ">=",
}


def pdf_text(text: str) -> str:
    """Map report text onto characters the standard PDF fonts can draw."""
    for symbol, replacement in PDF_SUBSTITUTIONS.items():
        text = text.replace(symbol, replacement)
    return text.encode("latin-1", "replace").decode("latin-1")


class _PageWriter:
    """Cursor over a canvas that starts a new page when the body is full."""

    def __init__(self, pdf: canvas.Canvas, document: ReportDocument):
        self.pdf = pdf
        self.document = document
        self.width, self.height = A4
        self.y = self.height - PAGE_MARGIN
        self.page_number = 1

    @property
    def body_width(self) -> float:
        return self.width - 2 * PAGE_MARGIN

    def _draw_footer(self):
        self.pdf.setFont(BODY_FONT, 8)
        self.pdf.drawString(PAGE_MARGIN, FOOTER_HEIGHT - 12, pdf_text(self.document.footer))
        self.pdf.drawRightString(
            self.width - PAGE_MARGIN,
            FOOTER_HEIGHT - 12,
            pdf_text(f"Generado por {self.document.platform_name} - {self.page_number}"),
        )

    def ensure_space(self, needed: float):
        if self.y - needed >= FOOTER_HEIGHT + PAGE_MARGIN / 2:
            return
        self._draw_footer()
        self.pdf.showPage()
        self.page_number += 1
        self.y = self.height - PAGE_MARGIN

    def line(self, text: str, font: str = BODY_FONT, size: int = 10, indent: float = 0):
        for chunk in simpleSplit(pdf_text(text), font, size, self.body_width - indent) or [""]:
            self.ensure_space(LINE_HEIGHT)
            self.pdf.setFont(font, size)
            self.pdf.drawString(PAGE_MARGIN + indent, self.y, chunk)
            self.y -= LINE_HEIGHT

    def gap(self, lines: float = 1):
        self.y -= LINE_HEIGHT * lines

    def table(self, table: ReportTable):
        widths = _column_widths(table, self.body_width)
        self.row(table.headers, widths, BOLD_FONT)
        for row in table.rows:
            self.row(row, widths, BODY_FONT)

    def row(self, cells: Sequence[str], widths: List[float], font: str):
        self.ensure_space(LINE_HEIGHT)
        self.pdf.setFont(font, 9)
        x = PAGE_MARGIN
        for cell, width in zip(cells, widths):
            text = pdf_text(cell)
            while text and stringWidth(text, font, 9) > width - TABLE_CELL_PADDING:
                text = text[:-1]
            self.pdf.drawString(x, self.y, text)
            x += width
        self.y -= LINE_HEIGHT

    def finish(self):
        self._draw_footer()
        self.pdf.showPage()


def _column_widths(table: ReportTable, available: float) -> List[float]:
    natural = [
        max(stringWidth(pdf_text(cell), BOLD_FONT, 9) for cell in column) + TABLE_CELL_PADDING
        for column in zip(table.headers, *table.rows)
    ]
    total = sum(natural)
    if total <= available:
        return natural
    return [width * available / total for width in natural]


def _draw_document(pdf: canvas.Canvas, document: ReportDocument):
    page = _PageWriter(pdf, document)

    page.line(document.title, BOLD_FONT, 18)
    page.line(document.subtitle, BODY_FONT, 11)
    page.line(f"{document.company} | Período de reporte: {document.period}", BODY_FONT, 10)
    page.gap()

    for section in document.sections:
        page.ensure_space(LINE_HEIGHT * 3)
        page.line(section.title, BOLD_FONT, 13)
        for kpi in section.kpis:
            unit = f" {kpi.unit}" if kpi.unit else ""
            page.line(f"{kpi.label}: {kpi.value}{unit}", BOLD_FONT if kpi.highlight else BODY_FONT, 10, indent=10)
        for text in section.lines:
            page.line(text, indent=10)
        for table in section.tables:
            page.gap(0.5)
            page.table(table)
        page.gap()

    page.finish()


def render_pdf(document: ReportDocument, output_path: Union[str, Path]) -> Path:
    """
    Write a report document to a PDF file.

    Args:
        document: Composed report
        output_path: Destination ``.pdf`` path

    Returns:
        Path of the written file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    pdf = canvas.Canvas(str(output_path), pagesize=A4)
    pdf.setTitle(pdf_text(f"{document.title} - {document.company}"))
    _draw_document(pdf, document)
    pdf.save()

    logger.info(f"Report PDF saved to: {output_path}")
    return output_path


def pdf_bytes(document: ReportDocument) -> bytes:
    """Return the PDF payload for a report document."""
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    pdf.setTitle(pdf_text(f"{document.title} - {document.company}"))
    _draw_document(pdf, document)
    pdf.save()
    return buffer.getvalue()
