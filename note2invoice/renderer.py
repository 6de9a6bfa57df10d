"""
PDF rendering of invoice records with reportlab.

render_invoice_pdf() lays out one InvoiceRecord on A4: supplier block with
optional logo, invoice header, client block, item table, totals and notes.
"""

import base64
import io
from pathlib import Path
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .config import CURRENCY_SYMBOL, logger
from .schemas import CompanySettings, InvoiceRecord


HEADER_BG = colors.HexColor("#2563EB")
GRID_COLOR = colors.HexColor("#D1D5DB")
LOGO_BOX = (40 * mm, 20 * mm)
MARGIN = 18 * mm
CONTENT_WIDTH = A4[0] - 2 * MARGIN


def format_money(value: float) -> str:
    return f"{CURRENCY_SYMBOL}{value:,.2f}"


def format_quantity(value: float) -> str:
    return f"{value:g}"


def _text(value: Optional[str]) -> str:
    """Escape text for a Paragraph and keep line breaks."""
    return escape(value or "").replace("\n", "<br/>")


def load_logo(logo_ref: Optional[str]) -> Optional[io.BytesIO]:
    """
    Resolve a logo reference to image bytes.

    Supports base64 ``data:`` URLs and filesystem paths. Returns None when
    the reference is empty or cannot be read as an image.
    """
    if not logo_ref:
        return None

    try:
        if logo_ref.startswith("data:"):
            _, _, payload = logo_ref.partition(",")
            data = base64.b64decode(payload, validate=False)
        else:
            data = Path(logo_ref).read_bytes()
        buffer = io.BytesIO(data)
        ImageReader(buffer).getSize()
        buffer.seek(0)
        return buffer
    except Exception as e:
        logger.warning(f"Ignoring unreadable logo: {e}")
        return None


def _styles() -> dict:
    sheet = getSampleStyleSheet()
    return {
        "normal": sheet["Normal"],
        "title": ParagraphStyle("InvoiceTitle", parent=sheet["Title"], alignment=TA_RIGHT, fontSize=20),
        "right": ParagraphStyle("Right", parent=sheet["Normal"], alignment=TA_RIGHT),
        "heading": ParagraphStyle("Heading", parent=sheet["Heading4"], spaceAfter=2),
        "supplier": ParagraphStyle("Supplier", parent=sheet["Heading3"], spaceAfter=2),
    }


def _header(record: InvoiceRecord, logo: Optional[io.BytesIO], styles: dict) -> Table:
    supplier = []
    if logo is not None:
        supplier.append(Image(logo, width=LOGO_BOX[0], height=LOGO_BOX[1], kind="proportional"))
    supplier.append(Paragraph(_text(record.supplier_name), styles["supplier"]))
    supplier.append(Paragraph(_text(record.supplier_address), styles["normal"]))

    details = [
        Paragraph("INVOICE", styles["title"]),
        Paragraph(f"<b>No.</b> {_text(record.invoice_number) or '---'}", styles["right"]),
        Paragraph(f"<b>Date:</b> {_text(record.date)}", styles["right"]),
    ]
    if record.due_date:
        details.append(Paragraph(f"<b>Due:</b> {_text(record.due_date)}", styles["right"]))

    table = Table([[supplier, details]], colWidths=[CONTENT_WIDTH * 0.55, CONTENT_WIDTH * 0.45])
    table.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    return table


def _client_block(record: InvoiceRecord, styles: dict) -> list:
    lines = [f"<b>{_text(record.client_name)}</b>"]
    if record.client_cif:
        lines.append(f"Tax ID: {_text(record.client_cif)}")
    if record.client_address:
        lines.append(_text(record.client_address))
    return [
        Paragraph("Bill to", styles["heading"]),
        Paragraph("<br/>".join(lines), styles["normal"]),
    ]


def _items_table(record: InvoiceRecord, styles: dict) -> Table:
    rows = [["Description", "Qty", "Unit price", "Total"]]
    for item in record.items:
        rows.append([
            Paragraph(_text(item.description), styles["normal"]),
            format_quantity(item.quantity),
            format_money(item.unit_price),
            format_money(item.total),
        ])

    table = Table(rows, colWidths=[CONTENT_WIDTH * w for w in (0.52, 0.12, 0.18, 0.18)], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BG),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("LINEBELOW", (0, 1), (-1, -1), 0.5, GRID_COLOR),
    ]))
    return table


def _totals_table(record: InvoiceRecord) -> Table:
    rows = [
        ["Subtotal", format_money(record.subtotal)],
        [f"Tax ({format_quantity(record.tax_rate)}%)", format_money(record.tax_amount)],
        ["TOTAL", format_money(record.total)],
    ]
    table = Table(rows, colWidths=[40 * mm, 35 * mm], hAlign="RIGHT")
    table.setStyle(TableStyle([
        ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("LINEABOVE", (0, -1), (-1, -1), 1, colors.black),
    ]))
    return table


def render_invoice_pdf(record: InvoiceRecord, settings: Optional[CompanySettings] = None) -> bytes:
    """
    Render an invoice record as a PDF document.

    Args:
        record: The finalized invoice
        settings: Company settings; their logo is used when the record has none

    Returns:
        The PDF as bytes
    """
    logo_ref = record.supplier_logo or (settings.logo_ref if settings else None)
    styles = _styles()

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=MARGIN,
        title=f"Invoice {record.invoice_number}".strip(),
        author=record.supplier_name,
    )

    story = [
        _header(record, load_logo(logo_ref), styles),
        Spacer(1, 10 * mm),
        *_client_block(record, styles),
        Spacer(1, 8 * mm),
        _items_table(record, styles),
        Spacer(1, 6 * mm),
        _totals_table(record),
    ]
    if record.notes:
        story += [
            Spacer(1, 8 * mm),
            Paragraph("Notes", styles["heading"]),
            Paragraph(_text(record.notes), styles["normal"]),
        ]

    doc.build(story)
    logger.debug(f"Rendered invoice {record.invoice_number or record.source_filename}")
    return buffer.getvalue()
