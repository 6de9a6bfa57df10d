"""
Export of rendered invoices to PDF files and batch ZIP archives.
"""

import io
import re
import zipfile
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from .config import ARCHIVE_FILENAME_PREFIX, INVOICE_FILENAME_PREFIX, logger
from .renderer import render_invoice_pdf
from .schemas import CompanySettings, InvoiceRecord


def _safe_component(value: str) -> str:
    # Invoice numbers like "2024/017" must not create directories inside the archive
    return re.sub(r'[\\/:*?"<>|\s]+', "-", value.strip()).strip("-")


def invoice_pdf_filename(record: InvoiceRecord, index: int) -> str:
    """
    File name for one rendered invoice.

    Uses the invoice number, or the 1-based position in the batch when the
    record has no number.
    """
    number = _safe_component(record.invoice_number) or str(index + 1)
    return f"{INVOICE_FILENAME_PREFIX}-{number}.pdf"


def archive_filename(on: Optional[date] = None) -> str:
    """Date-stamped name of a batch archive. The stamp defaults to the current UTC date."""
    stamp = (on or datetime.now(timezone.utc).date()).isoformat()
    return f"{ARCHIVE_FILENAME_PREFIX}_{stamp}.zip"


def _unique(name: str, used: set[str]) -> str:
    if name not in used:
        return name
    stem, suffix = name.rsplit(".", 1)
    counter = 2
    while f"{stem}-{counter}.{suffix}" in used:
        counter += 1
    return f"{stem}-{counter}.{suffix}"


def build_batch_archive(
    records: Sequence[InvoiceRecord],
    settings: Optional[CompanySettings] = None,
) -> bytes:
    """
    Render every record and pack the PDFs into one ZIP archive.

    Entries keep the order of ``records``. A repeated invoice number gets a
    numeric suffix so no PDF is overwritten.

    Returns:
        The ZIP archive as bytes
    """
    buffer = io.BytesIO()
    used: set[str] = set()

    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for index, record in enumerate(records):
            name = _unique(invoice_pdf_filename(record, index), used)
            used.add(name)
            archive.writestr(name, render_invoice_pdf(record, settings))

    logger.info(f"Packed {len(records)} invoices into archive")
    return buffer.getvalue()


def write_invoice_pdf(
    record: InvoiceRecord,
    output_dir: Path,
    index: int = 0,
    settings: Optional[CompanySettings] = None,
) -> Path:
    """Render one record into ``output_dir`` and return the file path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / invoice_pdf_filename(record, index)
    path.write_bytes(render_invoice_pdf(record, settings))
    logger.info(f"Wrote invoice PDF: {path}")
    return path


def write_batch_archive(
    records: Sequence[InvoiceRecord],
    output_dir: Path,
    settings: Optional[CompanySettings] = None,
    on: Optional[date] = None,
) -> Path:
    """Build the batch archive and write it into ``output_dir``."""
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / archive_filename(on)
    path.write_bytes(build_batch_archive(records, settings))
    logger.info(f"Wrote batch archive: {path}")
    return path
