"""
Configuration constants and enums for note2invoice.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Final

# ============================================================================
# Workflow State
# ============================================================================

class ProcessingStatus(str, Enum):
    """Review state of an invoice record."""
    REVIEW = "review"
    COMPLETED = "completed"


# ============================================================================
# Batch Limits
# ============================================================================

# Maximum number of source documents accepted in one batch run
MAX_BATCH_SIZE: Final[int] = int(os.getenv("MAX_BATCH_SIZE", "10"))

# ============================================================================
# Invoice Defaults
# ============================================================================

DEFAULT_TAX_RATE: Final[float] = float(os.getenv("DEFAULT_TAX_RATE", "21"))
CURRENCY_SYMBOL: Final[str] = os.getenv("CURRENCY_SYMBOL", "€")

# Label placed before the supplier tax id in the supplier address block
SUPPLIER_TAX_ID_LABEL: Final[str] = "Tax ID"

# ============================================================================
# Date Formats
# ============================================================================

# Formats tried, in order, when normalizing extracted dates to ISO
DATE_FORMATS: Final[list[str]] = [
    "%Y-%m-%d",      # ISO format: 2024-01-15
    "%d/%m/%Y",      # European: 15/01/2024
    "%d-%m-%Y",      # European with dashes: 15-01-2024
    "%d.%m.%Y",      # European with dots: 15.01.2024
    "%d/%m/%y",      # Short year: 15/01/24
    "%B %d, %Y",     # Long format: January 15, 2024
    "%d %B %Y",      # European long: 15 January 2024
    "%d %b %Y",      # European short: 15 Jan 2024
]

# ============================================================================
# Document Types
# ============================================================================

# Extension -> MIME type, used when an upload does not declare its type
MIME_TYPES: Final[dict[str, str]] = {
    "pdf": "application/pdf",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "txt": "text/plain",
    "doc": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "wps": "application/vnd.ms-works",
}
DEFAULT_MIME_TYPE: Final[str] = "application/octet-stream"

# ============================================================================
# Extraction (Gemini)
# ============================================================================

GEMINI_API_KEY: Final[str] = os.getenv("GEMINI_API_KEY", os.getenv("GOOGLE_API_KEY", ""))
GEMINI_MODEL: Final[str] = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

# "document" sends the raw bytes to the model, "text" sends the PDF text layer
EXTRACTION_MODE: Final[str] = os.getenv("EXTRACTION_MODE", "document")

# ============================================================================
# Persistence
# ============================================================================

DATA_DIR: Final[Path] = Path(os.getenv("DATA_DIR", "./data"))
SETTINGS_FILENAME: Final[str] = "settings.json"
CLIENTS_FILENAME: Final[str] = "clients.json"

# ============================================================================
# Export
# ============================================================================

INVOICE_FILENAME_PREFIX: Final[str] = "Invoice"
ARCHIVE_FILENAME_PREFIX: Final[str] = "Invoices_Batch"

# ============================================================================
# API Configuration
# ============================================================================

API_HOST: Final[str] = os.getenv("API_HOST", "0.0.0.0")
API_PORT: Final[int] = int(os.getenv("API_PORT", "8000"))
MAX_UPLOAD_SIZE_MB: Final[int] = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("note2invoice")


logger = setup_logging()
