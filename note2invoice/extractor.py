"""
Extraction of raw invoice records from delivery-note documents.

This module provides functionality to:
- Detect the MIME type of an uploaded document
- Send the document (or its PDF text layer) to Gemini for structured extraction
- Parse and normalize the model's JSON answer
- Output InvoiceRecord objects ready for reconciliation
"""

import io
import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import pdfplumber
from dateutil import parser as date_parser
from google import genai
from google.genai import types as genai_types
from pydantic import ValidationError

from .config import (
    DATE_FORMATS,
    DEFAULT_MIME_TYPE,
    EXTRACTION_MODE,
    GEMINI_API_KEY,
    GEMINI_MODEL,
    MIME_TYPES,
    logger,
)
from .errors import ExtractionError
from .schemas import InvoiceRecord


EXTRACTION_PROMPT = """You read delivery notes (albaranes) and turn them into invoice data.

Return ONLY valid JSON with this exact structure:
{
  "invoiceNumber": "delivery note or invoice number",
  "date": "YYYY-MM-DD",
  "dueDate": "YYYY-MM-DD or null",
  "supplierName": "company that issued the delivery note",
  "supplierAddress": "supplier address",
  "clientName": "company or person receiving the goods",
  "clientCif": "client tax id (CIF/NIF/VAT) or empty string",
  "clientAddress": "client address",
  "items": [
    {"description": "item", "quantity": 1.0, "unitPrice": 10.00, "total": 10.00}
  ],
  "subtotal": 10.00,
  "taxRate": 21,
  "taxAmount": 2.10,
  "total": 12.10,
  "notes": "observations or null"
}

Rules:
- All monetary values and quantities as numbers, not strings
- taxRate is a percentage (21 means 21%)
- If a field is not visible, use an empty string for text and 0 for numbers
- If a line has no price, use 0 for unitPrice and total
- Include ALL lines of the document in items
- Return ONLY the JSON, no markdown formatting or extra text"""

DATE_FIELDS = ("date", "dueDate", "due_date")
AMOUNT_FIELDS = ("subtotal", "taxRate", "tax_rate", "taxAmount", "tax_amount", "total")
ITEM_AMOUNT_FIELDS = ("quantity", "unitPrice", "unit_price", "total")


# ============================================================================
# Document Helpers
# ============================================================================

def get_mime_type(filename: str, declared: Optional[str] = None) -> str:
    """
    Resolve the MIME type of a document.

    A declared type (e.g. from an upload) wins; otherwise the file extension
    is looked up in MIME_TYPES.
    """
    if declared:
        return declared

    ext = Path(filename).suffix.lower().lstrip(".")
    return MIME_TYPES.get(ext, DEFAULT_MIME_TYPE)


def extract_text_from_pdf(content: bytes) -> str:
    """
    Extract the text layer of a PDF.

    Args:
        content: Raw PDF bytes

    Returns:
        Concatenated text from all pages (empty for scanned PDFs)
    """
    text_parts = []

    with pdfplumber.open(io.BytesIO(content)) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text()
            if page_text:
                text_parts.append(page_text)

    return "\n".join(text_parts)


# ============================================================================
# Response Parsing
# ============================================================================

def parse_json_response(raw: str) -> dict:
    """
    Parse the model's answer into a dict.

    Markdown code fences and trailing commas are tolerated. A JSON array is
    reduced to its first object.

    Raises:
        ExtractionError: If the answer is not a JSON object
    """
    if not raw or not raw.strip():
        raise ExtractionError("Empty response from extraction model")

    text = raw.strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        cleaned = re.sub(r"```(?:json)?\s*", "", text)
        cleaned = re.sub(r"\s*```", "", cleaned)
        cleaned = re.sub(r",\s*([\]}])", r"\1", cleaned)
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise ExtractionError(f"Extraction model returned invalid JSON: {e}") from e

    if isinstance(parsed, list):
        parsed = parsed[0] if parsed else None
    if not isinstance(parsed, dict):
        raise ExtractionError("Extraction model did not return a JSON object")

    return parsed


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a numeric value from various formats.

    Handles both:
    - US/UK format: 1,234.56 (comma = thousand separator, period = decimal)
    - European format: 1.234,56 (period = thousand separator, comma = decimal)

    Without a comma a period is always a decimal point: "1.234" is 1.234.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    value_str = str(value).strip()
    if not value_str:
        return None

    # Remove currency symbols, percent signs and whitespace
    value_str = re.sub(r"[\$€£%\s]", "", value_str)

    if "," in value_str:
        comma_pos = value_str.rfind(",")
        period_pos = value_str.rfind(".")

        if period_pos < comma_pos:
            # European format: "1.234,56" -> "1234.56"
            value_str = value_str.replace(".", "").replace(",", ".")
        else:
            # US format: "1,234.56" -> "1234.56"
            value_str = value_str.replace(",", "")

    try:
        return float(value_str)
    except ValueError:
        return None


def parse_date(date_str: Optional[str]) -> Optional[str]:
    """
    Normalize a date string to ISO format (YYYY-MM-DD).

    Known formats are tried first, then python-dateutil with day-first
    ordering. Unparseable values are returned unchanged.
    """
    if date_str is None:
        return None

    date_str = str(date_str).strip()
    if not date_str:
        return date_str

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt).date().isoformat()
        except ValueError:
            continue

    try:
        return date_parser.parse(date_str, dayfirst=True).date().isoformat()
    except (ValueError, OverflowError):
        return date_str


def normalize_extracted(data: dict) -> dict:
    """
    Clean a raw extraction dict before validation.

    Dates become ISO strings when parseable, amount strings become numbers.
    Unparseable amounts become None, which the schema turns into 0.
    """
    normalized = dict(data)
    # Confirmation only ever comes from review
    normalized.pop("confirmed", None)

    for key in DATE_FIELDS:
        if key in normalized:
            normalized[key] = parse_date(normalized[key])

    for key in AMOUNT_FIELDS:
        if key in normalized:
            normalized[key] = parse_number(normalized[key])

    items = normalized.get("items") or []
    clean_items = []
    for item in items:
        if not isinstance(item, dict):
            continue
        clean = dict(item)
        for key in ITEM_AMOUNT_FIELDS:
            if key in clean:
                clean[key] = parse_number(clean[key])
        clean_items.append(clean)
    normalized["items"] = clean_items

    return normalized


def build_record(data: dict, filename: str = "") -> InvoiceRecord:
    """
    Turn a raw extraction dict into an InvoiceRecord.

    Raises:
        ExtractionError: If the data does not fit the record schema
    """
    try:
        record = InvoiceRecord.model_validate(normalize_extracted(data))
    except ValidationError as e:
        raise ExtractionError(f"Extracted data does not match the invoice schema: {e}", filename) from e

    if not record.source_filename and filename:
        record.source_filename = filename
    return record


# ============================================================================
# Gemini Extractor
# ============================================================================

class GeminiExtractor:
    """
    Async extraction collaborator backed by Gemini.

    Calling an instance with (content, mime_type) returns a raw InvoiceRecord.
    The client is created on first use so that importing this module never
    requires an API key.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        mode: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else GEMINI_API_KEY
        self.model = model or GEMINI_MODEL
        self.mode = mode or EXTRACTION_MODE
        self._client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise ExtractionError("GEMINI_API_KEY not configured")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def build_contents(self, content: bytes, mime_type: str) -> list:
        """Prompt plus document, as text when the document is text or text mode is on."""
        if mime_type == "text/plain":
            text = content.decode("utf-8", errors="replace")
            return [f"{EXTRACTION_PROMPT}\n\nDOCUMENT TEXT:\n{text}"]

        if mime_type == "application/pdf" and self.mode == "text":
            text = extract_text_from_pdf(content)
            if not text.strip():
                raise ExtractionError("Could not extract any text from PDF")
            return [f"{EXTRACTION_PROMPT}\n\nDOCUMENT TEXT:\n{text}"]

        return [
            genai_types.Part.from_bytes(data=content, mime_type=mime_type),
            EXTRACTION_PROMPT,
        ]

    async def __call__(self, content: bytes, mime_type: str) -> InvoiceRecord:
        client = self._get_client()
        contents = self.build_contents(content, mime_type)

        logger.debug(f"Calling {self.model} for a {mime_type} document ({len(content)} bytes)")
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=genai_types.GenerateContentConfig(
                    temperature=0,
                    response_mime_type="application/json",
                ),
            )
        except Exception as e:
            raise ExtractionError(f"Extraction call failed: {e}") from e

        return build_record(parse_json_response(response.text or ""))
