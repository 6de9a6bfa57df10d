"""
Pydantic models for company settings, clients and invoice records.

This module defines the core data structures used throughout note2invoice:
- CompanySettings and Client for the locally stored supplier/client data
- LineItem and InvoiceRecord for extracted and reconciled invoices
- BatchFailure and BatchResult for batch processing outcomes

Attributes are snake_case in Python; JSON keys are camelCase so that stored
documents and API payloads keep stable key names.
"""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import DEFAULT_TAX_RATE


CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


def _none_to_zero(value: Any) -> Any:
    return 0.0 if value is None else value


class CompanySettings(BaseModel):
    """
    The issuing company's details, applied to every processed invoice.

    Attributes:
        name: Company name; when empty, reconciliation leaves supplier data untouched
        tax_id: Company tax identifier (CIF/NIF/VAT)
        address: Postal address, may span several lines
        default_tax_rate: Tax percentage applied to new invoices (21 means 21%)
        logo_ref: Opaque logo reference (data URL or file path)
    """
    model_config = CAMEL_CONFIG

    name: str = Field("", description="Company name")
    tax_id: str = Field(
        "",
        alias="taxId",
        validation_alias=AliasChoices("taxId", "tax_id", "cif"),
        description="Company tax identifier",
    )
    address: str = Field("", description="Company postal address")
    default_tax_rate: float = Field(
        DEFAULT_TAX_RATE, ge=0, le=100, description="Default tax percentage"
    )
    logo_ref: Optional[str] = Field(
        None,
        alias="logoRef",
        validation_alias=AliasChoices("logoRef", "logo_ref", "logo"),
        description="Logo as data URL or file path",
    )

    @field_validator("name", "tax_id", "address", mode="before")
    @classmethod
    def empty_strings(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator("default_tax_rate", mode="before")
    @classmethod
    def default_rate(cls, v: Any) -> Any:
        return DEFAULT_TAX_RATE if v is None else v


class Client(BaseModel):
    """A known client. Names are unique case-insensitively within the roster."""
    model_config = CAMEL_CONFIG

    name: str = Field(..., description="Client name, case-insensitive key")
    address: str = Field("", description="Client postal address")
    tax_id: str = Field(
        "",
        alias="taxId",
        validation_alias=AliasChoices("taxId", "tax_id", "cif"),
        description="Client tax identifier",
    )

    @field_validator("name", "address", "tax_id", mode="before")
    @classmethod
    def empty_strings(cls, v: Any) -> Any:
        return _none_to_empty(v)


class LineItem(BaseModel):
    """
    A single row of an invoice.

    ``total`` equals ``quantity * unit_price`` after any edit; the value
    returned by extraction is kept as-is until a recalculation runs.
    """
    model_config = CAMEL_CONFIG

    description: str = Field("", description="Item or service description")
    quantity: float = Field(0.0, ge=0, description="Number of units")
    unit_price: float = Field(0.0, ge=0, description="Price per unit")
    total: float = Field(0.0, description="Line total")

    @field_validator("description", mode="before")
    @classmethod
    def empty_description(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator("quantity", "unit_price", "total", mode="before")
    @classmethod
    def zero_amounts(cls, v: Any) -> Any:
        return _none_to_zero(v)


class InvoiceRecord(BaseModel):
    """
    An invoice built from one source document.

    Created by the extraction call, reconciled with stored settings and
    clients, then edited during review until confirmed.
    """

    # ========================================================================
    # Identifiers and Dates
    # ========================================================================
    invoice_number: str = Field("", description="Invoice number")
    date: str = Field("", description="Issue date, ISO format when parseable")
    due_date: Optional[str] = Field(None, description="Payment due date")

    # ========================================================================
    # Supplier
    # ========================================================================
    supplier_name: str = Field("", description="Issuing company name")
    supplier_address: str = Field("", description="Issuing company address block")
    supplier_logo: Optional[str] = Field(None, description="Logo reference")

    # ========================================================================
    # Client
    # ========================================================================
    client_name: str = Field("", description="Client name")
    client_cif: str = Field("", description="Client tax identifier")
    client_address: str = Field("", description="Client address")

    # ========================================================================
    # Amounts
    # ========================================================================
    items: list[LineItem] = Field(default_factory=list, description="Invoice rows")
    subtotal: float = Field(0.0, description="Sum of line totals")
    tax_rate: float = Field(0.0, description="Tax percentage")
    tax_amount: float = Field(0.0, description="Tax on the subtotal")
    total: float = Field(0.0, description="Subtotal plus tax")

    notes: Optional[str] = Field(None, description="Free-text notes")
    source_filename: str = Field("", description="Name of the source document")

    # ========================================================================
    # Review
    # ========================================================================
    confirmed: bool = Field(False, description="Set once the invoice has been reviewed and accepted")

    @field_validator(
        "invoice_number", "date", "supplier_name", "supplier_address",
        "client_name", "client_cif", "client_address", "source_filename",
        mode="before",
    )
    @classmethod
    def empty_strings(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator("subtotal", "tax_rate", "tax_amount", "total", mode="before")
    @classmethod
    def zero_amounts(cls, v: Any) -> Any:
        return _none_to_zero(v)

    @field_validator("items", mode="before")
    @classmethod
    def empty_items(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_json(self) -> dict:
        """Serialize with camelCase keys, suitable for storage and the API."""
        return self.model_dump(mode="json", by_alias=True)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        json_schema_extra={"examples": [
            {
                "invoiceNumber": "A-2024-017",
                "date": "2024-03-04",
                "dueDate": "2024-04-03",
                "supplierName": "Talleres Norte SL",
                "supplierAddress": "Calle Mayor 1, Bilbao\nTax ID: B12345678",
                "clientName": "Acme Corp",
                "clientCif": "B87654321",
                "clientAddress": "Gran Via 20, Madrid",
                "items": [
                    {"description": "Pallet delivery", "quantity": 2, "unitPrice": 45.0, "total": 90.0}
                ],
                "subtotal": 90.0,
                "taxRate": 21,
                "taxAmount": 18.9,
                "total": 108.9,
                "notes": None,
                "sourceFilename": "albaran-017.pdf",
                "confirmed": False,
            }
        ]},
    )


# ============================================================================
# Batch Results
# ============================================================================

class BatchFailure(BaseModel):
    """A document that could not be turned into an invoice."""
    model_config = CAMEL_CONFIG

    index: int = Field(..., ge=0, description="Position of the document in the batch")
    filename: str = Field("", description="Source document name")
    error: str = Field("", description="Failure message")


class BatchResult(BaseModel):
    """Outcome of a batch run: reconciled records in input order plus skipped documents."""
    model_config = CAMEL_CONFIG

    records: list[InvoiceRecord] = Field(default_factory=list)
    failures: list[BatchFailure] = Field(default_factory=list)
    total: int = Field(0, ge=0, description="Number of documents submitted")

    @property
    def processed(self) -> int:
        return len(self.records)
