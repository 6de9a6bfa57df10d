"""
note2invoice

A Python service that turns delivery-note documents into invoices:
AI extraction, reconciliation with stored company and client data,
review, and PDF/ZIP export.
"""

__version__ = "0.1.0"
__author__ = "note2invoice team"

from .schemas import BatchResult, Client, CompanySettings, InvoiceRecord, LineItem
from .reconcile import find_client, recalculate, reconcile, upsert_client
from .pipeline import SourceDocument, process_batch, process_document

__all__ = [
    "BatchResult",
    "Client",
    "CompanySettings",
    "InvoiceRecord",
    "LineItem",
    "find_client",
    "recalculate",
    "reconcile",
    "upsert_client",
    "SourceDocument",
    "process_batch",
    "process_document",
]
