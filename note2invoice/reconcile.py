"""
Reconciliation of extracted invoices with stored company and client data.

This module holds the deterministic invoice logic:
- reconcile(): merge a raw extracted record with company settings and the client roster
- recalculate(): edit-time recomputation of line and invoice totals
- find_client() / upsert_client(): roster lookup and case-insensitive upsert

All functions are pure: inputs are never mutated, results are new objects.
"""

from typing import Iterable, Optional, Sequence

from .config import SUPPLIER_TAX_ID_LABEL
from .schemas import Client, CompanySettings, InvoiceRecord


def supplier_address_block(settings: CompanySettings) -> str:
    """Address followed by the tax id line, trimmed."""
    return f"{settings.address}\n{SUPPLIER_TAX_ID_LABEL}: {settings.tax_id}".strip()


def find_client(clients: Iterable[Client], client_name: str) -> Optional[Client]:
    """
    Return the first roster client whose name contains, or is contained in, ``client_name``.

    Comparison is case-insensitive. Roster order decides ties: the first
    candidate scanned wins, there is no scoring.
    """
    if not client_name:
        return None

    needle = client_name.lower()
    for client in clients:
        candidate = client.name.lower()
        if candidate in needle or needle in candidate:
            return client
    return None


def reconcile(
    raw: InvoiceRecord,
    settings: CompanySettings,
    clients: Sequence[Client],
) -> InvoiceRecord:
    """
    Merge an extracted invoice with the stored company settings and client roster.

    When the company has a name, its details replace the extracted supplier
    fields, its default tax rate replaces the extracted rate, and subtotal,
    tax and total are recomputed from the line totals. Without a company
    name, supplier fields and amounts pass through exactly as extracted.

    A client found with find_client() replaces the extracted client fields.

    Args:
        raw: Record as returned by the extraction call
        settings: Snapshot of the company settings
        clients: Snapshot of the client roster

    Returns:
        A new, reconciled InvoiceRecord
    """
    record = raw.model_copy(deep=True)

    if settings.name:
        record.supplier_name = settings.name
        record.supplier_address = supplier_address_block(settings)
        record.supplier_logo = settings.logo_ref
        record.tax_rate = settings.default_tax_rate

        subtotal = round(sum(item.total for item in record.items), 2)
        tax_amount = round(subtotal * record.tax_rate / 100, 2)

        record.subtotal = subtotal
        record.tax_amount = tax_amount
        record.total = round(subtotal + tax_amount, 2)

    matched = find_client(clients, record.client_name)
    if matched is not None:
        record.client_name = matched.name
        record.client_address = matched.address
        record.client_cif = matched.tax_id

    return record


def recalculate(record: InvoiceRecord) -> InvoiceRecord:
    """
    Recompute every line total and the invoice totals after an edit.

    Line totals are overwritten with quantity x unit price. Idempotent.
    """
    updated = record.model_copy(deep=True)

    for item in updated.items:
        item.total = item.quantity * item.unit_price

    updated.subtotal = sum(item.total for item in updated.items)
    updated.tax_amount = round(updated.subtotal * updated.tax_rate / 100, 2)
    updated.total = updated.subtotal + updated.tax_amount
    return updated


def upsert_client(roster: Sequence[Client], client: Client) -> list[Client]:
    """
    Insert or replace a client, matching names case-insensitively.

    An existing entry keeps its position; a new client is appended.
    The given roster is left untouched.
    """
    updated = list(roster)
    key = client.name.lower()

    for index, existing in enumerate(updated):
        if existing.name.lower() == key:
            updated[index] = client
            return updated

    updated.append(client)
    return updated
