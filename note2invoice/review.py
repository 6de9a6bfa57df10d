"""
Review workflow for reconciled invoices.

A ReviewSession wraps one InvoiceRecord while the user checks and edits it.
Every change to quantities, prices, the tax rate or the shape of the item
list triggers a full recalculation. Confirming the session freezes the
record until it is reopened; the ``confirmed`` flag travels with the record
so batch export can refuse invoices that were never reviewed.
"""

from typing import Any, Optional, Sequence

from pydantic.alias_generators import to_camel

from .config import ProcessingStatus, logger
from .errors import InvoiceLockedError, UnconfirmedInvoicesError
from .reconcile import find_client, recalculate
from .schemas import Client, InvoiceRecord, LineItem


# Header fields the user may edit directly
EDITABLE_FIELDS = frozenset({
    "invoice_number",
    "date",
    "due_date",
    "client_name",
    "client_cif",
    "client_address",
    "notes",
    "tax_rate",
})

# Field changes that invalidate the totals
RECALC_FIELDS = frozenset({"tax_rate"})

ITEM_FIELDS = frozenset({"description", "quantity", "unit_price"})

_CAMEL_NAMES = {to_camel(name): name for name in EDITABLE_FIELDS | ITEM_FIELDS}


def field_name(key: str) -> str:
    """Accept a field as snake_case or as its camelCase JSON key."""
    return _CAMEL_NAMES.get(key, key)


def invoice_label(record: InvoiceRecord, index: int) -> str:
    return record.invoice_number or record.source_filename or f"#{index + 1}"


def confirm_all(records: Sequence[InvoiceRecord]) -> list[InvoiceRecord]:
    """Batch verification: mark every record as confirmed."""
    return [record.model_copy(update={"confirmed": True}) for record in records]


def require_confirmed(records: Sequence[InvoiceRecord]) -> None:
    """
    Check that every record went through review.

    Raises:
        UnconfirmedInvoicesError: Naming each record still in review
    """
    pending = [invoice_label(record, index) for index, record in enumerate(records) if not record.confirmed]
    if pending:
        raise UnconfirmedInvoicesError(pending)


class ReviewSession:
    """Edit-time state for one invoice record."""

    def __init__(self, record: InvoiceRecord, clients: Sequence[Client] = ()):
        self._record = record
        self.clients = list(clients)

    @property
    def record(self) -> InvoiceRecord:
        return self._record

    @property
    def status(self) -> ProcessingStatus:
        return ProcessingStatus.COMPLETED if self._record.confirmed else ProcessingStatus.REVIEW

    @property
    def is_confirmed(self) -> bool:
        return self.status == ProcessingStatus.COMPLETED

    def _ensure_editable(self) -> None:
        if self.is_confirmed:
            raise InvoiceLockedError(
                f"Invoice {self._record.invoice_number or '(unnumbered)'} is confirmed; reopen it to edit"
            )

    def _replace(self, data: dict, recalc: bool) -> InvoiceRecord:
        # Round-trip through validation so edits obey the same constraints as extraction
        record = InvoiceRecord.model_validate(data)
        self._record = recalculate(record) if recalc else record
        return self._record

    # ------------------------------------------------------------------------
    # Header edits
    # ------------------------------------------------------------------------

    def update_field(self, name: str, value: Any) -> InvoiceRecord:
        """Set one header field. Changing the tax rate recalculates the totals."""
        self._ensure_editable()
        name = field_name(name)
        if name not in EDITABLE_FIELDS:
            raise ValueError(f"Field is not editable: {name}")

        data = self._record.model_dump()
        data[name] = value
        return self._replace(data, recalc=name in RECALC_FIELDS)

    def apply_client(self, client: Client) -> InvoiceRecord:
        """Copy a roster client into the client fields."""
        self._ensure_editable()
        data = self._record.model_dump()
        data.update(
            client_name=client.name,
            client_address=client.address,
            client_cif=client.tax_id,
        )
        return self._replace(data, recalc=False)

    def suggest_client(self) -> Optional[Client]:
        """Roster client matching the current client name, if any."""
        return find_client(self.clients, self._record.client_name)

    def current_client(self) -> Client:
        """The record's client fields as a Client, ready to be saved to the roster."""
        return Client(
            name=self._record.client_name,
            address=self._record.client_address,
            tax_id=self._record.client_cif,
        )

    # ------------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------------

    def update_item(self, index: int, **changes: Any) -> InvoiceRecord:
        """Change description, quantity or unit price of one row."""
        self._ensure_editable()
        changes = {field_name(key): value for key, value in changes.items()}
        unknown = set(changes) - ITEM_FIELDS
        if unknown:
            raise ValueError(f"Unknown item fields: {', '.join(sorted(unknown))}")

        data = self._record.model_dump()
        data["items"][index].update(changes)
        return self._replace(data, recalc=True)

    def add_item(
        self,
        description: str = "",
        quantity: float = 1,
        unit_price: float = 0,
    ) -> InvoiceRecord:
        """Append a row."""
        self._ensure_editable()
        data = self._record.model_dump()
        item = LineItem(description=description, quantity=quantity, unit_price=unit_price)
        data["items"].append(item.model_dump())
        return self._replace(data, recalc=True)

    def remove_item(self, index: int) -> InvoiceRecord:
        """Delete a row."""
        self._ensure_editable()
        data = self._record.model_dump()
        del data["items"][index]
        return self._replace(data, recalc=True)

    # ------------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------------

    def recalculate(self) -> InvoiceRecord:
        """Recompute all totals without changing any field."""
        self._ensure_editable()
        self._record = recalculate(self._record)
        return self._record

    def confirm(self) -> InvoiceRecord:
        """Accept the invoice as final."""
        self._record = self._record.model_copy(update={"confirmed": True})
        logger.info(f"Invoice confirmed: {self._record.invoice_number or self._record.source_filename}")
        return self._record

    def reopen(self) -> InvoiceRecord:
        """Return a confirmed invoice to review."""
        self._record = self._record.model_copy(update={"confirmed": False})
        return self._record
