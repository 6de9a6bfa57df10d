"""
Tests for the reconciliation module.

These tests cover the supplier override, totals recomputation, fuzzy client
matching, edit-time recalculation and client upsert.
"""

import pytest

from note2invoice.reconcile import (
    find_client,
    recalculate,
    reconcile,
    supplier_address_block,
    upsert_client,
)
from note2invoice.schemas import Client, CompanySettings, InvoiceRecord, LineItem


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings() -> CompanySettings:
    """Configured company settings."""
    return CompanySettings(
        name="Talleres Norte SL",
        tax_id="B12345678",
        address="Calle Mayor 1\n48001 Bilbao",
        default_tax_rate=21,
        logo_ref="data:image/png;base64,AAAA",
    )


@pytest.fixture
def raw_record() -> InvoiceRecord:
    """A record as it comes back from extraction, with inconsistent totals."""
    return InvoiceRecord(
        invoice_number="ALB-001",
        date="2024-03-04",
        supplier_name="Extracted Supplier",
        supplier_address="Somewhere 5",
        client_name="Acme",
        client_cif="",
        client_address="",
        items=[
            LineItem(description="Pallet", quantity=2, unit_price=30, total=60),
            LineItem(description="Transport", quantity=1, unit_price=40, total=40),
        ],
        subtotal=95.0,
        tax_rate=10,
        tax_amount=9.5,
        total=104.0,
        source_filename="alb-001.pdf",
    )


@pytest.fixture
def clients() -> list[Client]:
    return [
        Client(name="Acme Corp", address="Gran Via 20, Madrid", tax_id="B87654321"),
        Client(name="Globex", address="Av. Diagonal 1, Barcelona", tax_id="A11111111"),
    ]


# ============================================================================
# Supplier Override
# ============================================================================

class TestSupplierOverride:
    """Tests for the company-settings branch of reconcile()."""

    def test_supplier_fields_replaced(self, raw_record, settings):
        result = reconcile(raw_record, settings, [])
        assert result.supplier_name == "Talleres Norte SL"
        assert result.supplier_address == "Calle Mayor 1\n48001 Bilbao\nTax ID: B12345678"
        assert result.supplier_logo == "data:image/png;base64,AAAA"
        assert result.tax_rate == 21

    def test_totals_recomputed_from_item_totals(self, raw_record, settings):
        result = reconcile(raw_record, settings, [])
        assert result.subtotal == 100.0
        assert result.tax_amount == 21.0
        assert result.total == 121.0

    def test_item_totals_not_recomputed(self, raw_record, settings):
        raw_record.items[0].total = 55.0  # diverges from 2 x 30
        result = reconcile(raw_record, settings, [])
        assert result.items[0].total == 55.0
        assert result.subtotal == 95.0

    def test_address_block_trimmed(self):
        settings = CompanySettings(name="Solo", address="", tax_id="")
        assert supplier_address_block(settings) == "Tax ID:"

    @pytest.mark.parametrize("rate", [0, 4, 10, 21, 7.5])
    @pytest.mark.parametrize("totals", [[0.0], [19.99, 5.01], [0.1, 0.2, 0.3], [1234.567, 0.005]])
    def test_totals_consistent(self, raw_record, rate, totals):
        settings = CompanySettings(name="Any", default_tax_rate=rate)
        raw_record.items = [LineItem(description="x", total=t) for t in totals]

        result = reconcile(raw_record, settings, [])

        assert result.subtotal == round(sum(totals), 2)
        assert result.tax_amount == round(result.subtotal * rate / 100, 2)
        assert result.total == round(result.subtotal + result.tax_amount, 2)

    def test_empty_name_passes_through(self, raw_record):
        settings = CompanySettings(name="", address="Ignored", tax_id="X", default_tax_rate=21)
        result = reconcile(raw_record, settings, [])

        for field in (
            "supplier_name", "supplier_address", "supplier_logo",
            "tax_rate", "subtotal", "tax_amount", "total",
        ):
            assert getattr(result, field) == getattr(raw_record, field)
        assert result.items == raw_record.items

    def test_input_not_mutated(self, raw_record, settings, clients):
        before = raw_record.model_dump()
        reconcile(raw_record, settings, clients)
        assert raw_record.model_dump() == before

    def test_deterministic(self, raw_record, settings, clients):
        assert reconcile(raw_record, settings, clients) == reconcile(raw_record, settings, clients)


# ============================================================================
# Client Matching
# ============================================================================

class TestClientMatching:
    """Tests for fuzzy client matching."""

    def test_extracted_name_is_substring(self, raw_record, settings, clients):
        result = reconcile(raw_record, settings, clients)
        assert result.client_name == "Acme Corp"
        assert result.client_address == "Gran Via 20, Madrid"
        assert result.client_cif == "B87654321"

    def test_extracted_name_is_superstring(self, raw_record, settings, clients):
        raw_record.client_name = "Acme Corp International"
        result = reconcile(raw_record, settings, clients)
        assert result.client_name == "Acme Corp"

    def test_case_insensitive(self, clients):
        assert find_client(clients, "GLOBEX S.A.").name == "Globex"

    def test_first_match_wins(self):
        roster = [Client(name="A"), Client(name="AA")]
        assert find_client(roster, "AA") is roster[0]

    def test_no_match_keeps_extracted_fields(self, raw_record, settings, clients):
        raw_record.client_name = "Initech"
        raw_record.client_cif = "C999"
        result = reconcile(raw_record, settings, clients)
        assert result.client_name == "Initech"
        assert result.client_cif == "C999"

    def test_empty_client_name_never_matches(self, raw_record, settings, clients):
        raw_record.client_name = ""
        result = reconcile(raw_record, settings, clients)
        assert result.client_name == ""
        assert result.client_address == ""

    def test_match_without_settings(self, raw_record, clients):
        result = reconcile(raw_record, CompanySettings(), clients)
        assert result.client_name == "Acme Corp"
        assert result.total == raw_record.total


# ============================================================================
# Recalculation
# ============================================================================

class TestRecalculate:
    """Tests for edit-time recalculation."""

    def test_line_totals_overwritten(self, raw_record):
        raw_record.items[0].total = 999
        result = recalculate(raw_record)
        assert result.items[0].total == 60
        assert result.subtotal == 100
        assert result.tax_amount == 10.0
        assert result.total == 110.0

    def test_idempotent(self):
        record = InvoiceRecord(items=[LineItem(quantity=2, unit_price=10)], tax_rate=21)
        once = recalculate(record)
        twice = recalculate(once)
        assert once.subtotal == 20
        assert twice.subtotal == 20
        assert once == twice

    def test_empty_items(self):
        result = recalculate(InvoiceRecord(tax_rate=21, subtotal=50, total=60))
        assert result.subtotal == 0
        assert result.tax_amount == 0
        assert result.total == 0

    def test_input_not_mutated(self, raw_record):
        recalculate(raw_record)
        assert raw_record.subtotal == 95.0


# ============================================================================
# Client Upsert
# ============================================================================

class TestUpsertClient:
    """Tests for the roster upsert."""

    def test_case_insensitive_replace(self):
        roster = upsert_client([], Client(name="Acme", tax_id="B1", address="X"))
        roster = upsert_client(roster, Client(name="ACME", tax_id="B2", address="Y"))
        assert len(roster) == 1
        assert roster[0].name == "ACME"
        assert roster[0].tax_id == "B2"
        assert roster[0].address == "Y"

    def test_replace_keeps_position(self, clients):
        roster = upsert_client(clients, Client(name="acme corp", address="New"))
        assert [c.name for c in roster] == ["acme corp", "Globex"]

    def test_append_new(self, clients):
        roster = upsert_client(clients, Client(name="Initech"))
        assert [c.name for c in roster] == ["Acme Corp", "Globex", "Initech"]

    def test_input_roster_untouched(self, clients):
        upsert_client(clients, Client(name="Initech"))
        upsert_client(clients, Client(name="Globex", address="changed"))
        assert len(clients) == 2
        assert clients[1].address == "Av. Diagonal 1, Barcelona"
