"""
Tests for the processing pipeline.

Async functions are driven with asyncio.run; extraction is replaced with
the FakeExtractor from conftest.
"""

import asyncio

import pytest

from note2invoice.errors import BatchLimitError, ExtractionError
from note2invoice.pipeline import (
    SourceDocument,
    check_batch_size,
    load_documents,
    process_batch,
    process_document,
)
from note2invoice.schemas import Client, CompanySettings, InvoiceRecord


@pytest.fixture
def settings() -> CompanySettings:
    return CompanySettings(name="Talleres Norte SL", tax_id="B123", address="Bilbao", default_tax_rate=21)


@pytest.fixture
def clients() -> list[Client]:
    return [Client(name="Acme Corp", tax_id="B1", address="Madrid")]


def docs(*contents: bytes) -> list[SourceDocument]:
    return [SourceDocument(filename=f"doc{i + 1}.pdf", content=c) for i, c in enumerate(contents)]


class TestSourceDocument:
    """Tests for SourceDocument construction."""

    def test_mime_type_from_filename(self):
        assert SourceDocument("scan.JPG", b"x").mime_type == "image/jpeg"

    def test_declared_mime_type_kept(self):
        assert SourceDocument("scan", b"x", "image/png").mime_type == "image/png"

    def test_from_path(self, tmp_path):
        path = tmp_path / "note.txt"
        path.write_bytes(b"hello")
        doc = SourceDocument.from_path(path)
        assert doc.filename == "note.txt"
        assert doc.content == b"hello"
        assert doc.mime_type == "text/plain"


class TestProcessDocument:
    """Tests for single-document processing."""

    def test_extract_and_reconcile(self, fake_extractor, settings, clients):
        doc = docs(b"note-1")[0]
        record = asyncio.run(process_document(doc, fake_extractor, settings, clients))

        assert record.invoice_number == "A-1"
        assert record.date == "2024-03-04"
        assert record.supplier_name == "Talleres Norte SL"
        assert record.client_name == "Acme Corp"
        assert record.tax_amount == 21.0
        assert record.total == 121.0
        assert record.source_filename == "doc1.pdf"
        assert fake_extractor.calls == [(b"note-1", "application/pdf")]

    def test_record_returning_extractor(self, settings):
        async def extractor(content, mime_type):
            return InvoiceRecord(invoice_number="R-1")

        record = asyncio.run(process_document(docs(b"x")[0], extractor, settings, []))
        assert record.invoice_number == "R-1"
        assert record.source_filename == "doc1.pdf"

    def test_failure_propagates(self, fake_extractor, settings):
        with pytest.raises(ExtractionError):
            asyncio.run(process_document(docs(b"broken")[0], fake_extractor, settings, []))


class TestProcessBatch:
    """Tests for sequential batch processing."""

    def test_all_succeed_in_order(self, fake_extractor, settings, clients):
        result = asyncio.run(
            process_batch(docs(b"note-1", b"note-2", b"note-3"), fake_extractor, settings, clients)
        )
        assert [r.invoice_number for r in result.records] == ["A-1", "A-2", "A-3"]
        assert result.failures == []
        assert result.total == 3
        assert result.processed == 3

    def test_failure_is_skipped(self, fake_extractor, settings, clients):
        result = asyncio.run(
            process_batch(docs(b"note-1", b"broken", b"note-3"), fake_extractor, settings, clients)
        )
        assert len(result.records) == 2
        assert [r.source_filename for r in result.records] == ["doc1.pdf", "doc3.pdf"]
        assert len(result.failures) == 1
        assert result.failures[0].index == 1
        assert result.failures[0].filename == "doc2.pdf"
        assert "model unavailable" in result.failures[0].error
        assert len(fake_extractor.calls) == 3

    def test_over_limit_rejected_before_extraction(self, fake_extractor, settings):
        with pytest.raises(BatchLimitError):
            asyncio.run(process_batch(docs(*[b"note-1"] * 11), fake_extractor, settings, []))
        assert fake_extractor.calls == []

    def test_limit_is_inclusive(self, fake_extractor, settings):
        result = asyncio.run(process_batch(docs(*[b"note-1"] * 10), fake_extractor, settings, []))
        assert result.processed == 10

    def test_sequential_execution(self, settings):
        active = 0
        peak = 0

        async def extractor(content, mime_type):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            active -= 1
            return {"invoiceNumber": content.decode()}

        result = asyncio.run(process_batch(docs(b"1", b"2", b"3"), extractor, settings, []))
        assert peak == 1
        assert [r.invoice_number for r in result.records] == ["1", "2", "3"]

    def test_progress_callback(self, fake_extractor, settings):
        seen = []
        asyncio.run(
            process_batch(
                docs(b"note-1", b"broken"), fake_extractor, settings, [],
                on_progress=lambda done, total: seen.append((done, total)),
            )
        )
        assert seen == [(1, 2), (2, 2)]

    def test_settings_and_clients_untouched(self, fake_extractor, settings, clients):
        before = (settings.model_dump(), [c.model_dump() for c in clients])
        asyncio.run(process_batch(docs(b"note-1", b"note-3"), fake_extractor, settings, clients))
        assert (settings.model_dump(), [c.model_dump() for c in clients]) == before

    def test_numeric_invoice_number_not_skipped(self, settings):
        async def extractor(content, mime_type):
            return {"invoiceNumber": 1234, "clientName": "Acme", "items": []}

        result = asyncio.run(process_batch(docs(b"x"), extractor, settings, []))
        assert result.failures == []
        assert result.records[0].invoice_number == "1234"

    def test_empty_batch(self, fake_extractor, settings):
        result = asyncio.run(process_batch([], fake_extractor, settings, []))
        assert result.records == []
        assert result.total == 0


class TestBatchLimit:
    """Tests for the batch size check."""

    def test_check_batch_size(self):
        check_batch_size(10)
        with pytest.raises(BatchLimitError) as exc_info:
            check_batch_size(11)
        assert exc_info.value.count == 11
        assert exc_info.value.limit == 10

    def test_load_documents_rejects_before_reading(self, tmp_path):
        paths = [tmp_path / f"missing-{i}.pdf" for i in range(11)]
        with pytest.raises(BatchLimitError):
            load_documents(paths)
