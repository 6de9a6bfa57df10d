"""
Processing pipeline from source documents to reconciled invoice records.

This module orchestrates extraction and reconciliation for one document or a
batch. Batches run strictly in input order, one extraction at a time; a
document that fails is logged, recorded and skipped.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence, Union

from .config import MAX_BATCH_SIZE, logger
from .errors import BatchLimitError
from .extractor import build_record, get_mime_type
from .reconcile import reconcile
from .schemas import BatchFailure, BatchResult, Client, CompanySettings, InvoiceRecord


# An extractor takes (content, mime_type) and returns a raw record or its dict form
Extractor = Callable[[bytes, str], Awaitable[Union[InvoiceRecord, dict]]]

ProgressCallback = Callable[[int, int], None]


@dataclass
class SourceDocument:
    """
    A document submitted for processing.

    Attributes:
        filename: Original file name, used for logging and as source_filename
        content: Raw file bytes
        mime_type: Resolved MIME type; derived from the filename when omitted
    """
    filename: str
    content: bytes = field(repr=False)
    mime_type: str = ""

    def __post_init__(self) -> None:
        if not self.mime_type:
            self.mime_type = get_mime_type(self.filename)

    @classmethod
    def from_path(cls, path: Path) -> "SourceDocument":
        return cls(filename=path.name, content=path.read_bytes())


def check_batch_size(count: int, limit: int = MAX_BATCH_SIZE) -> None:
    """Reject a batch larger than the limit before any work starts."""
    if count > limit:
        raise BatchLimitError(count, limit)


async def process_document(
    document: SourceDocument,
    extractor: Extractor,
    settings: CompanySettings,
    clients: Sequence[Client],
) -> InvoiceRecord:
    """
    Extract one document and reconcile the result.

    Args:
        document: The source document
        extractor: Async extraction collaborator
        settings: Company settings snapshot
        clients: Client roster snapshot

    Returns:
        The reconciled InvoiceRecord

    Raises:
        ExtractionError: If extraction fails or returns unusable data
    """
    logger.info(f"Extracting invoice from: {document.filename}")

    raw = await extractor(document.content, document.mime_type)
    if isinstance(raw, dict):
        raw = build_record(raw, document.filename)
    elif not raw.source_filename:
        raw = raw.model_copy(update={"source_filename": document.filename})

    record = reconcile(raw, settings, clients)
    logger.info(f"Extracted invoice: {record.invoice_number or '(no number)'} from {document.filename}")
    return record


async def process_batch(
    documents: Sequence[SourceDocument],
    extractor: Extractor,
    settings: CompanySettings,
    clients: Sequence[Client],
    on_progress: Optional[ProgressCallback] = None,
) -> BatchResult:
    """
    Process a batch of documents sequentially, skipping failures.

    The size limit is checked before the first extraction call. Settings and
    roster are snapshotted once and shared, read-only, by every document.

    Args:
        documents: Source documents, processed in this order
        extractor: Async extraction collaborator
        settings: Company settings
        clients: Client roster
        on_progress: Optional callback receiving (documents_done, documents_total)

    Returns:
        BatchResult with records in input order and one failure entry per skipped document

    Raises:
        BatchLimitError: If more than MAX_BATCH_SIZE documents are submitted
    """
    check_batch_size(len(documents))

    settings = settings.model_copy(deep=True)
    clients = tuple(client.model_copy() for client in clients)

    logger.info(f"Processing batch of {len(documents)} documents")

    records: list[InvoiceRecord] = []
    failures: list[BatchFailure] = []

    for index, document in enumerate(documents):
        try:
            record = await process_document(document, extractor, settings, clients)
            records.append(record)
        except Exception as e:
            logger.error(f"Error processing file {index} ({document.filename}): {e}")
            failures.append(BatchFailure(index=index, filename=document.filename, error=str(e)))

        if on_progress is not None:
            on_progress(index + 1, len(documents))

    logger.info(f"Batch complete: {len(records)} processed, {len(failures)} skipped")

    return BatchResult(records=records, failures=failures, total=len(documents))


def load_documents(paths: Sequence[Path]) -> list[SourceDocument]:
    """Read files from disk into SourceDocuments, checking the batch limit first."""
    check_batch_size(len(paths))
    return [SourceDocument.from_path(path) for path in paths]
