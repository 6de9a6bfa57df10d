"""
FastAPI application for note2invoice.

Provides REST API endpoints for:
- Health check
- Company settings and client roster
- Single-document extraction and batch processing
- Recalculation of edited invoices
- PDF rendering and ZIP export
"""

from functools import lru_cache
from typing import List

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .config import API_HOST, API_PORT, DEFAULT_MIME_TYPE, MAX_BATCH_SIZE, MAX_UPLOAD_SIZE_MB, logger
from .errors import BatchLimitError, ExtractionError, InvoiceLockedError, UnconfirmedInvoicesError
from .export import archive_filename, build_batch_archive, invoice_pdf_filename
from .extractor import GeminiExtractor, get_mime_type
from .pipeline import Extractor, SourceDocument, check_batch_size, process_batch, process_document
from .renderer import render_invoice_pdf
from .review import ReviewSession, confirm_all, require_confirmed
from .schemas import BatchResult, Client, CompanySettings, InvoiceRecord
from .storage import LocalStore


# ============================================================================
# FastAPI App Configuration
# ============================================================================

app = FastAPI(
    title="note2invoice API",
    description="""
    Turn delivery notes into invoices.

    ## Features

    - **Extract**: Upload a delivery note (PDF or image) and get a reconciled invoice
    - **Batch**: Process up to 10 documents in one request; failures are skipped
    - **Review**: Recompute totals after editing, then confirm or reopen an invoice
    - **Render / Export**: Download one invoice as PDF or a batch of confirmed invoices as ZIP
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Dependencies
# ============================================================================

@lru_cache
def get_store() -> LocalStore:
    """Process-wide settings and client store, loaded on first use."""
    return LocalStore()


@lru_cache
def get_extractor() -> Extractor:
    return GeminiExtractor()


# ============================================================================
# Request/Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ExportRequest(BaseModel):
    """Request body for the ZIP export endpoint."""
    records: List[InvoiceRecord] = Field(..., min_length=1)
    verified: bool = Field(False, description="Confirm every record as part of the export")


async def read_upload(file: UploadFile) -> SourceDocument:
    """Read an upload into a SourceDocument, enforcing the size limit."""
    content = await file.read()
    if len(content) > MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise HTTPException(
            status_code=413,
            detail=f"{file.filename}: File too large (max {MAX_UPLOAD_SIZE_MB}MB)",
        )
    filename = file.filename or "upload"
    declared = file.content_type
    if declared == DEFAULT_MIME_TYPE:
        declared = None
    return SourceDocument(
        filename=filename,
        content=content,
        mime_type=get_mime_type(filename, declared),
    )


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """Returns the service status and version information."""
    from . import __version__
    return HealthResponse(status="ok", version=__version__)


@app.get("/settings", response_model=CompanySettings, tags=["Settings"])
async def read_settings(store: LocalStore = Depends(get_store)) -> CompanySettings:
    return store.settings


@app.put("/settings", response_model=CompanySettings, tags=["Settings"])
async def update_settings(
    settings: CompanySettings,
    store: LocalStore = Depends(get_store),
) -> CompanySettings:
    """Save the company settings. Applies to invoices processed afterwards."""
    return store.save_settings(settings)


@app.get("/clients", response_model=List[Client], tags=["Clients"])
async def list_clients(store: LocalStore = Depends(get_store)) -> List[Client]:
    return store.clients


@app.post("/clients", response_model=List[Client], tags=["Clients"])
async def save_client(client: Client, store: LocalStore = Depends(get_store)) -> List[Client]:
    """Add a client, or replace the one with the same name (case-insensitive)."""
    return store.save_client(client)


@app.post(
    "/extract",
    response_model=InvoiceRecord,
    tags=["Extraction"],
    summary="Extract one delivery note",
)
async def extract(
    file: UploadFile = File(..., description="Delivery note (PDF, image or text)"),
    store: LocalStore = Depends(get_store),
    extractor: Extractor = Depends(get_extractor),
) -> InvoiceRecord:
    """
    Extract a delivery note and return the reconciled invoice for review.

    Company settings and the client roster are applied to the extracted data.
    """
    document = await read_upload(file)
    try:
        return await process_document(document, extractor, store.settings, store.clients)
    except ExtractionError as e:
        logger.error(f"Failed to extract from {document.filename}: {e}")
        raise HTTPException(status_code=422, detail=f"Error processing the file: {e}")


@app.post(
    "/batch",
    response_model=BatchResult,
    tags=["Extraction"],
    summary="Process up to 10 delivery notes",
)
async def batch(
    files: List[UploadFile] = File(..., description="Delivery notes to process"),
    store: LocalStore = Depends(get_store),
    extractor: Extractor = Depends(get_extractor),
) -> BatchResult:
    """
    Process several delivery notes sequentially.

    Documents that fail extraction are listed under ``failures`` and the
    rest of the batch continues. More than 10 files are rejected before any
    processing starts.
    """
    try:
        check_batch_size(len(files))
    except BatchLimitError as e:
        raise HTTPException(status_code=400, detail=str(e))

    documents = [await read_upload(file) for file in files]
    return await process_batch(documents, extractor, store.settings, store.clients)


@app.post("/recalculate", response_model=InvoiceRecord, tags=["Review"])
async def recalculate_invoice(record: InvoiceRecord) -> InvoiceRecord:
    """Recompute line totals, subtotal, tax and total of an edited invoice."""
    try:
        return ReviewSession(record).recalculate()
    except InvoiceLockedError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.post("/confirm", response_model=InvoiceRecord, tags=["Review"])
async def confirm_invoice(record: InvoiceRecord) -> InvoiceRecord:
    """Accept a reviewed invoice. Confirmed invoices are locked until reopened."""
    return ReviewSession(record).confirm()


@app.post("/reopen", response_model=InvoiceRecord, tags=["Review"])
async def reopen_invoice(record: InvoiceRecord) -> InvoiceRecord:
    """Return a confirmed invoice to review."""
    return ReviewSession(record).reopen()


@app.post("/render", tags=["Export"], response_class=Response)
async def render(record: InvoiceRecord, store: LocalStore = Depends(get_store)) -> Response:
    """Render one invoice as a PDF download."""
    pdf = render_invoice_pdf(record, store.settings)
    filename = invoice_pdf_filename(record, 0)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/export", tags=["Export"], response_class=Response)
async def export(request: ExportRequest, store: LocalStore = Depends(get_store)) -> Response:
    """
    Render a batch of confirmed invoices and return them as one ZIP archive.

    Every record must be confirmed, or ``verified`` must be set to confirm
    the whole batch at once. Otherwise the export is refused with 409.
    """
    records = confirm_all(request.records) if request.verified else request.records
    try:
        require_confirmed(records)
    except UnconfirmedInvoicesError as e:
        raise HTTPException(status_code=409, detail=str(e))

    archive = build_batch_archive(records, store.settings)
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{archive_filename()}"'},
    )


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# ============================================================================
# Startup/Shutdown Events
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Load stored settings and clients, and log startup information."""
    store = get_store()
    logger.info(
        f"note2invoice API starting on {API_HOST}:{API_PORT} "
        f"(company: {store.settings.name or 'not configured'}, {len(store.clients)} clients, "
        f"batch limit {MAX_BATCH_SIZE})"
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("note2invoice API shutting down")


# ============================================================================
# Main Entry Point
# ============================================================================

def run_server():
    """Run the API server using uvicorn."""
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run_server()
