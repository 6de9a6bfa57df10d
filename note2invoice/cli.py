"""
Command-line interface for note2invoice.

Provides the main commands:
- process: Extract delivery notes into reconciled invoices (JSON, PDFs, ZIP)
- review: Edit, confirm or reopen invoices stored in a JSON file
- render: Render previously saved invoice JSON to PDFs or a ZIP archive
- settings show/set: Inspect or save the company settings
- clients list/add: Inspect or upsert the client roster
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from .config import DATA_DIR, logger
from .errors import BatchLimitError, InvoiceLockedError, UnconfirmedInvoicesError
from .export import write_batch_archive, write_invoice_pdf
from .extractor import GeminiExtractor
from .pipeline import load_documents, process_batch
from .reconcile import find_client
from .review import ReviewSession, confirm_all, invoice_label, require_confirmed
from .schemas import Client, CompanySettings, InvoiceRecord
from .storage import LocalStore


# Create Typer app
app = typer.Typer(
    name="note2invoice",
    help="Turn delivery notes into invoices",
    add_completion=False,
)
settings_app = typer.Typer(help="Company settings", add_completion=False)
clients_app = typer.Typer(help="Client roster", add_completion=False)
app.add_typer(settings_app, name="settings")
app.add_typer(clients_app, name="clients")

DataDirOption = typer.Option(
    DATA_DIR,
    "--data-dir",
    "-d",
    help="Directory holding settings.json and clients.json",
    file_okay=False,
    dir_okay=True,
)

VerifiedOption = typer.Option(
    False,
    "--verified",
    help="Confirm every invoice of the batch (required for --zip unless all are confirmed)",
)


def write_records(records: list[InvoiceRecord], output: Path) -> None:
    """Write invoice records to a JSON file."""
    with open(output, "w", encoding="utf-8") as f:
        json.dump([record.to_json() for record in records], f, indent=2, ensure_ascii=False)
    logger.info(f"Wrote {len(records)} invoices to: {output}")


def read_records(input_file: Path) -> list[InvoiceRecord]:
    """Read invoice records from a JSON file holding one object or a list."""
    with open(input_file, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list):
        data = [data]
    return [InvoiceRecord.model_validate(entry) for entry in data]


def export_records(
    records: list[InvoiceRecord],
    settings: CompanySettings,
    pdf_dir: Optional[Path],
    zip_dir: Optional[Path],
) -> None:
    if pdf_dir:
        for index, record in enumerate(records):
            path = write_invoice_pdf(record, pdf_dir, index, settings)
            typer.echo(f"  PDF: {path}")
    if zip_dir:
        path = write_batch_archive(records, zip_dir, settings)
        typer.echo(f"  ZIP: {path}")


def parse_assignment(text: str) -> tuple[str, str]:
    """Split FIELD=VALUE."""
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise typer.BadParameter(f"Expected FIELD=VALUE, got '{text}'")
    return key.strip(), value


def parse_item_assignment(text: str) -> tuple[int, str, str]:
    """Split ROW:FIELD=VALUE, with ROW counted from 1."""
    row, sep, assignment = text.partition(":")
    if not sep or not row.strip().isdigit() or int(row) < 1:
        raise typer.BadParameter(f"Expected ROW:FIELD=VALUE, got '{text}'")
    key, value = parse_assignment(assignment)
    return int(row) - 1, key, value


def describe(record: InvoiceRecord, index: int) -> str:
    status = "confirmed" if record.confirmed else "in review"
    return (
        f"  {index + 1}. #{invoice_label(record, index)} | {record.client_name or 'Unknown client'} "
        f"| {record.total:.2f} | {len(record.items)} items | {status}"
    )


@app.command()
def process(
    files: list[Path] = typer.Argument(
        ...,
        help="Delivery notes to process (PDF, images or text, max 10)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    output: Path = typer.Option(
        "invoices.json",
        "--output",
        "-o",
        help="Output JSON file path",
    ),
    pdf_dir: Optional[Path] = typer.Option(
        None,
        "--pdf-dir",
        "-p",
        help="Also render one PDF per invoice into this directory",
    ),
    zip_dir: Optional[Path] = typer.Option(
        None,
        "--zip",
        "-z",
        help="Also write a dated ZIP archive of all PDFs into this directory (needs --verified)",
    ),
    verified: bool = VerifiedOption,
    data_dir: Path = DataDirOption,
) -> None:
    """
    Extract delivery notes and turn them into reconciled invoices.

    Documents are processed one after another; a document that fails is
    reported and skipped. Invoices are written in review state unless
    --verified confirms the whole batch.
    """
    if zip_dir and not verified:
        typer.echo(
            "Error: --zip exports the batch as final. Pass --verified, or run 'review' "
            "and then 'render --zip'.",
            err=True,
        )
        raise typer.Exit(code=1)

    store = LocalStore(data_dir)
    if store.settings.name:
        typer.echo(f"Active company: {store.settings.name}")
    else:
        typer.echo("No company configured; supplier data is taken from the documents.")

    try:
        documents = load_documents(files)
    except BatchLimitError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    def progress(done: int, total: int) -> None:
        typer.echo(f"  [{done}/{total}] processed")

    try:
        result = asyncio.run(
            process_batch(documents, GeminiExtractor(), store.settings, store.clients, progress)
        )

        if not result.records:
            typer.echo("No invoices were extracted.", err=True)
            for failure in result.failures:
                typer.echo(f"  - {failure.filename}: {failure.error}", err=True)
            raise typer.Exit(code=1)

        records = confirm_all(result.records) if verified else result.records
        write_records(records, output)

        typer.echo(f"\n[OK] Generated {result.processed} of {result.total} invoice(s): {output}")
        for index, record in enumerate(records):
            typer.echo(describe(record, index))
        if result.failures:
            typer.echo("\nSkipped:")
            for failure in result.failures:
                typer.echo(f"  - {failure.filename}: {failure.error}")

        export_records(records, store.settings, pdf_dir, zip_dir)

    except typer.Exit:
        raise
    except Exception as e:
        typer.echo(f"Error during processing: {e}", err=True)
        logger.exception("Processing failed")
        raise typer.Exit(code=1)


@app.command()
def review(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="Invoice JSON file written by 'process'; updated in place",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    invoice: Optional[int] = typer.Option(
        None,
        "--invoice",
        "-n",
        min=1,
        help="Invoice to edit (1-based). Without it, list the file or confirm/reopen all",
    ),
    set_fields: Optional[list[str]] = typer.Option(
        None, "--set", help="Header edit FIELD=VALUE, e.g. taxRate=10 (repeatable)"
    ),
    item_edits: Optional[list[str]] = typer.Option(
        None, "--item", help="Row edit ROW:FIELD=VALUE, e.g. 2:quantity=5 (repeatable)"
    ),
    add_items: Optional[list[str]] = typer.Option(
        None, "--add-item", help="Append a row with this description (repeatable)"
    ),
    remove_items: Optional[list[int]] = typer.Option(
        None, "--remove-item", help="Delete row ROW, 1-based (repeatable)"
    ),
    client: Optional[str] = typer.Option(
        None, "--client", help="Apply the roster client matching this name"
    ),
    save_client: bool = typer.Option(
        False, "--save-client", help="Store the invoice's client in the roster"
    ),
    confirm: bool = typer.Option(False, "--confirm", help="Accept the invoice(s) as final"),
    reopen: bool = typer.Option(False, "--reopen", help="Return confirmed invoice(s) to review"),
    data_dir: Path = DataDirOption,
) -> None:
    """
    Review invoices: edit fields and rows, pick a client, confirm or reopen.

    Row and tax rate changes recalculate every total. Confirmed invoices
    must be reopened before they can be edited.
    """
    if confirm and reopen:
        typer.echo("Error: --confirm and --reopen cannot be combined.", err=True)
        raise typer.Exit(code=1)

    try:
        records = read_records(input_file)
    except (json.JSONDecodeError, ValidationError) as e:
        typer.echo(f"Error: Invalid invoice JSON in input file: {e}", err=True)
        raise typer.Exit(code=1)

    editing = bool(set_fields or item_edits or add_items or remove_items or client or save_client)

    if invoice is None:
        if editing:
            typer.echo("Error: choose the invoice to edit with --invoice.", err=True)
            raise typer.Exit(code=1)
        if confirm:
            records = confirm_all(records)
        elif reopen:
            records = [ReviewSession(record).reopen() for record in records]
    else:
        index = invoice - 1
        if index >= len(records):
            typer.echo(f"Error: the file holds {len(records)} invoice(s).", err=True)
            raise typer.Exit(code=1)

        store = LocalStore(data_dir)
        session = ReviewSession(records[index], store.clients)
        if reopen:
            session.reopen()

        try:
            for assignment in set_fields or []:
                session.update_field(*parse_assignment(assignment))

            if client:
                matched = find_client(store.clients, client)
                if matched is None:
                    typer.echo(f"Error: no client in the roster matches '{client}'.", err=True)
                    raise typer.Exit(code=1)
                session.apply_client(matched)

            for assignment in item_edits or []:
                row, key, value = parse_item_assignment(assignment)
                session.update_item(row, **{key: value})

            for row in sorted(remove_items or [], reverse=True):
                if row < 1:
                    raise IndexError(f"row {row}")
                session.remove_item(row - 1)

            for description in add_items or []:
                session.add_item(description)

        except InvoiceLockedError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1)
        except IndexError as e:
            typer.echo(f"Error: no such item row ({e})", err=True)
            raise typer.Exit(code=1)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1)

        if save_client:
            if not session.record.client_name:
                typer.echo("Error: the invoice has no client name to save.", err=True)
                raise typer.Exit(code=1)
            store.save_client(session.current_client())
            typer.echo(f"Saved client '{session.record.client_name}' to the roster")

        if confirm:
            session.confirm()

        records[index] = session.record

    if editing or confirm or reopen:
        write_records(records, input_file)
        typer.echo(f"[OK] Updated: {input_file}")

    for index, record in enumerate(records):
        typer.echo(describe(record, index))


@app.command()
def render(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="Invoice JSON file written by 'process'",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    pdf_dir: Optional[Path] = typer.Option(None, "--pdf-dir", "-p", help="Directory for one PDF per invoice"),
    zip_dir: Optional[Path] = typer.Option(None, "--zip", "-z", help="Directory for the dated ZIP archive"),
    verified: bool = VerifiedOption,
    data_dir: Path = DataDirOption,
) -> None:
    """Render reviewed invoice JSON to PDF files and/or a ZIP archive."""
    if not pdf_dir and not zip_dir:
        typer.echo("Nothing to do: pass --pdf-dir and/or --zip.", err=True)
        raise typer.Exit(code=1)

    try:
        records = read_records(input_file)
    except (json.JSONDecodeError, ValidationError) as e:
        typer.echo(f"Error: Invalid invoice JSON in input file: {e}", err=True)
        raise typer.Exit(code=1)

    if not records:
        typer.echo("No invoices found in input file.", err=True)
        raise typer.Exit(code=1)

    if verified:
        records = confirm_all(records)
    if zip_dir:
        try:
            require_confirmed(records)
        except UnconfirmedInvoicesError as e:
            typer.echo(f"Error: {e}. Confirm them with 'review' or pass --verified.", err=True)
            raise typer.Exit(code=1)

    store = LocalStore(data_dir)
    export_records(records, store.settings, pdf_dir, zip_dir)
    typer.echo(f"\n[OK] Rendered {len(records)} invoice(s)")


@settings_app.command("show")
def settings_show(data_dir: Path = DataDirOption) -> None:
    """Print the stored company settings."""
    store = LocalStore(data_dir)
    typer.echo(json.dumps(store.settings.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False))


@settings_app.command("set")
def settings_set(
    name: Optional[str] = typer.Option(None, "--name", help="Company name"),
    tax_id: Optional[str] = typer.Option(None, "--tax-id", help="Company tax id"),
    address: Optional[str] = typer.Option(None, "--address", help="Company address"),
    tax_rate: Optional[float] = typer.Option(None, "--tax-rate", help="Default tax rate in percent"),
    logo: Optional[str] = typer.Option(None, "--logo", help="Logo file path or data URL"),
    data_dir: Path = DataDirOption,
) -> None:
    """Update and save the company settings. Omitted options keep their value."""
    store = LocalStore(data_dir)
    changes = {
        "name": name,
        "tax_id": tax_id,
        "address": address,
        "default_tax_rate": tax_rate,
        "logo_ref": logo,
    }
    data = store.settings.model_dump()
    data.update({key: value for key, value in changes.items() if value is not None})

    try:
        settings = CompanySettings.model_validate(data)
    except ValidationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    store.save_settings(settings)
    typer.echo(f"[OK] Settings saved to: {store.settings_path}")


@clients_app.command("list")
def clients_list(data_dir: Path = DataDirOption) -> None:
    """List the stored clients."""
    store = LocalStore(data_dir)
    if not store.clients:
        typer.echo("No clients stored.")
        return
    for client in store.clients:
        typer.echo(f"  - {client.name} | {client.tax_id or '-'} | {client.address or '-'}")


@clients_app.command("add")
def clients_add(
    name: str = typer.Argument(..., help="Client name (case-insensitive key)"),
    tax_id: str = typer.Option("", "--tax-id", help="Client tax id"),
    address: str = typer.Option("", "--address", help="Client address"),
    data_dir: Path = DataDirOption,
) -> None:
    """Add a client, or replace the one with the same name."""
    store = LocalStore(data_dir)
    clients = store.save_client(Client(name=name, tax_id=tax_id, address=address))
    typer.echo(f"[OK] Saved client '{name}' ({len(clients)} in roster)")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"note2invoice v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
