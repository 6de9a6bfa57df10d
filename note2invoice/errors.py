"""Exception types raised by note2invoice."""


class Note2InvoiceError(Exception):
    """Base class for all note2invoice errors."""


class ExtractionError(Note2InvoiceError):
    """The extraction call failed or returned something unusable for one document."""

    def __init__(self, message: str, filename: str = ""):
        super().__init__(message)
        self.filename = filename


class BatchLimitError(Note2InvoiceError):
    """A batch was submitted with more documents than allowed."""

    def __init__(self, count: int, limit: int):
        super().__init__(f"Maximum {limit} files per batch ({count} submitted)")
        self.count = count
        self.limit = limit


class InvoiceLockedError(Note2InvoiceError):
    """An edit was attempted on a confirmed invoice."""


class UnconfirmedInvoicesError(Note2InvoiceError):
    """A batch export was requested while some invoices are still in review."""

    def __init__(self, labels: list[str]):
        super().__init__(f"Invoices not confirmed: {', '.join(labels)}")
        self.labels = labels
