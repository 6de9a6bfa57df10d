"""Shared fixtures: a fake extraction collaborator keyed by document content."""

import pytest

from note2invoice.errors import ExtractionError


class FakeExtractor:
    """
    Async stand-in for the Gemini extractor.

    ``responses`` maps document content to the dict returned for it;
    content listed in ``failing`` raises ExtractionError.
    """

    def __init__(self, responses=None, failing=()):
        self.responses = responses or {}
        self.failing = set(failing)
        self.calls: list[tuple[bytes, str]] = []

    async def __call__(self, content: bytes, mime_type: str):
        self.calls.append((content, mime_type))
        if content in self.failing:
            raise ExtractionError("model unavailable")
        return dict(self.responses.get(content, {}))


def delivery_note(number: str, client: str = "Acme", amount: float = 100.0) -> dict:
    """An extraction answer in the model's camelCase shape."""
    return {
        "invoiceNumber": number,
        "date": "04/03/2024",
        "supplierName": "Printed Supplier",
        "supplierAddress": "Printed address",
        "clientName": client,
        "items": [
            {"description": "Goods", "quantity": 1, "unitPrice": amount, "total": amount},
        ],
        "subtotal": amount,
        "taxRate": 10,
        "taxAmount": amount / 10,
        "total": amount * 1.1,
    }


@pytest.fixture
def fake_extractor():
    return FakeExtractor(
        responses={
            b"note-1": delivery_note("A-1", "Acme", 100.0),
            b"note-2": delivery_note("A-2", "Globex", 50.0),
            b"note-3": delivery_note("A-3", "acme corp s.l.", 200.0),
        },
        failing={b"broken"},
    )
