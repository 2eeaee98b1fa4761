"""Shared test fixtures."""

from __future__ import annotations

import sqlite3

import pytest

from receiptsieve.ai.base import LLMResponse, ToolCall
from receiptsieve.database import init_db
from receiptsieve.models import RawEmailMessage
from receiptsieve.store import SqliteStore


@pytest.fixture
def db():
    """In-memory SQLite database with schema initialized."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    init_db(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(db):
    return SqliteStore(db)


@pytest.fixture
def norwegian_receipt():
    """An Elkjøp order confirmation with the order lines in an HTML table."""
    return RawEmailMessage(
        id="msg_elkjop_001",
        subject="Takk for kjøpet hos Elkjøp",
        sender="Elkjøp <noreply@elkjop.no>",
        html_body="""<html><head><style>td { color: red; }</style></head><body>
            <h1>Takk for bestillingen!</h1>
            <p>Ordrenummer: 4455667</p>
            <table>
              <thead><tr><th>Produkt</th><th>Pris</th></tr></thead>
              <tbody>
                <tr><td>Sony WH-1000XM5</td><td>kr 3.990,00</td></tr>
                <tr><td>Frakt</td><td>kr 99,00</td></tr>
              </tbody>
            </table>
            <p>Delsum: kr 4.089,00</p>
            <p>Totalt: kr 4.089,00</p>
            <p>Du har 14 dagers angrerett.</p>
        </body></html>""",
        text_body=None,
        received_at="2025-03-10T09:15:00+00:00",
    )


@pytest.fixture
def english_receipt():
    return RawEmailMessage(
        id="msg_anthropic_001",
        subject="Your receipt from Anthropic, PBC #2231-4410",
        sender="Anthropic, PBC <invoice+statements@mail.anthropic.com>",
        html_body=None,
        text_body=(
            "Receipt from Anthropic, PBC\n"
            "Receipt number 2231-4410\n"
            "Date paid March 3, 2025\n\n"
            "Claude Pro  $20.00\n"
            "Subtotal $20.00\n"
            "Amount paid $20.00\n"
        ),
        received_at="Mon, 03 Mar 2025 18:02:11 +0000",
    )


@pytest.fixture
def forwarded_receipt():
    """A Zara receipt forwarded from a gmail account."""
    return RawEmailMessage(
        id="msg_zara_fwd_001",
        subject="Fwd: Order Confirmation - Zara",
        sender="Kari Nordmann <kari.nordmann@gmail.com>",
        text_body=(
            "---------- Forwarded message ---------\n"
            "From: ZARA <noreply@zara.com>\n"
            "Date: Fri, 7 Mar 2025 at 14:02\n"
            "Subject: Order Confirmation\n"
            "To: <kari.nordmann@gmail.com>\n\n"
            "Thank you for your order, kari.nordmann@gmail.com\n"
            "Order number 55012345\n"
            "Wool blend coat 1 299,00 kr\n"
            "Total 1 299,00 kr\n"
        ),
        received_at="2025-03-07T13:05:00+00:00",
    )


@pytest.fixture
def extraction_payload():
    """A valid extract_order_data tool payload."""
    return {
        "language": "no",
        "email_type": "order_confirmation",
        "is_purchase": True,
        "merchant_name": "Elkjøp",
        "merchant_category": "electronics",
        "order_number": "4455667",
        "purchase_date": "2025-03-10",
        "total_amount": 4089.0,
        "currency": "NOK",
        "item_name": "Sony WH-1000XM5",
        "return_deadline_days": 14,
        "warranty_months": 24,
        "has_invoice_attachment": False,
        "confidence": {
            "overall": "high",
            "merchant": 0.95,
            "amount": 0.9,
            "date": 0.9,
            "email_type": 0.95,
        },
        "extraction_notes": "",
        "needs_review": False,
    }


class FakeProvider:
    """LLMProvider returning scripted responses and recording each call.

    Each scripted item is a tool payload dict, an LLMResponse, or an
    exception instance to raise.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[dict] = []

    def chat(self, messages, max_tokens=4096, system_prompt=None, tools=None, model=None):
        self.calls.append(
            {
                "messages": messages,
                "max_tokens": max_tokens,
                "system_prompt": system_prompt,
                "tools": tools,
                "model": model,
            }
        )
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, LLMResponse):
            return item
        return LLMResponse(
            content="",
            tool_calls=[ToolCall(name="extract_order_data", input=dict(item), id="toolu_1")],
            stop_reason="tool_use",
        )


@pytest.fixture
def fake_provider():
    return FakeProvider
