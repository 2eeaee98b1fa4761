"""Tests for Stage 2: forwarding noise removal."""

from receiptsieve.stages.noise import (
    REDACTED_EMAIL,
    is_consumer_email_domain,
    strip_forwarding_noise,
)


def test_forward_separator_removed():
    text = "---------- Forwarded message ---------\nOrder 123"
    assert strip_forwarding_noise(text) == "Order 123"


def test_locale_forward_markers_removed():
    for marker in (
        "Begin forwarded message:",
        "-------- Videresendt melding --------",
        "---------- Vidarebefordrat meddelande ----------",
        "-----Original Message-----",
    ):
        assert strip_forwarding_noise(f"{marker}\nTotal kr 100,00") == "Total kr 100,00"


def test_header_lines_with_addresses_removed():
    text = (
        "From: ZARA <noreply@zara.com>\n"
        "Fra: Ola <ola@outlook.com>\n"
        "Til: kari@gmail.com\n"
        "Sent: Monday\n"
        "Thanks for shopping"
    )
    assert strip_forwarding_noise(text) == "Sent: Monday\nThanks for shopping"


def test_header_line_without_address_kept():
    text = "Date: 12.03.2025\nTotal: kr 500,00"
    assert strip_forwarding_noise(text) == text


def test_provider_addresses_redacted_merchant_kept():
    text = "Receipt sent to kari@gmail.com, questions to support@zara.com"
    cleaned = strip_forwarding_noise(text)
    assert REDACTED_EMAIL in cleaned
    assert "kari@gmail.com" not in cleaned
    assert "support@zara.com" in cleaned


def test_forwarded_receipt_leaks_no_provider(forwarded_receipt):
    cleaned = strip_forwarding_noise(forwarded_receipt.text_body)
    assert "gmail" not in cleaned.lower()
    assert "Order number 55012345" in cleaned
    assert "Total 1 299,00 kr" in cleaned


def test_consumer_domains():
    assert is_consumer_email_domain("gmail.com")
    assert is_consumer_email_domain("mail.yahoo.com")
    assert is_consumer_email_domain("outlook.no")
    assert is_consumer_email_domain("live.com")
    assert not is_consumer_email_domain("zara.com")
    assert not is_consumer_email_domain("delivery.com")
    assert not is_consumer_email_domain("")


def test_empty_text():
    assert strip_forwarding_noise("") == ""
