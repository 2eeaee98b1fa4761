"""Tests for Stage 4: currency amount parsing."""

import pytest

from receiptsieve.models import AmountCandidate, Language
from receiptsieve.stages.amounts import (
    extract_all_amounts,
    find_total_amount,
    format_currency,
    infer_currency,
    normalize_currency,
)


def test_norwegian_kr_prefix():
    result = normalize_currency("kr 1.217,00")
    assert result.amount == 1217.00
    assert result.currency == "NOK"
    assert result.confidence >= 0.8


def test_us_dollar():
    result = normalize_currency("$1,234.56")
    assert result.amount == 1234.56
    assert result.currency == "USD"
    assert result.confidence == 1.0


@pytest.mark.parametrize(
    "text, amount, currency",
    [
        ("1 217,00 kr", 1217.00, "NOK"),
        ("NOK 99,90", 99.90, "NOK"),
        ("kr 1 217", 1217.00, "NOK"),
        ("Pris: 1217,- kr", 1217.00, "NOK"),
        ("€86,98", 86.98, "EUR"),
        ("86,98 €", 86.98, "EUR"),
        ("EUR 1.234,50", 1234.50, "EUR"),
        ("1234.56 USD", 1234.56, "USD"),
        ("1,435.00 NOK", 1435.00, "NOK"),
        ("SEK 1,435.00", 1435.00, "SEK"),
        ("1.435,00 DKK", 1435.00, "DKK"),
        ("£12.99", 12.99, "GBP"),
    ],
)
def test_locale_formats(text, amount, currency):
    result = normalize_currency(text)
    assert result.amount == pytest.approx(amount)
    assert result.currency == currency


def test_bare_comma_decimal_defaults_to_nok_without_marker_bonus():
    result = normalize_currency("99,50")
    assert result.amount == 99.50
    assert result.currency == "NOK"
    assert result.confidence == pytest.approx(0.7)


def test_generic_decimal_has_no_currency():
    result = normalize_currency("Amount 42.50")
    assert result.amount == 42.50
    assert result.currency is None
    assert result.confidence == pytest.approx(0.7)


def test_us_amount_not_misread_as_nok():
    # "1,23" inside "$1,234.56" must not win as a Norwegian decimal.
    assert normalize_currency("Total $1,234.56").currency == "USD"


def test_date_not_parsed_as_amount():
    assert normalize_currency("Dato 12.03.2025").amount is None


def test_huge_amount_gets_no_range_bonus():
    result = normalize_currency("kr 2.000.000,00")
    assert result.amount == 2_000_000.00
    assert result.confidence == pytest.approx(0.8)


def test_no_amount():
    result = normalize_currency("no numbers here")
    assert result.amount is None
    assert result.confidence == 0.0
    assert normalize_currency("").amount is None


def test_deterministic():
    assert normalize_currency("kr 1.217,00") == normalize_currency("kr 1.217,00")


def test_extract_all_amounts_only_keyword_or_marker_lines():
    text = "Ordrenummer 12345,67\nVare kr 199,00\nTotalt 398,00\nAntall 2"
    amounts = extract_all_amounts(text)
    assert [a.amount for a in amounts] == [199.00, 398.00]


def test_total_keyword_beats_larger_amount():
    text = "Total: kr 500,00\nkr 2000,00"
    amounts = extract_all_amounts(text)
    total = find_total_amount(text, amounts)
    assert total.amount == 500.00
    assert total.confidence == 1.0


def test_total_on_next_line():
    text = "Totalt å betale\nkr 1.499,00\nFrakt kr 49,00"
    total = find_total_amount(text, extract_all_amounts(text))
    assert total.amount == 1499.00


def test_subtotal_is_not_total():
    text = "Subtotal $90.00\nShipping $10.00\nGrand total $100.00"
    total = find_total_amount(text, extract_all_amounts(text))
    assert total.amount == 100.00


def test_fallback_to_largest():
    text = "Vare kr 199,00\nVare kr 349,00"
    total = find_total_amount(text, extract_all_amounts(text))
    assert total.amount == 349.00


def test_no_candidates_no_total():
    assert find_total_amount("nothing", []) is None


def test_confidence_boost_capped():
    text = "Total kr 100,00"
    candidates = [AmountCandidate(raw="kr 100,00", amount=100.0, currency="NOK", confidence=1.0)]
    assert find_total_amount(text, candidates).confidence == 1.0


def test_infer_currency_explicit_mentions_first():
    assert infer_currency(Language.ENGLISH, "Paid in NOK") == "NOK"
    assert infer_currency(Language.NORWEGIAN, "Betalt med €") == "EUR"
    assert infer_currency(Language.OTHER, "charged in dollars") == "USD"


def test_infer_currency_by_language():
    assert infer_currency(Language.NORWEGIAN, "Takk") == "NOK"
    assert infer_currency(Language.SWEDISH, "Tack") == "SEK"
    assert infer_currency(Language.DANISH, "Tak") == "DKK"
    assert infer_currency("en", "Visit shop.example.co.uk") == "GBP"
    assert infer_currency(Language.ENGLISH, "Thanks") is None
    assert infer_currency(Language.OTHER, "") is None


def test_format_currency():
    assert format_currency(1217.0, "NOK") == "kr 1 217,00"
    assert format_currency(1234.56, "USD") == "$1,234.56"
    assert format_currency(86.98, "EUR") == "86,98 €"
    assert format_currency(10.0, "CHF") == "CHF 10.00"
    assert format_currency(10.0, None) == "10.00"
