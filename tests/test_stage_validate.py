"""Tests for Stage 7: extraction schema validation and review rules."""

import pytest

from receiptsieve.models import EmailType, Language, OverallConfidence
from receiptsieve.stages.validate import (
    ExtractionValidationError,
    is_purchase_email,
    needs_manual_review,
    validate_extraction,
)


def test_valid_payload(extraction_payload):
    result = validate_extraction(extraction_payload)

    assert result.language == Language.NORWEGIAN
    assert result.email_type == EmailType.ORDER_CONFIRMATION
    assert result.merchant_name == "Elkjøp"
    assert result.total_amount == 4089.0
    assert result.confidence.overall == OverallConfidence.HIGH
    assert result.needs_review is False


def test_blank_strings_become_none(extraction_payload):
    extraction_payload.update(order_number="", purchase_date="  ", currency="", extraction_notes="")
    result = validate_extraction(extraction_payload)

    assert result.order_number is None
    assert result.purchase_date is None
    assert result.currency is None


def test_currency_normalized_to_upper(extraction_payload):
    extraction_payload["currency"] = "nok"
    assert validate_extraction(extraction_payload).currency == "NOK"


@pytest.mark.parametrize(
    "field, value",
    [
        ("language", "nl"),
        ("email_type", "newsletter"),
        ("merchant_category", "cars"),
        ("purchase_date", "10.03.2025"),
        ("estimated_delivery_date", "2025/03/12"),
        ("currency", "KRONER"),
        ("total_amount", 0),
        ("total_amount", -5),
        ("warranty_months", -1),
        ("return_deadline_days", 1.5),
        ("items_count", 0),
        ("merchant_name", ""),
    ],
)
def test_invalid_fields_rejected(extraction_payload, field, value):
    extraction_payload[field] = value
    with pytest.raises(ExtractionValidationError) as exc_info:
        validate_extraction(extraction_payload)
    assert any(issue.startswith(field) for issue in exc_info.value.issues)


@pytest.mark.parametrize("key", ["overall", "merchant", "amount", "date", "email_type"])
def test_confidence_fields_required(extraction_payload, key):
    del extraction_payload["confidence"][key]
    with pytest.raises(ExtractionValidationError):
        validate_extraction(extraction_payload)


def test_confidence_out_of_range(extraction_payload):
    extraction_payload["confidence"]["merchant"] = 1.5
    with pytest.raises(ExtractionValidationError):
        validate_extraction(extraction_payload)


@pytest.mark.parametrize(
    "field", ["language", "email_type", "is_purchase", "merchant_name", "confidence", "needs_review", "has_invoice_attachment"]
)
def test_required_fields(extraction_payload, field):
    del extraction_payload[field]
    with pytest.raises(ExtractionValidationError):
        validate_extraction(extraction_payload)


def test_all_issues_reported(extraction_payload):
    extraction_payload.update(language="xx", currency="KRONER", total_amount=-1)
    with pytest.raises(ExtractionValidationError) as exc_info:
        validate_extraction(extraction_payload)
    assert len(exc_info.value.issues) == 3


def test_non_dict_payload():
    with pytest.raises(ExtractionValidationError):
        validate_extraction(["not", "a", "dict"])


@pytest.mark.parametrize("merchant", ["Gmail", "outlook.com", "Yahoo Mail", "unknown"])
def test_provider_merchant_always_rejected(extraction_payload, merchant):
    extraction_payload["merchant_name"] = merchant
    with pytest.raises(ExtractionValidationError):
        validate_extraction(extraction_payload)


def test_lenient_accepts_low_confidence(extraction_payload):
    extraction_payload["confidence"]["overall"] = "low"
    extraction_payload["merchant_name"] = "X"
    result = validate_extraction(extraction_payload)
    assert result.needs_review is True


def test_strict_rejects_low_confidence_and_short_merchant(extraction_payload):
    extraction_payload["confidence"]["overall"] = "low"
    extraction_payload["merchant_name"] = "X"
    with pytest.raises(ExtractionValidationError) as exc_info:
        validate_extraction(extraction_payload, strict=True)
    assert len(exc_info.value.issues) == 2


def test_low_overall_always_needs_review(extraction_payload):
    extraction_payload["confidence"] = {
        "overall": "low", "merchant": 1.0, "amount": 1.0, "date": 1.0, "email_type": 1.0,
    }
    result = validate_extraction(extraction_payload)
    assert needs_manual_review(result) is True
    assert result.needs_review is True


def test_weak_merchant_confidence_needs_review(extraction_payload):
    extraction_payload["confidence"]["merchant"] = 0.4
    assert validate_extraction(extraction_payload).needs_review is True


def test_missing_total_on_order_confirmation_needs_review(extraction_payload):
    extraction_payload["total_amount"] = None
    assert validate_extraction(extraction_payload).needs_review is True

    extraction_payload["email_type"] = "shipping_confirmation"
    assert validate_extraction(extraction_payload).needs_review is False


def test_model_flag_is_kept(extraction_payload):
    extraction_payload["needs_review"] = True
    assert validate_extraction(extraction_payload).needs_review is True


def test_is_purchase_email(extraction_payload):
    assert is_purchase_email(validate_extraction(extraction_payload)) is True

    extraction_payload["is_purchase"] = False
    assert is_purchase_email(validate_extraction(extraction_payload)) is False

    extraction_payload.update(is_purchase=True, email_type="unknown")
    assert is_purchase_email(validate_extraction(extraction_payload)) is False

    extraction_payload.update(email_type="invoice", merchant_name="X")
    assert is_purchase_email(validate_extraction(extraction_payload)) is False
