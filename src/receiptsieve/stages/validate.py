"""Stage 7: schema validation of the LLM tool payload and the review rule."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from receiptsieve.models import EmailType, Language, MerchantCategory, OverallConfidence
from receiptsieve.stages.merchant import is_email_provider_name

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

_OPTIONAL_STRINGS = (
    "merchant_website", "order_number", "purchase_date", "currency", "item_name",
    "estimated_delivery_date", "tracking_number", "extraction_notes", "raw_merchant_text",
)


class ExtractionValidationError(ValueError):
    """The tool payload did not match the extraction schema."""

    def __init__(self, issues: list[str]):
        self.issues = issues
        super().__init__("; ".join(issues) if issues else "invalid extraction")


class ConfidenceScores(BaseModel):
    overall: OverallConfidence
    merchant: float = Field(ge=0.0, le=1.0)
    amount: float = Field(ge=0.0, le=1.0)
    date: float = Field(ge=0.0, le=1.0)
    email_type: float = Field(ge=0.0, le=1.0)


class OrderExtraction(BaseModel):
    """Validated result of one extraction call."""

    language: Language
    email_type: EmailType
    is_purchase: bool

    merchant_name: str = Field(min_length=1)
    merchant_category: MerchantCategory | None = None
    merchant_website: str | None = None

    order_number: str | None = None
    purchase_date: str | None = Field(default=None, pattern=DATE_PATTERN)

    total_amount: float | None = Field(default=None, gt=0)
    currency: str | None = Field(default=None, pattern=r"^[A-Z]{3}$")
    subtotal: float | None = Field(default=None, gt=0)
    tax: float | None = None
    shipping: float | None = None
    discount: float | None = None

    item_name: str | None = None
    items_list: list[str] | None = None
    items_count: int | None = Field(default=None, gt=0)

    return_deadline_days: int | None = Field(default=None, ge=0)
    warranty_months: int | None = Field(default=None, ge=0)

    estimated_delivery_date: str | None = Field(default=None, pattern=DATE_PATTERN)
    tracking_number: str | None = None

    has_invoice_attachment: bool
    confidence: ConfidenceScores
    extraction_notes: str | None = None
    needs_review: bool
    raw_merchant_text: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in _OPTIONAL_STRINGS:
            value = data.get(key)
            if isinstance(value, str) and not value.strip():
                data[key] = None
        if data.get("merchant_category") == "":
            data["merchant_category"] = None
        return data

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("merchant_name", mode="before")
    @classmethod
    def _strip_merchant(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("items_list", mode="before")
    @classmethod
    def _clean_items(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(v).strip() for v in value if v is not None and str(v).strip()]
        return value


def needs_manual_review(result: OrderExtraction) -> bool:
    """Human review is required for low confidence, a doubtful merchant, or a missing total."""
    if result.needs_review:
        return True
    if result.confidence.overall == OverallConfidence.LOW:
        return True
    if result.confidence.merchant < 0.5:
        return True
    if result.total_amount is None and result.email_type == EmailType.ORDER_CONFIRMATION:
        return True
    return False


def is_purchase_email(result: OrderExtraction) -> bool:
    return (
        result.is_purchase
        and result.email_type != EmailType.UNKNOWN
        and len(result.merchant_name) > 1
    )


def validate_extraction(payload: Any, strict: bool = False) -> OrderExtraction:
    """Validate a raw tool payload.

    Raises ExtractionValidationError listing every problem found. The strict
    mode also demands a merchant name of two or more characters and an
    overall confidence of at least medium.
    """
    if not isinstance(payload, dict):
        raise ExtractionValidationError([f"payload must be an object, got {type(payload).__name__}"])

    try:
        result = OrderExtraction.model_validate(payload)
    except ValidationError as e:
        raise ExtractionValidationError(_format_issues(e)) from e

    issues: list[str] = []
    if is_email_provider_name(result.merchant_name):
        issues.append(f"merchant_name: {result.merchant_name!r} is an email provider, not a merchant")
    if strict:
        if len(result.merchant_name) < 2:
            issues.append("merchant_name: must be at least 2 characters")
        if result.confidence.overall == OverallConfidence.LOW:
            issues.append("confidence.overall: must be high or medium")
    if issues:
        raise ExtractionValidationError(issues)

    return result.model_copy(update={"needs_review": needs_manual_review(result)})


def _format_issues(error: ValidationError) -> list[str]:
    issues = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "payload"
        issues.append(f"{location}: {item['msg']}")
    return issues
